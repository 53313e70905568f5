"""
Tests for logging configuration module.

Tests cover:
- Log directory and file creation
- Log level configuration via environment variables
- Per-module logger naming
- Log rotation settings
- Optional console handler
"""

import logging
import re
from logging.handlers import RotatingFileHandler

import pytest

from taskboard.logging_config import (
    BACKUP_COUNT,
    MAX_BYTES,
    get_logger,
    setup_logging,
)


@pytest.fixture
def mock_log_dir(tmp_path, monkeypatch):
    """Point LOG_DIR and LOG_FILE at a temporary directory."""
    log_dir = tmp_path / ".taskboard" / "logs"
    log_file = log_dir / "taskboard.log"

    monkeypatch.setattr("taskboard.logging_config.LOG_DIR", log_dir)
    monkeypatch.setattr("taskboard.logging_config.LOG_FILE", log_file)
    monkeypatch.delenv("TASKBOARD_LOG_LEVEL", raising=False)

    return log_dir, log_file


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging handlers before and after each test."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)

    yield

    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestLogFiles:
    """Test suite for log directory and file creation."""

    def test_log_directory_created_automatically(self, mock_log_dir):
        log_dir, _ = mock_log_dir
        assert not log_dir.exists()

        setup_logging()

        assert log_dir.is_dir()

    def test_log_messages_written_to_file(self, mock_log_dir):
        _, log_file = mock_log_dir
        setup_logging()

        get_logger("taskboard.services.move_coordinator").info("Task moved")
        _flush()

        content = log_file.read_text()
        assert "Task moved" in content
        assert "taskboard.services.move_coordinator" in content
        assert "INFO" in content
        assert re.search(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", content)

    def test_rotation_settings(self, mock_log_dir):
        setup_logging()

        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].maxBytes == MAX_BYTES
        assert handlers[0].backupCount == BACKUP_COUNT


class TestLogLevel:
    """Test suite for log level configuration."""

    def test_default_level_is_info(self, mock_log_dir):
        setup_logging()
        assert logging.getLogger().level == logging.INFO

    def test_explicit_level(self, mock_log_dir):
        setup_logging(log_level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_environment_level(self, mock_log_dir, monkeypatch):
        monkeypatch.setenv("TASKBOARD_LOG_LEVEL", "ERROR")
        setup_logging()
        assert logging.getLogger().level == logging.ERROR

    def test_invalid_level_falls_back_to_info(self, mock_log_dir):
        setup_logging(log_level="LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_debug_filtered_at_info(self, mock_log_dir):
        _, log_file = mock_log_dir
        setup_logging(log_level="INFO")

        get_logger("quiet").debug("hidden detail")
        _flush()

        assert "hidden detail" not in log_file.read_text()


class TestHandlers:
    """Test suite for handler setup."""

    def test_repeated_setup_does_not_duplicate(self, mock_log_dir):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_console_handler(self, mock_log_dir):
        setup_logging(use_console_handler=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 2
        assert any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
            for h in handlers
        )

    def test_get_logger_same_instance(self):
        assert get_logger("same_module") is get_logger("same_module")
        assert get_logger("taskboard.engine").name == "taskboard.engine"
