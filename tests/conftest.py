"""
Pytest configuration and fixtures for taskboard tests.

Provides database fixtures, a seeded board, and helpers for reading back
column contents.
"""

from typing import Dict, List

import pytest
import pytest_asyncio
from sqlalchemy import select

from taskboard.config import Config
from taskboard.database import DatabaseManager, TaskORM
from taskboard.services.column_service import ColumnService
from taskboard.services.task_service import TaskService


@pytest_asyncio.fixture
async def db_manager():
    """
    Create an in-memory SQLite database for testing.

    Yields:
        DatabaseManager instance with in-memory database
    """
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.initialize()

    yield manager

    await manager.close()


@pytest_asyncio.fixture
async def db_session(db_manager):
    """
    Provide a database session for tests.

    Yields:
        AsyncSession for database operations
    """
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def empty_config(tmp_path, monkeypatch):
    """Config backed by a missing file with no TASKBOARD_* overrides."""
    for name in (
        "TASKBOARD_MAX_RETRIES",
        "TASKBOARD_RETRY_BASE_DELAY",
        "TASKBOARD_AGGREGATION_DEPTH",
        "TASKBOARD_VERIFY_POSITIONS",
        "TASKBOARD_DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    return Config(tmp_path / "missing.ini")


@pytest_asyncio.fixture
async def board(db_session) -> Dict:
    """
    Create a board with the default lanes.

    Returns:
        Dictionary with the board and its columns keyed by short name:
        todo, doing, review, done (terminal)
    """
    service = ColumnService(db_session)
    created = await service.create_board("Sprint 1")
    columns = await service.get_board_columns(created.id)
    return {
        "board": created,
        "todo": columns[0],
        "doing": columns[1],
        "review": columns[2],
        "done": columns[3],
    }


@pytest_asyncio.fixture
async def other_board(db_session) -> Dict:
    """A second board, for cross-board checks."""
    service = ColumnService(db_session)
    created = await service.create_board("Other project")
    columns = await service.get_board_columns(created.id)
    return {"board": created, "todo": columns[0], "done": columns[3]}


@pytest.fixture
def make_tasks(db_session):
    """
    Factory fixture appending tasks to a column.

    Example:
        x, y, z = await make_tasks(board["todo"].id, "X", "Y", "Z")
    """
    async def _make_tasks(column_id, *titles, parent_id=None):
        service = TaskService(db_session)
        return [
            await service.create_task(column_id, title, parent_id=parent_id)
            for title in titles
        ]
    return _make_tasks


@pytest.fixture
def column_layout(db_session):
    """
    Read a column back from the database as (title, position) pairs.

    Positions are selected as plain columns, so they reflect what is
    stored rather than any in-memory ORM state.
    """
    async def _column_layout(column_id) -> List[tuple]:
        await db_session.flush()
        result = await db_session.execute(
            select(TaskORM.title, TaskORM.position)
            .where(TaskORM.column_id == str(column_id))
            .order_by(TaskORM.position, TaskORM.title)
        )
        return [tuple(row) for row in result.all()]
    return _column_layout
