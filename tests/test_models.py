"""
Tests for Pydantic models.

Tests cover validation, computed properties, and status helpers.
"""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from taskboard.models import Board, Column, Task, TaskMovedEvent, TaskStatus


class TestColumnModel:
    """Tests for the Column model."""

    def test_defaults(self):
        """Test a column is non-terminal and unlimited by default."""
        column = Column(board_id=uuid4(), name="Backlog")

        assert column.position == 0
        assert column.is_terminal is False
        assert column.capacity is None
        assert column.task_count == 0
        assert column.is_over_capacity is False

    def test_negative_position_rejected(self):
        """Test that a negative position fails validation."""
        with pytest.raises(ValidationError):
            Column(board_id=uuid4(), name="Backlog", position=-1)

    def test_negative_capacity_rejected(self):
        """Test that a negative capacity fails validation."""
        with pytest.raises(ValidationError):
            Column(board_id=uuid4(), name="Backlog", capacity=-2)

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            Column(board_id=uuid4(), name="")

    def test_over_capacity(self):
        """Test over-capacity is strictly greater than the limit."""
        column = Column(board_id=uuid4(), name="Doing", capacity=2)

        column.update_counts(2)
        assert column.is_over_capacity is False

        column.update_counts(3)
        assert column.task_count == 3
        assert column.is_over_capacity is True

    def test_no_capacity_never_over(self):
        column = Column(board_id=uuid4(), name="Doing")
        column.update_counts(1000)
        assert column.is_over_capacity is False

    def test_computed_fields_serialized(self):
        """Test that computed properties appear in model_dump."""
        column = Column(board_id=uuid4(), name="Doing", capacity=1)
        column.update_counts(2)

        data = column.model_dump()
        assert data["task_count"] == 2
        assert data["is_over_capacity"] is True


class TestTaskModel:
    """Tests for the Task model."""

    def test_defaults(self):
        task = Task(title="Write docs", column_id=uuid4())

        assert task.status == TaskStatus.TODO
        assert task.completion_percentage == 0
        assert task.completed_at is None
        assert task.parent_id is None
        assert task.is_done is False

    def test_completion_bounds(self):
        """Test completion percentage must stay within 0..100."""
        with pytest.raises(ValidationError):
            Task(title="Over", column_id=uuid4(), completion_percentage=101)
        with pytest.raises(ValidationError):
            Task(title="Under", column_id=uuid4(), completion_percentage=-1)

    def test_own_parent_rejected(self):
        """Test a task cannot be its own parent."""
        task_id = uuid4()
        with pytest.raises(ValidationError, match="own parent"):
            Task(id=task_id, title="Loop", column_id=uuid4(), parent_id=task_id)

    def test_mark_completed(self):
        task = Task(title="Ship", column_id=uuid4())
        task.mark_completed()

        assert task.status == TaskStatus.DONE
        assert task.is_done is True
        assert task.completion_percentage == 100
        assert task.completed_at is not None

    def test_reopen(self):
        task = Task(title="Ship", column_id=uuid4())
        task.mark_completed()
        task.reopen()

        assert task.status == TaskStatus.IN_PROGRESS
        assert task.completion_percentage == 0
        assert task.completed_at is None

    def test_status_accepts_string_value(self):
        task = Task(title="Review", column_id=uuid4(), status="IN_REVIEW")
        assert task.status == TaskStatus.IN_REVIEW


class TestBoardAndEventModels:
    """Tests for Board and TaskMovedEvent."""

    def test_board_requires_name(self):
        with pytest.raises(ValidationError):
            Board(name="")

    def test_event_changed_column(self):
        column_id = uuid4()
        event = TaskMovedEvent(
            task_id=uuid4(),
            board_id=uuid4(),
            from_column_id=column_id,
            to_column_id=column_id,
            from_position=3,
            to_position=1,
            previous_status=TaskStatus.IN_PROGRESS,
            new_status=TaskStatus.IN_PROGRESS,
        )

        assert event.changed_column is False
        assert event.capacity_exceeded is False
        assert event.parent_id is None

        moved = event.model_copy(update={"to_column_id": uuid4()})
        assert moved.changed_column is True
