"""
Pydantic models for the taskboard engine.

Defines boards, columns, tasks and the task-moved event with validation,
computed properties, and proper typing. Every entity refers to the others
by id only.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, PrivateAttr, computed_field, model_validator

from taskboard.utils.datetime_utils import utc_now


class TaskStatus(str, Enum):
    """Task lifecycle status, in workflow order."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    BLOCKED = "BLOCKED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class Board(BaseModel):
    """
    Represents a board: the ordered collection of columns of one project.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the board")
    name: str = Field(..., min_length=1, max_length=200, description="Board name")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")


class Column(BaseModel):
    """
    Represents a board column (lane), one stage of a workflow.

    Tasks entering a terminal column are forced to DONE. Capacity is a
    work-in-progress limit that is only flagged, never enforced.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the column")
    board_id: UUID = Field(..., description="ID of the board this column belongs to")
    name: str = Field(..., min_length=1, max_length=100, description="Column name")
    position: int = Field(default=0, ge=0, description="Order among the board's columns")
    is_terminal: bool = Field(default=False, description="Whether this lane means work is finished")
    capacity: Optional[int] = Field(default=None, ge=0, description="Advisory WIP limit")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")

    # Derived from the store on demand, never persisted
    _task_count: int = PrivateAttr(default=0)

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174010",
                "board_id": "123e4567-e89b-12d3-a456-426614174000",
                "name": "In Progress",
                "position": 1,
                "is_terminal": False,
                "capacity": 5,
                "created_at": "2025-01-14T10:00:00",
            }
        }

    @computed_field
    @property
    def task_count(self) -> int:
        """
        Get the number of tasks currently in this column.

        Returns:
            Task count as last set by update_counts()
        """
        return self._task_count

    @computed_field
    @property
    def is_over_capacity(self) -> bool:
        """
        Check whether the column holds more tasks than its WIP limit.

        Returns:
            True if a capacity is set and exceeded, False otherwise
        """
        return self.capacity is not None and self._task_count > self.capacity

    def update_counts(self, task_count: int) -> None:
        """
        Update the task count for computed properties.

        Args:
            task_count: Number of tasks in the column
        """
        self._task_count = task_count


class Task(BaseModel):
    """
    Represents a single task card on a board.

    A task sits at one position of one column and may point to a parent
    task. When it has children, its completion percentage is derived from
    them; otherwise it follows its status.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the task")
    title: str = Field(..., min_length=1, max_length=500, description="Task title")

    column_id: UUID = Field(..., description="ID of the column holding the task")
    position: int = Field(default=0, ge=0, description="Order within the column")

    status: TaskStatus = Field(default=TaskStatus.TODO, description="Lifecycle status")
    completion_percentage: int = Field(default=0, ge=0, le=100, description="Progress (0-100)")

    parent_id: Optional[UUID] = Field(default=None, description="Parent task ID for subtasks")

    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Completion timestamp")

    @model_validator(mode='after')
    def validate_parent(self) -> 'Task':
        """
        Reject a task that names itself as parent.

        Returns:
            The validated task instance

        Raises:
            ValueError: If parent_id equals id
        """
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError("A task cannot be its own parent")
        return self

    @computed_field
    @property
    def is_done(self) -> bool:
        """Whether the task is in DONE status."""
        return self.status == TaskStatus.DONE

    def mark_completed(self) -> None:
        """Mark the task DONE with timestamp and full completion."""
        self.status = TaskStatus.DONE
        self.completed_at = utc_now()
        self.completion_percentage = 100

    def reopen(self) -> None:
        """Move a finished task back to IN_PROGRESS, clearing completion."""
        self.status = TaskStatus.IN_PROGRESS
        self.completed_at = None
        self.completion_percentage = 0


class TaskMovedEvent(BaseModel):
    """
    Domain event recorded by a successful move.

    Delivered to subscribers only after the move's transaction commits.
    """

    task_id: UUID
    board_id: UUID
    from_column_id: UUID
    to_column_id: UUID
    from_position: int
    to_position: int
    previous_status: TaskStatus
    new_status: TaskStatus
    parent_id: Optional[UUID] = None
    capacity_exceeded: bool = False
    occurred_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def changed_column(self) -> bool:
        """Whether the move crossed columns."""
        return self.from_column_id != self.to_column_id
