"""
Task relocation on a board.

MoveCoordinator moves one task either inside its column or to another
column of the same board, keeping every column's positions contiguous, then
reconciles the task's status with the destination column and refreshes the
completion of its ancestors. All of it runs in the caller's transaction.
"""

from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import TaskORM
from taskboard.logging_config import get_logger
from taskboard.models import Task, TaskMovedEvent, TaskStatus
from taskboard.services.errors import (
    ConcurrencyConflictError,
    CrossBoardMoveError,
    InvalidPositionError,
)
from taskboard.services.position_shifter import PositionShifter
from taskboard.services.status_policy import StatusPolicy, reconcile_status
from taskboard.services.stores import ColumnStore, TaskStore
from taskboard.services.subtask_aggregator import SubtaskAggregator
from taskboard.utils.datetime_utils import utc_now

logger = get_logger(__name__)


def apply_status(task_orm: TaskORM, original_status: TaskStatus, new_status: TaskStatus) -> None:
    """
    Write a status transition onto a task row.

    Entering DONE stamps completed_at and sets 100%; leaving DONE clears
    completed_at and resets to 0%. Percentages of tasks with children are
    recomputed afterwards by the aggregator.

    Args:
        task_orm: Task row to update
        original_status: Status before the transition
        new_status: Status after the transition
    """
    if new_status == TaskStatus.DONE and original_status != TaskStatus.DONE:
        task_orm.status = TaskStatus.DONE.value
        task_orm.completed_at = utc_now()
        task_orm.completion_percentage = 100
    elif original_status == TaskStatus.DONE and new_status != TaskStatus.DONE:
        task_orm.status = new_status.value
        task_orm.completed_at = None
        task_orm.completion_percentage = 0
    else:
        task_orm.status = new_status.value


class MoveCoordinator:
    """
    Orchestrates single task moves.

    Successful moves append a TaskMovedEvent to `events`; the caller
    dispatches them once the transaction has committed.
    """

    def __init__(
        self,
        session: AsyncSession,
        status_policy: StatusPolicy = reconcile_status,
        aggregation_depth: Optional[int] = None,
    ) -> None:
        """
        Initialize the coordinator on a session.

        Args:
            session: Active async database session (one transaction)
            status_policy: Function deciding the status after a move
            aggregation_depth: Ancestor generations to refresh (None/0: all)
        """
        self.session = session
        self.status_policy = status_policy
        self.aggregation_depth = aggregation_depth
        self.tasks = TaskStore(session)
        self.columns = ColumnStore(session)
        self.shifter = PositionShifter.for_tasks(session)
        self.aggregator = SubtaskAggregator(session, self.tasks)
        self.events: List[TaskMovedEvent] = []

    async def move_task(
        self,
        task_id: Union[UUID, str],
        target_column_id: Union[UUID, str],
        target_position: Optional[int] = None,
    ) -> Task:
        """
        Move a task to a column and slot.

        Args:
            task_id: UUID of the task to move
            target_column_id: Destination column (same board as the task)
            target_position: Destination slot; None appends to the end of the
                             target column (or to the last slot when the
                             target is the task's own column)

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If the task does not exist
            ColumnNotFoundError: If either column does not exist
            CrossBoardMoveError: If the target column is on another board
            InvalidPositionError: If target_position is out of range
            ConcurrencyConflictError: If the task changed column before the lock
        """
        logger.debug(
            f"Move requested: task_id={task_id}, target_column_id={target_column_id}, "
            f"target_position={target_position}"
        )

        task_orm = await self.tasks.get_or_raise(task_id)
        source = await self.columns.get_or_raise(task_orm.column_id)
        target = await self.columns.get_or_raise(target_column_id)

        if source.board_id != target.board_id:
            raise CrossBoardMoveError(
                f"Column {target.id} belongs to board {target.board_id}, "
                f"task {task_orm.id} is on board {source.board_id}"
            )
        if target_position is not None and target_position < 0:
            raise InvalidPositionError(f"Target position must be >= 0, got {target_position}")

        # Lock in id order so two opposite moves cannot deadlock
        for column_id in sorted({source.id, target.id}):
            await self.shifter.lock(column_id)

        # Re-read under the lock: a concurrent move may have committed meanwhile
        await self.session.refresh(task_orm)
        if task_orm.column_id != source.id:
            raise ConcurrencyConflictError(
                f"Task {task_orm.id} left column {source.id} before its lock was taken"
            )

        original_column_id = task_orm.column_id
        original_position = task_orm.position
        original_status = TaskStatus(task_orm.status)
        same_column = original_column_id == target.id

        target_size = await self.tasks.count_by_column(target.id)
        if same_column:
            last_slot = target_size - 1
            if target_position is None:
                target_position = last_slot
            elif target_position > last_slot:
                raise InvalidPositionError(
                    f"Target position {target_position} out of range [0, {last_slot}] "
                    f"for column {target.id}"
                )
            if target_position == original_position:
                logger.debug(f"Move of task {task_orm.id} is a no-op")
                return TaskStore.to_model(task_orm)
        else:
            if target_position is None:
                target_position = target_size
            elif target_position > target_size:
                raise InvalidPositionError(
                    f"Target position {target_position} out of range [0, {target_size}] "
                    f"for column {target.id}"
                )

        if not same_column:
            await self.shifter.shift_from(original_column_id, original_position + 1, -1)
            await self.shifter.shift_from(target.id, target_position, +1)
            task_orm.column_id = target.id
        elif target_position < original_position:
            await self.shifter.shift_range(target.id, target_position, original_position - 1, +1)
        else:
            await self.shifter.shift_range(target.id, original_position + 1, target_position, -1)
        task_orm.position = target_position

        target_model = ColumnStore.to_model(target, task_count=target_size + (0 if same_column else 1))
        new_status = self.status_policy(original_status, target_model)
        apply_status(task_orm, original_status, new_status)
        task_orm.updated_at = utc_now()
        await self.tasks.save(task_orm)

        # Own percentage is derived whenever the task has children
        await self.aggregator.recompute_completion(task_orm.id)
        if task_orm.parent_id is not None:
            await self.aggregator.propagate(task_orm.id, max_levels=self.aggregation_depth)

        capacity_exceeded = not same_column and target_model.is_over_capacity
        if capacity_exceeded:
            logger.warning(
                f"Column {target.id} over capacity after move: "
                f"{target_model.task_count} tasks, capacity {target.capacity}"
            )

        self.events.append(
            TaskMovedEvent(
                task_id=UUID(task_orm.id),
                board_id=UUID(target.board_id),
                from_column_id=UUID(original_column_id),
                to_column_id=UUID(target.id),
                from_position=original_position,
                to_position=target_position,
                previous_status=original_status,
                new_status=TaskStatus(task_orm.status),
                parent_id=UUID(task_orm.parent_id) if task_orm.parent_id else None,
                capacity_exceeded=capacity_exceeded,
            )
        )

        logger.info(
            f"Task moved: id={task_orm.id}, column {original_column_id} -> {target.id}, "
            f"position {original_position} -> {target_position}, "
            f"status {original_status.value} -> {task_orm.status}"
        )
        return TaskStore.to_model(task_orm)
