"""
Task service for the taskboard engine.

Implements task creation, deletion, status changes and reads. Creation
appends to the end of a column, deletion closes the gap it leaves, and any
change to a child refreshes the completion of its ancestors.
"""

from typing import List, Optional, Set, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import ColumnORM, TaskORM
from taskboard.logging_config import get_logger
from taskboard.models import Task, TaskStatus
from taskboard.services.errors import (
    InvalidArgumentError,
    TaskNotFoundError,
    ColumnNotFoundError,
)
from taskboard.services.move_coordinator import apply_status
from taskboard.services.position_shifter import PositionShifter
from taskboard.services.stores import ColumnStore, TaskStore
from taskboard.services.subtask_aggregator import SubtaskAggregator
from taskboard.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class TaskService:
    """
    Service layer for task lifecycle operations.

    Every method runs inside the session's transaction and never commits
    on its own.
    """

    def __init__(self, session: AsyncSession, aggregation_depth: Optional[int] = None) -> None:
        """
        Initialize task service with database session.

        Args:
            session: Active async database session
            aggregation_depth: Ancestor generations to refresh (None/0: all)
        """
        self.session = session
        self.aggregation_depth = aggregation_depth
        self.tasks = TaskStore(session)
        self.columns = ColumnStore(session)
        self.shifter = PositionShifter.for_tasks(session)
        self.aggregator = SubtaskAggregator(session, self.tasks)
        # Every column a create or delete wrote to, for post-operation checks
        self.touched_columns: Set[str] = set()

    # ==============================================================================
    # CREATE OPERATIONS
    # ==============================================================================

    async def create_task(
        self,
        column_id: Union[UUID, str],
        title: str,
        parent_id: Optional[Union[UUID, str]] = None,
        task_id: Optional[UUID] = None,
        subtasks: Optional[List[str]] = None,
    ) -> Task:
        """
        Create a task at the end of a column.

        A task created in a terminal column starts out DONE. Inline subtasks
        are appended after it in the same column, in the given order; blank
        titles are skipped.

        Args:
            column_id: UUID of the column
            title: Task title
            parent_id: Optional parent task UUID (for subtasks)
            task_id: Optional UUID for the task
            subtasks: Optional titles of children to create with the task

        Returns:
            Created Task instance

        Raises:
            ColumnNotFoundError: If column does not exist
            TaskNotFoundError: If parent task does not exist
            InvalidArgumentError: If the parent is on another board
        """
        try:
            logger.debug(f"Creating task: title='{title}', column_id={column_id}, parent_id={parent_id}")

            column_orm = await self.columns.get_or_raise(column_id)

            if parent_id is not None:
                parent_orm = await self.tasks.get_or_raise(parent_id)
                parent_column = await self.columns.get_or_raise(parent_orm.column_id)
                if parent_column.board_id != column_orm.board_id:
                    raise InvalidArgumentError(
                        f"Parent task {parent_id} is on board {parent_column.board_id}, "
                        f"not {column_orm.board_id}"
                    )

            await self.shifter.lock(column_orm.id)
            task_orm = await self._insert_task(column_orm, title, parent_id, task_id)

            child_titles = [t for t in (subtasks or []) if t and t.strip()]
            for child_title in child_titles:
                await self._insert_task(column_orm, child_title, task_orm.id)
            if child_titles:
                await self.aggregator.recompute_completion(task_orm.id)

            if task_orm.parent_id is not None:
                await self.aggregator.propagate(task_orm.id, max_levels=self.aggregation_depth)

            logger.info(
                f"Created task: id={task_orm.id}, title='{title}', column={column_orm.id}, "
                f"position={task_orm.position}, subtasks={len(child_titles)}"
            )
            return TaskStore.to_model(task_orm)
        except (ColumnNotFoundError, TaskNotFoundError, InvalidArgumentError) as e:
            logger.error(f"Failed to create task: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to create task: {e}", exc_info=True)
            raise

    async def _insert_task(
        self,
        column_orm: ColumnORM,
        title: str,
        parent_id: Optional[Union[UUID, str]] = None,
        task_id: Optional[UUID] = None,
    ) -> TaskORM:
        """Append one task row to a column the caller has already locked."""
        position = await self.tasks.count_by_column(column_orm.id)

        # Validate through the Pydantic model before touching the table
        task = Task(
            id=task_id or uuid4(),
            title=title,
            column_id=UUID(column_orm.id),
            position=position,
            parent_id=UUID(str(parent_id)) if parent_id is not None else None,
        )
        if column_orm.is_terminal:
            task.mark_completed()

        task_orm = TaskORM(
            id=str(task.id),
            title=task.title,
            column_id=column_orm.id,
            position=task.position,
            status=task.status.value,
            completion_percentage=task.completion_percentage,
            parent_id=str(task.parent_id) if task.parent_id else None,
            created_at=task.created_at,
            updated_at=task.updated_at,
            completed_at=task.completed_at,
        )
        await self.tasks.save(task_orm)
        self.touched_columns.add(column_orm.id)
        return task_orm

    # ==============================================================================
    # READ OPERATIONS
    # ==============================================================================

    async def get_task(self, task_id: Union[UUID, str]) -> Task:
        """
        Retrieve a task by ID.

        Raises:
            TaskNotFoundError: If task does not exist
        """
        return TaskStore.to_model(await self.tasks.get_or_raise(task_id))

    async def get_column_tasks(self, column_id: Union[UUID, str]) -> List[Task]:
        """
        Get all tasks of a column in display order.

        Args:
            column_id: UUID of the column

        Returns:
            List of Task instances ordered by position

        Raises:
            ColumnNotFoundError: If column does not exist
        """
        await self.columns.get_or_raise(column_id)
        return [TaskStore.to_model(t) for t in await self.tasks.list_by_column(column_id)]

    async def get_subtasks(self, parent_id: Union[UUID, str]) -> List[Task]:
        """
        Get the direct children of a task.

        Args:
            parent_id: UUID of the parent task

        Returns:
            List of Task instances, oldest first

        Raises:
            TaskNotFoundError: If parent does not exist
        """
        await self.tasks.get_or_raise(parent_id)
        children = await self.tasks.children_of(parent_id)
        logger.debug(f"Fetched {len(children)} subtasks for task {parent_id}")
        return [TaskStore.to_model(c) for c in children]

    # ==============================================================================
    # UPDATE OPERATIONS
    # ==============================================================================

    async def update_task(self, task_id: Union[UUID, str], title: Optional[str] = None) -> Task:
        """
        Change a task's editable fields.

        Args:
            task_id: UUID of the task
            title: New title, if changing

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If task does not exist
            ValidationError: If the new title is empty or too long
        """
        task_orm = await self.tasks.get_or_raise(task_id)

        changes = {}
        if title is not None:
            changes["title"] = title
        if not changes:
            return TaskStore.to_model(task_orm)

        # Validate through the Pydantic model before touching the row
        current = TaskStore.to_model(task_orm)
        task = Task.model_validate({**current.model_dump(exclude={"is_done"}), **changes})

        task_orm.title = task.title
        task_orm.updated_at = utc_now()
        await self.tasks.save(task_orm)

        logger.info(f"Updated task: id={task_id}, title='{task_orm.title}'")
        return TaskStore.to_model(task_orm)

    async def set_status(self, task_id: Union[UUID, str], status: TaskStatus) -> Task:
        """
        Change a task's status in place, without moving it.

        Args:
            task_id: UUID of the task
            status: New status

        Returns:
            Updated Task instance

        Raises:
            TaskNotFoundError: If task does not exist
            InvalidArgumentError: If the status disagrees with the column: a terminal
                column holds only DONE tasks and DONE is reached only by moving there
        """
        status = TaskStatus(status)
        task_orm = await self.tasks.get_or_raise(task_id)
        column_orm = await self.columns.get_or_raise(task_orm.column_id)

        if column_orm.is_terminal and status != TaskStatus.DONE:
            raise InvalidArgumentError(
                f"Task {task_id} is in terminal column {column_orm.id} and must stay DONE"
            )
        if not column_orm.is_terminal and status == TaskStatus.DONE:
            raise InvalidArgumentError(
                f"Task {task_id} is in non-terminal column {column_orm.id}; "
                f"move it to a terminal column to complete it"
            )

        original_status = TaskStatus(task_orm.status)
        if original_status == status:
            return TaskStore.to_model(task_orm)

        apply_status(task_orm, original_status, status)
        task_orm.updated_at = utc_now()
        await self.tasks.save(task_orm)

        await self.aggregator.recompute_completion(task_orm.id)
        if task_orm.parent_id is not None:
            await self.aggregator.propagate(task_orm.id, max_levels=self.aggregation_depth)

        logger.info(f"Task status changed: id={task_id}, {original_status.value} -> {status.value}")
        return TaskStore.to_model(task_orm)

    # ==============================================================================
    # DELETE OPERATIONS
    # ==============================================================================

    async def delete_task(self, task_id: Union[UUID, str]) -> int:
        """
        Delete a task and all its descendants.

        Each deleted row closes the gap it leaves in its own column before
        the transaction commits.

        Args:
            task_id: UUID of the task to delete

        Returns:
            Number of tasks deleted

        Raises:
            TaskNotFoundError: If task does not exist
        """
        try:
            logger.debug(f"Deleting task {task_id} and descendants")

            task_orm = await self.tasks.get_or_raise(task_id)
            parent_id = task_orm.parent_id
            descendants = await self.tasks.descendants_of(task_id)

            # Deepest first so no row outlives its parent
            for doomed in reversed([task_orm] + descendants):
                await self._delete_one(doomed)

            if parent_id is not None:
                parent_orm = await self.tasks.get(parent_id)
                if parent_orm is not None:
                    await self.aggregator.recompute_completion(parent_id)
                    if self.aggregation_depth != 1:
                        remaining = self.aggregation_depth - 1 if self.aggregation_depth else None
                        await self.aggregator.propagate(parent_id, max_levels=remaining)

            deleted = len(descendants) + 1
            logger.info(f"Deleted task: id={task_id}, descendants={len(descendants)}")
            return deleted
        except TaskNotFoundError as e:
            logger.error(f"Failed to delete task - not found: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to delete task {task_id}: {e}", exc_info=True)
            raise

    async def _delete_one(self, task_orm: TaskORM) -> None:
        column_id = task_orm.column_id
        position = task_orm.position
        await self.shifter.lock(column_id)
        await self.tasks.delete(task_orm)
        await self.shifter.shift_from(column_id, position + 1, -1)
        self.touched_columns.add(column_id)
