"""
Persistence collaborators for the board engine.

BoardStore, ColumnStore and TaskStore wrap one AsyncSession (one
transaction) and expose fetch-by-id, fetch-ordered-by-position,
count-by-container and save. Counts are always derived from the rows,
never cached.
"""

from typing import List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import BoardORM, ColumnORM, TaskORM
from taskboard.logging_config import get_logger
from taskboard.models import Board, Column, Task, TaskStatus
from taskboard.services.errors import (
    BoardNotFoundError,
    ColumnNotFoundError,
    TaskNotFoundError,
)

logger = get_logger(__name__)

EntityId = Union[UUID, str]


class BoardStore:
    """Board lookups and persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, board_id: EntityId) -> Optional[BoardORM]:
        result = await self.session.execute(
            select(BoardORM).where(BoardORM.id == str(board_id))
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, board_id: EntityId) -> BoardORM:
        """
        Get a board by ID or raise an exception.

        Raises:
            BoardNotFoundError: If board does not exist
        """
        board_orm = await self.get(board_id)
        if board_orm is None:
            raise BoardNotFoundError(f"Board with id {board_id} not found")
        return board_orm

    async def save(self, board_orm: BoardORM) -> BoardORM:
        self.session.add(board_orm)
        await self.session.flush()
        return board_orm

    @staticmethod
    def to_model(board_orm: BoardORM) -> Board:
        return Board(
            id=UUID(board_orm.id),
            name=board_orm.name,
            created_at=board_orm.created_at,
        )


class ColumnStore:
    """
    Column lookups and persistence.

    Columns are ordered within their board by position.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, column_id: EntityId) -> Optional[ColumnORM]:
        result = await self.session.execute(
            select(ColumnORM).where(ColumnORM.id == str(column_id))
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, column_id: EntityId) -> ColumnORM:
        """
        Get a column by ID or raise an exception.

        Args:
            column_id: UUID of the column

        Returns:
            ColumnORM instance

        Raises:
            ColumnNotFoundError: If column does not exist
        """
        column_orm = await self.get(column_id)
        if column_orm is None:
            raise ColumnNotFoundError(f"Column with id {column_id} not found")
        return column_orm

    async def list_by_board(self, board_id: EntityId) -> List[ColumnORM]:
        """
        Get all columns of a board ordered by position.

        Args:
            board_id: UUID of the board

        Returns:
            List of ColumnORM instances
        """
        result = await self.session.execute(
            select(ColumnORM)
            .where(ColumnORM.board_id == str(board_id))
            .order_by(ColumnORM.position, ColumnORM.created_at)
        )
        return list(result.scalars().all())

    async def count_by_board(self, board_id: EntityId) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(ColumnORM).where(ColumnORM.board_id == str(board_id))
        )
        return result.scalar_one()

    async def lock_board(self, board_id: EntityId) -> BoardORM:
        """
        Take a write lock on a board row for the rest of the transaction.

        Serializes concurrent column shifts on the same board. SQLite ignores
        FOR UPDATE; it serializes writers on the whole database instead.

        Raises:
            BoardNotFoundError: If board does not exist
        """
        result = await self.session.execute(
            select(BoardORM).where(BoardORM.id == str(board_id)).with_for_update()
        )
        board_orm = result.scalar_one_or_none()
        if board_orm is None:
            raise BoardNotFoundError(f"Board with id {board_id} not found")
        return board_orm

    async def save(self, column_orm: ColumnORM) -> ColumnORM:
        self.session.add(column_orm)
        await self.session.flush()
        return column_orm

    async def delete(self, column_orm: ColumnORM) -> None:
        await self.session.delete(column_orm)
        await self.session.flush()

    @staticmethod
    def to_model(column_orm: ColumnORM, task_count: Optional[int] = None) -> Column:
        """
        Convert ColumnORM to Pydantic Column model.

        Args:
            column_orm: SQLAlchemy ORM column instance
            task_count: Derived task count to attach, if already known

        Returns:
            Pydantic Column instance
        """
        column = Column(
            id=UUID(column_orm.id),
            board_id=UUID(column_orm.board_id),
            name=column_orm.name,
            position=column_orm.position,
            is_terminal=column_orm.is_terminal,
            capacity=column_orm.capacity,
            created_at=column_orm.created_at,
        )
        if task_count is not None:
            column.update_counts(task_count)
        return column


class TaskStore:
    """
    Task lookups and persistence.

    Tasks are ordered within their column by position. Parent/child
    navigation is done by querying parent_id, never through back-pointers.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, task_id: EntityId) -> Optional[TaskORM]:
        result = await self.session.execute(
            select(TaskORM).where(TaskORM.id == str(task_id))
        )
        return result.scalar_one_or_none()

    async def get_or_raise(self, task_id: EntityId) -> TaskORM:
        """
        Get a task by ID or raise an exception.

        Args:
            task_id: UUID of the task

        Returns:
            TaskORM instance

        Raises:
            TaskNotFoundError: If task does not exist
        """
        task_orm = await self.get(task_id)
        if task_orm is None:
            raise TaskNotFoundError(f"Task with id {task_id} not found")
        return task_orm

    async def list_by_column(self, column_id: EntityId) -> List[TaskORM]:
        """
        Get all tasks of a column ordered by position.

        Args:
            column_id: UUID of the column

        Returns:
            List of TaskORM instances
        """
        result = await self.session.execute(
            select(TaskORM)
            .where(TaskORM.column_id == str(column_id))
            .order_by(TaskORM.position, TaskORM.created_at)
        )
        return list(result.scalars().all())

    async def count_by_column(self, column_id: EntityId) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(TaskORM).where(TaskORM.column_id == str(column_id))
        )
        return result.scalar_one()

    async def lock_column(self, column_id: EntityId) -> ColumnORM:
        """
        Take a write lock on a column row for the rest of the transaction.

        Serializes concurrent task shifts on the same column.

        Raises:
            ColumnNotFoundError: If column does not exist
        """
        result = await self.session.execute(
            select(ColumnORM).where(ColumnORM.id == str(column_id)).with_for_update()
        )
        column_orm = result.scalar_one_or_none()
        if column_orm is None:
            raise ColumnNotFoundError(f"Column with id {column_id} not found")
        return column_orm

    async def children_of(self, parent_id: EntityId) -> List[TaskORM]:
        """
        Get the direct children of a task, oldest first.

        Children may live in different columns, so they have no common
        position order.
        """
        result = await self.session.execute(
            select(TaskORM)
            .where(TaskORM.parent_id == str(parent_id))
            .order_by(TaskORM.created_at, TaskORM.id)
        )
        return list(result.scalars().all())

    async def child_counts(self, parent_id: EntityId) -> Tuple[int, int]:
        """
        Count direct children and direct children in DONE status.

        Args:
            parent_id: UUID of the parent task

        Returns:
            Tuple of (total_children, done_children)
        """
        total = await self.session.execute(
            select(func.count()).select_from(TaskORM).where(TaskORM.parent_id == str(parent_id))
        )
        done = await self.session.execute(
            select(func.count())
            .select_from(TaskORM)
            .where(TaskORM.parent_id == str(parent_id))
            .where(TaskORM.status == TaskStatus.DONE.value)
        )
        return total.scalar_one(), done.scalar_one()

    async def descendants_of(self, task_id: EntityId) -> List[TaskORM]:
        """
        Get all descendants of a task, parents before their children.

        Args:
            task_id: UUID of the root task

        Returns:
            List of TaskORM instances (the root itself excluded)
        """
        descendants: List[TaskORM] = []
        seen = {str(task_id)}
        frontier = [str(task_id)]
        while frontier:
            current = frontier.pop(0)
            for child in await self.children_of(current):
                if child.id in seen:
                    logger.warning(f"Parent cycle detected at task {child.id}, stopping descent")
                    continue
                seen.add(child.id)
                descendants.append(child)
                frontier.append(child.id)
        return descendants

    async def save(self, task_orm: TaskORM) -> TaskORM:
        self.session.add(task_orm)
        await self.session.flush()
        return task_orm

    async def delete(self, task_orm: TaskORM) -> None:
        await self.session.delete(task_orm)
        await self.session.flush()

    @staticmethod
    def to_model(task_orm: TaskORM) -> Task:
        """
        Convert TaskORM to Pydantic Task model.

        Args:
            task_orm: SQLAlchemy ORM task instance

        Returns:
            Pydantic Task instance
        """
        return Task(
            id=UUID(task_orm.id),
            title=task_orm.title,
            column_id=UUID(task_orm.column_id),
            position=task_orm.position,
            status=TaskStatus(task_orm.status),
            completion_percentage=task_orm.completion_percentage,
            parent_id=UUID(task_orm.parent_id) if task_orm.parent_id else None,
            created_at=task_orm.created_at,
            updated_at=task_orm.updated_at,
            completed_at=task_orm.completed_at,
        )
