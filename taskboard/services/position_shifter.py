"""
Position shifting primitive for board ordering.

Every reorder on a board is built from one operation: add a signed offset
to the position of all records of one container whose position falls in a
range. Each shift is a single UPDATE statement run inside the caller's
transaction after the container row is locked, so two moves on the same
column cannot interleave their read and write halves.
"""

from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import ColumnORM, TaskORM
from taskboard.logging_config import get_logger
from taskboard.services.stores import ColumnStore, TaskStore

logger = get_logger(__name__)


class PositionShifter:
    """
    Applies position offsets to the records of one container kind.

    Use for_tasks() to shift tasks inside a column, and for_columns() to
    shift columns inside a board.
    """

    def __init__(self, session: AsyncSession, model, container_attr: str, lock) -> None:
        """
        Args:
            session: Active async database session (the caller's transaction)
            model: ORM class whose rows are shifted
            container_attr: Name of the foreign key column naming the container
            lock: Coroutine function taking a container id and locking it
        """
        self.session = session
        self.model = model
        self.container_attr = container_attr
        self._lock = lock
        self._locked: set = set()

    @classmethod
    def for_tasks(cls, session: AsyncSession) -> "PositionShifter":
        """Shifter over task positions within a column."""
        return cls(session, TaskORM, "column_id", TaskStore(session).lock_column)

    @classmethod
    def for_columns(cls, session: AsyncSession) -> "PositionShifter":
        """Shifter over column positions within a board."""
        return cls(session, ColumnORM, "board_id", ColumnStore(session).lock_board)

    @property
    def _container(self):
        return getattr(self.model, self.container_attr)

    async def lock(self, container_id: Union[UUID, str]) -> None:
        """
        Lock a container for the rest of the transaction (once per shifter).

        Args:
            container_id: ID of the column or board
        """
        key = str(container_id)
        if key in self._locked:
            return
        await self._lock(key)
        self._locked.add(key)

    async def shift_from(
        self,
        container_id: Union[UUID, str],
        from_position: int,
        delta: int
    ) -> int:
        """
        Shift every record at or after from_position by delta.

        Args:
            container_id: ID of the column or board
            from_position: First position affected (inclusive)
            delta: Signed offset to add

        Returns:
            Number of records shifted
        """
        return await self._shift(container_id, from_position, None, delta)

    async def shift_range(
        self,
        container_id: Union[UUID, str],
        from_position: int,
        to_position: int,
        delta: int
    ) -> int:
        """
        Shift every record with from_position <= position <= to_position.

        Args:
            container_id: ID of the column or board
            from_position: First position affected (inclusive)
            to_position: Last position affected (inclusive)
            delta: Signed offset to add

        Returns:
            Number of records shifted
        """
        return await self._shift(container_id, from_position, to_position, delta)

    async def _shift(
        self,
        container_id: Union[UUID, str],
        from_position: int,
        to_position: Optional[int],
        delta: int
    ) -> int:
        if delta == 0 or (to_position is not None and to_position < from_position):
            return 0

        await self.lock(container_id)

        stmt = (
            update(self.model)
            .where(self._container == str(container_id))
            .where(self.model.position >= from_position)
        )
        if to_position is not None:
            stmt = stmt.where(self.model.position <= to_position)
        stmt = stmt.values(position=self.model.position + delta)

        result = await self.session.execute(stmt)
        shifted = result.rowcount

        upper = "end" if to_position is None else to_position
        logger.debug(
            f"Shifted {shifted} {self.model.__tablename__} rows in {container_id}: "
            f"range=[{from_position}, {upper}], delta={delta:+d}"
        )
        return shifted

    async def positions(self, container_id: Union[UUID, str]) -> List[int]:
        """Get the stored positions of a container in ascending order."""
        result = await self.session.execute(
            select(self.model.position)
            .where(self._container == str(container_id))
            .order_by(self.model.position)
        )
        return list(result.scalars().all())

    async def is_contiguous(self, container_id: Union[UUID, str]) -> bool:
        """
        Check that the container's positions are exactly 0..n-1.

        Args:
            container_id: ID of the column or board

        Returns:
            True if there are no gaps and no duplicates
        """
        await self.session.flush()
        positions = await self.positions(container_id)
        return positions == list(range(len(positions)))

    async def normalize(self, container_id: Union[UUID, str]) -> int:
        """
        Rewrite the container's positions to 0..n-1, keeping current order.

        Repair tool for data written outside the engine; moves never need it.

        Args:
            container_id: ID of the column or board

        Returns:
            Number of records whose position changed
        """
        await self.lock(container_id)
        result = await self.session.execute(
            select(self.model)
            .where(self._container == str(container_id))
            .order_by(self.model.position, self.model.created_at, self.model.id)
        )
        changed = 0
        for idx, record in enumerate(result.scalars().all()):
            if record.position != idx:
                record.position = idx
                changed += 1
        await self.session.flush()

        if changed:
            logger.info(f"Normalized {changed} positions in {self.model.__tablename__} container {container_id}")
        return changed
