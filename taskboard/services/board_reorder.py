"""
Column reordering on a board.

Uses the same bounded shift as a same-column task move, applied to the
columns of a board instead of the tasks of a column.
"""

from typing import List, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.logging_config import get_logger
from taskboard.models import Column
from taskboard.services.errors import InvalidArgumentError, InvalidPositionError
from taskboard.services.position_shifter import PositionShifter
from taskboard.services.stores import BoardStore, ColumnStore, TaskStore

logger = get_logger(__name__)


class BoardReorder:
    """Moves a column to a new slot among its board's columns."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.boards = BoardStore(session)
        self.columns = ColumnStore(session)
        self.tasks = TaskStore(session)
        self.shifter = PositionShifter.for_columns(session)

    async def reorder_column(
        self,
        board_id: Union[UUID, str],
        column_id: Union[UUID, str],
        new_position: int,
    ) -> List[Column]:
        """
        Move a column to new_position and return the board's columns in order.

        Args:
            board_id: UUID of the board
            column_id: UUID of the column to move
            new_position: Destination slot (0-based)

        Returns:
            All columns of the board ordered by position, with task counts

        Raises:
            BoardNotFoundError: If the board does not exist
            ColumnNotFoundError: If the column does not exist
            InvalidArgumentError: If the column is not on this board
            InvalidPositionError: If new_position is out of range
        """
        await self.boards.get_or_raise(board_id)
        column_orm = await self.columns.get_or_raise(column_id)
        if column_orm.board_id != str(board_id):
            raise InvalidArgumentError(
                f"Column {column_id} does not belong to board {board_id}"
            )

        await self.shifter.lock(board_id)
        await self.session.refresh(column_orm)

        count = await self.columns.count_by_board(board_id)
        if new_position < 0 or new_position >= count:
            raise InvalidPositionError(
                f"Column position {new_position} out of range [0, {count - 1}]"
            )

        old_position = column_orm.position
        if new_position != old_position:
            if new_position < old_position:
                await self.shifter.shift_range(board_id, new_position, old_position - 1, +1)
            else:
                await self.shifter.shift_range(board_id, old_position + 1, new_position, -1)
            column_orm.position = new_position
            await self.columns.save(column_orm)
            logger.info(
                f"Column reordered: id={column_id}, board={board_id}, "
                f"position {old_position} -> {new_position}"
            )
        else:
            logger.debug(f"Column {column_id} already at position {new_position}")

        ordered = await self.columns.list_by_board(board_id)
        return [
            ColumnStore.to_model(c, task_count=await self.tasks.count_by_column(c.id))
            for c in ordered
        ]
