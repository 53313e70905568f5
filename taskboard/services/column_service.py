"""
Column service for the taskboard engine.

Provides board creation with default lanes and CRUD for columns. Column
positions on a board stay contiguous across inserts and deletes.
"""

from typing import List, Optional, Union
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import BoardORM, ColumnORM
from taskboard.logging_config import get_logger
from taskboard.models import Board, Column
from taskboard.services.errors import ColumnNotEmptyError, InvalidPositionError
from taskboard.services.position_shifter import PositionShifter
from taskboard.services.stores import BoardStore, ColumnStore, TaskStore
from taskboard.utils.datetime_utils import utc_now

logger = get_logger(__name__)

# Sentinel distinguishing "leave capacity alone" from "clear capacity"
_UNSET = object()


class ColumnService:
    """
    Service layer for boards and their columns.

    Handles creation, retrieval, updating, and deletion of columns, as well
    as initialization of the default workflow lanes of a new board.
    """

    # Default lanes for a new board, left to right
    DEFAULT_COLUMNS = [
        {"name": "To Do", "is_terminal": False},
        {"name": "In Progress", "is_terminal": False},
        {"name": "In Review", "is_terminal": False},
        {"name": "Done", "is_terminal": True},
    ]

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the column service.

        Args:
            session: Active database session for operations
        """
        self.session = session
        self.boards = BoardStore(session)
        self.columns = ColumnStore(session)
        self.tasks = TaskStore(session)
        self.shifter = PositionShifter.for_columns(session)

    async def create_board(self, name: str, with_default_columns: bool = True) -> Board:
        """
        Create a board, optionally with the default lanes.

        Args:
            name: Board name
            with_default_columns: Create To Do / In Progress / In Review / Done

        Returns:
            Created Board model
        """
        board = Board(name=name)
        await self.boards.save(
            BoardORM(id=str(board.id), name=board.name, created_at=board.created_at)
        )

        if with_default_columns:
            for default in self.DEFAULT_COLUMNS:
                await self.create_column(board.id, default["name"], is_terminal=default["is_terminal"])

        logger.info(f"Created board: id={board.id}, name='{name}', default_columns={with_default_columns}")
        return board

    async def create_column(
        self,
        board_id: Union[UUID, str],
        name: str,
        is_terminal: bool = False,
        capacity: Optional[int] = None,
        position: Optional[int] = None,
    ) -> Column:
        """
        Create a column on a board.

        Args:
            board_id: UUID of the board
            name: Column name
            is_terminal: Whether tasks in this column are finished
            capacity: Optional advisory WIP limit
            position: Slot to insert at; None appends after the last column

        Returns:
            Created Column model

        Raises:
            BoardNotFoundError: If board does not exist
            InvalidPositionError: If position is out of range
        """
        try:
            logger.debug(f"Creating column: name='{name}', board_id={board_id}, position={position}")

            await self.shifter.lock(board_id)
            count = await self.columns.count_by_board(board_id)

            if position is None:
                position = count
            elif position < 0 or position > count:
                raise InvalidPositionError(f"Column position {position} out of range [0, {count}]")
            else:
                await self.shifter.shift_from(board_id, position, +1)

            column = Column(
                id=uuid4(),
                board_id=UUID(str(board_id)),
                name=name,
                position=position,
                is_terminal=is_terminal,
                capacity=capacity,
            )
            await self.columns.save(
                ColumnORM(
                    id=str(column.id),
                    board_id=str(column.board_id),
                    name=column.name,
                    position=column.position,
                    is_terminal=column.is_terminal,
                    capacity=column.capacity,
                    created_at=column.created_at,
                )
            )

            logger.info(f"Created column: id={column.id}, name='{name}', position={position}")
            return column
        except InvalidPositionError:
            # Already described, just re-raise
            raise
        except Exception as e:
            logger.error(f"Failed to create column: {e}", exc_info=True)
            raise

    async def get_board_columns(self, board_id: Union[UUID, str]) -> List[Column]:
        """
        Retrieve the columns of a board in display order with task counts.

        Raises:
            BoardNotFoundError: If board does not exist
        """
        await self.boards.get_or_raise(board_id)
        return [
            ColumnStore.to_model(c, task_count=await self.tasks.count_by_column(c.id))
            for c in await self.columns.list_by_board(board_id)
        ]

    async def get_column(self, column_id: Union[UUID, str]) -> Column:
        """
        Retrieve a single column with its task count.

        Raises:
            ColumnNotFoundError: If column does not exist
        """
        column_orm = await self.columns.get_or_raise(column_id)
        return ColumnStore.to_model(column_orm, task_count=await self.tasks.count_by_column(column_id))

    async def update_column(
        self,
        column_id: Union[UUID, str],
        name: Optional[str] = None,
        capacity=_UNSET,
    ) -> Column:
        """
        Rename a column or change its WIP limit.

        Args:
            column_id: UUID of the column
            name: New name, if changing
            capacity: New capacity; pass None to remove the limit

        Returns:
            Updated Column model

        Raises:
            ColumnNotFoundError: If column does not exist
        """
        column_orm = await self.columns.get_or_raise(column_id)
        task_count = await self.tasks.count_by_column(column_id)

        changes = {}
        if name is not None:
            changes["name"] = name
        if capacity is not _UNSET:
            changes["capacity"] = capacity

        # Validate through the Pydantic model before touching the row
        current = ColumnStore.to_model(column_orm)
        column = Column.model_validate(
            {**current.model_dump(exclude={"task_count", "is_over_capacity"}), **changes}
        )
        column.update_counts(task_count)

        column_orm.name = column.name
        column_orm.capacity = column.capacity
        await self.columns.save(column_orm)

        logger.info(f"Updated column: id={column_id}, name='{column_orm.name}', capacity={column_orm.capacity}")
        return column

    async def delete_column(self, column_id: Union[UUID, str]) -> None:
        """
        Delete an empty column and close the gap on its board.

        Args:
            column_id: UUID of the column to delete

        Raises:
            ColumnNotFoundError: If column does not exist
            ColumnNotEmptyError: If the column still holds tasks
        """
        column_orm = await self.columns.get_or_raise(column_id)
        board_id = column_orm.board_id

        await self.shifter.lock(board_id)
        task_count = await self.tasks.count_by_column(column_id)
        if task_count > 0:
            logger.warning(f"Column deletion refused - {task_count} tasks in column {column_id}")
            raise ColumnNotEmptyError(
                f"Column {column_id} still holds {task_count} tasks; move them first"
            )

        await self.session.refresh(column_orm)
        position = column_orm.position
        await self.columns.delete(column_orm)
        await self.shifter.shift_from(board_id, position + 1, -1)

        logger.info(f"Deleted column: id={column_id}, board={board_id}, position={position}")
