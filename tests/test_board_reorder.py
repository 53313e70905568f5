"""
Tests for BoardReorder - moving columns among a board's columns.
"""

from uuid import uuid4

import pytest

from taskboard.services.board_reorder import BoardReorder
from taskboard.services.errors import (
    BoardNotFoundError,
    ColumnNotFoundError,
    InvalidArgumentError,
    InvalidPositionError,
)


def _names(columns):
    return [c.name for c in columns]


class TestReorderColumn:
    """Tests for column reordering."""

    @pytest.mark.asyncio
    async def test_move_left(self, db_session, board):
        board_id = board["board"].id

        columns = await BoardReorder(db_session).reorder_column(board_id, board["done"].id, 1)

        assert _names(columns) == ["To Do", "Done", "In Progress", "In Review"]
        assert [c.position for c in columns] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_move_right(self, db_session, board):
        board_id = board["board"].id

        columns = await BoardReorder(db_session).reorder_column(board_id, board["todo"].id, 2)

        assert _names(columns) == ["In Progress", "In Review", "To Do", "Done"]
        assert [c.position for c in columns] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_same_position(self, db_session, board):
        columns = await BoardReorder(db_session).reorder_column(
            board["board"].id, board["review"].id, 2
        )

        assert _names(columns) == ["To Do", "In Progress", "In Review", "Done"]

    @pytest.mark.asyncio
    async def test_task_counts_attached(self, db_session, board, make_tasks):
        await make_tasks(board["doing"].id, "A", "B")

        columns = await BoardReorder(db_session).reorder_column(
            board["board"].id, board["doing"].id, 0
        )

        assert columns[0].name == "In Progress"
        assert columns[0].task_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("position", [-1, 4])
    async def test_out_of_range(self, db_session, board, position):
        with pytest.raises(InvalidPositionError):
            await BoardReorder(db_session).reorder_column(
                board["board"].id, board["todo"].id, position
            )

    @pytest.mark.asyncio
    async def test_column_from_other_board(self, db_session, board, other_board):
        with pytest.raises(InvalidArgumentError):
            await BoardReorder(db_session).reorder_column(
                board["board"].id, other_board["todo"].id, 0
            )

    @pytest.mark.asyncio
    async def test_unknown_column(self, db_session, board):
        with pytest.raises(ColumnNotFoundError):
            await BoardReorder(db_session).reorder_column(board["board"].id, uuid4(), 0)

    @pytest.mark.asyncio
    async def test_unknown_board(self, db_session, board):
        """Test an unknown board id is reported before the column is checked."""
        with pytest.raises(BoardNotFoundError):
            await BoardReorder(db_session).reorder_column(uuid4(), board["todo"].id, 0)

    @pytest.mark.asyncio
    async def test_unknown_board_and_column(self, db_session, board):
        with pytest.raises(BoardNotFoundError):
            await BoardReorder(db_session).reorder_column(uuid4(), uuid4(), 0)
