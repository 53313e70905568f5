"""
Tests for SubtaskAggregator - completion percentages from child statuses.
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from taskboard.database import TaskORM
from taskboard.models import TaskStatus
from taskboard.services.errors import TaskNotFoundError
from taskboard.services.subtask_aggregator import SubtaskAggregator
from taskboard.services.task_service import TaskService


class TestRecomputeCompletion:
    """Tests for single-task recomputation."""

    @pytest.mark.asyncio
    async def test_floor_of_done_ratio(self, db_session, board, make_tasks):
        """Test one done child of three gives 33, not 34."""
        (parent,) = await make_tasks(board["doing"].id, "Parent")
        await make_tasks(board["done"].id, "C1", parent_id=parent.id)
        await make_tasks(board["todo"].id, "C2", "C3", parent_id=parent.id)

        result = await SubtaskAggregator(db_session).recompute_completion(parent.id)

        assert result == 33

    @pytest.mark.asyncio
    async def test_only_done_counts(self, db_session, board, make_tasks):
        """Test children [Done, Done, InProgress, Todo] give 50."""
        (parent,) = await make_tasks(board["doing"].id, "Parent")
        await make_tasks(board["done"].id, "C1", "C2", parent_id=parent.id)
        c3, _ = await make_tasks(board["todo"].id, "C3", "C4", parent_id=parent.id)
        await TaskService(db_session).set_status(c3.id, TaskStatus.IN_PROGRESS)

        result = await SubtaskAggregator(db_session).recompute_completion(parent.id)

        assert result == 50
        assert (await TaskService(db_session).get_task(parent.id)).completion_percentage == 50

    @pytest.mark.asyncio
    async def test_no_children_keeps_value(self, db_session, board, make_tasks):
        """Test a childless task keeps its last percentage."""
        (task,) = await make_tasks(board["doing"].id, "Solo")
        await db_session.execute(
            update(TaskORM).where(TaskORM.id == str(task.id)).values(completion_percentage=40)
        )

        result = await SubtaskAggregator(db_session).recompute_completion(task.id)

        assert result is None
        assert (await TaskService(db_session).get_task(task.id)).completion_percentage == 40

    @pytest.mark.asyncio
    async def test_unknown_parent(self, db_session):
        with pytest.raises(TaskNotFoundError):
            await SubtaskAggregator(db_session).recompute_completion(uuid4())


class TestPropagate:
    """Tests for walking up the ancestor chain."""

    @pytest.mark.asyncio
    async def test_levels_walked(self, db_session, board, make_tasks):
        (root,) = await make_tasks(board["doing"].id, "Root")
        (mid,) = await make_tasks(board["doing"].id, "Mid", parent_id=root.id)
        (leaf,) = await make_tasks(board["doing"].id, "Leaf", parent_id=mid.id)
        aggregator = SubtaskAggregator(db_session)

        assert await aggregator.propagate(leaf.id) == 2
        assert await aggregator.propagate(leaf.id, max_levels=0) == 2
        assert await aggregator.propagate(leaf.id, max_levels=1) == 1
        assert await aggregator.propagate(root.id) == 0

    @pytest.mark.asyncio
    async def test_cycle_stops(self, db_session, board, make_tasks):
        """Test a corrupted parent cycle does not loop forever."""
        a, b = await make_tasks(board["doing"].id, "A", "B")
        await db_session.execute(
            update(TaskORM).where(TaskORM.id == str(a.id)).values(parent_id=str(b.id))
        )
        await db_session.execute(
            update(TaskORM).where(TaskORM.id == str(b.id)).values(parent_id=str(a.id))
        )

        assert await SubtaskAggregator(db_session).propagate(a.id) == 1
