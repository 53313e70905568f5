"""
Completion aggregation over the parent/subtask hierarchy.

A parent's completion percentage is floor(100 * done_children / children),
counting direct children only. After a change, the recomputation walks up
the parent chain so grandparents see their children's new values.
"""

from typing import Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.logging_config import get_logger
from taskboard.services.stores import TaskStore
from taskboard.utils.datetime_utils import utc_now

logger = get_logger(__name__)


class SubtaskAggregator:
    """Recomputes parent completion percentages from child statuses."""

    def __init__(self, session: AsyncSession, task_store: Optional[TaskStore] = None) -> None:
        self.session = session
        self.tasks = task_store or TaskStore(session)

    async def recompute_completion(self, parent_task_id: Union[UUID, str]) -> Optional[int]:
        """
        Recompute one task's completion percentage from its direct children.

        A task without children keeps its last percentage.

        Args:
            parent_task_id: UUID of the parent task

        Returns:
            The new percentage, or None if the task has no children

        Raises:
            TaskNotFoundError: If the parent does not exist
        """
        parent_orm = await self.tasks.get_or_raise(parent_task_id)
        total, done = await self.tasks.child_counts(parent_task_id)
        if total == 0:
            return None

        percentage = (100 * done) // total
        if parent_orm.completion_percentage != percentage:
            parent_orm.completion_percentage = percentage
            parent_orm.updated_at = utc_now()
            await self.tasks.save(parent_orm)

        logger.debug(
            f"Completion recomputed: task_id={parent_task_id}, "
            f"done={done}, total={total}, percentage={percentage}"
        )
        return percentage

    async def propagate(
        self,
        task_id: Union[UUID, str],
        max_levels: Optional[int] = None
    ) -> int:
        """
        Refresh the ancestors of a task, nearest first.

        Args:
            task_id: UUID of the task whose ancestors need refreshing
            max_levels: Number of ancestor generations to refresh; None or 0
                        walks until a task without parent. 1 refreshes only
                        the direct parent.

        Returns:
            Number of ancestors recomputed
        """
        task_orm = await self.tasks.get_or_raise(task_id)
        current = task_orm.parent_id
        seen = {task_orm.id}
        levels = 0

        while current is not None:
            if max_levels and levels >= max_levels:
                break
            if current in seen:
                logger.warning(f"Parent cycle detected at task {current}, stopping propagation")
                break
            seen.add(current)

            await self.recompute_completion(current)
            levels += 1

            parent_orm = await self.tasks.get_or_raise(current)
            current = parent_orm.parent_id

        return levels
