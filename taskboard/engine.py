"""
Transactional entry point for the taskboard engine.

KanbanEngine is what a service layer calls. Each public method runs in one
database transaction; on a write conflict the whole operation is re-run
from a fresh session with exponential backoff, and events recorded by the
operation are dispatched only once its transaction has committed.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar, Union
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from taskboard.config import Config
from taskboard.database import DatabaseManager
from taskboard.logging_config import get_logger
from taskboard.models import Board, Column, Task, TaskMovedEvent, TaskStatus
from taskboard.services.board_reorder import BoardReorder
from taskboard.services.column_service import ColumnService
from taskboard.services.errors import ConcurrencyConflictError
from taskboard.services.events import EventDispatcher
from taskboard.services.move_coordinator import MoveCoordinator
from taskboard.services.position_shifter import PositionShifter
from taskboard.services.status_policy import StatusPolicy, reconcile_status
from taskboard.services.task_service import TaskService

logger = get_logger(__name__)

T = TypeVar("T")
EntityId = Union[UUID, str]

# SQLSTATE codes for serialization failure and deadlock
_CONFLICT_SQLSTATES = {"40001", "40P01"}
_CONFLICT_MESSAGES = ("database is locked", "database table is locked", "could not serialize", "deadlock")


def is_write_conflict(exc: BaseException) -> bool:
    """
    Decide whether a storage error means "re-run the whole operation".

    Args:
        exc: Exception raised while running or committing a transaction

    Returns:
        True for conflicts, False for errors that must surface unchanged
    """
    if isinstance(exc, (ConcurrencyConflictError, StaleDataError)):
        return True
    if isinstance(exc, OperationalError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return True
        message = str(orig).lower()
        return any(fragment in message for fragment in _CONFLICT_MESSAGES)
    return False


class UnitOfWork:
    """State collected by one attempt of one engine operation."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.events: List[TaskMovedEvent] = []
        self.touched_columns: Set[str] = set()
        self.touched_boards: Set[str] = set()


class KanbanEngine:
    """
    Runs board operations as retried, atomic transactions.

    Example:
        engine = KanbanEngine(db_manager)
        engine.dispatcher.subscribe(notify_assignees)
        task = await engine.move_task(task_id, done_column_id)
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        config: Optional[Config] = None,
        dispatcher: Optional[EventDispatcher] = None,
        status_policy: StatusPolicy = reconcile_status,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        aggregation_depth: Optional[int] = None,
        verify_positions: Optional[bool] = None,
        sleep_func: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the engine.

        Explicit keyword arguments win over values read from config.

        Args:
            db_manager: Initialized DatabaseManager
            config: Config to read [engine] settings from (default: Config())
            dispatcher: EventDispatcher for post-commit events
            status_policy: Status reconciliation function for moves
            max_retries: Re-runs allowed after a write conflict
            retry_base_delay: First backoff delay in seconds
            aggregation_depth: Ancestor generations refreshed (0: all)
            verify_positions: Check touched containers before commit
            sleep_func: Injectable sleep for tests
            rng: Injectable Random for deterministic jitter
        """
        settings = (config or Config()).get_engine_config()
        self.db_manager = db_manager
        self.dispatcher = dispatcher or EventDispatcher()
        self.status_policy = status_policy
        self.max_retries = settings["max_retries"] if max_retries is None else max_retries
        self.retry_base_delay = (
            settings["retry_base_delay"] if retry_base_delay is None else retry_base_delay
        )
        depth = settings["aggregation_depth"] if aggregation_depth is None else aggregation_depth
        self.aggregation_depth = depth or None
        self.verify_positions = (
            settings["verify_positions"] if verify_positions is None else verify_positions
        )
        self._sleep = sleep_func or asyncio.sleep
        self._rng = rng or random.Random()

    # ==============================================================================
    # TRANSACTION RUNNER
    # ==============================================================================

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with 50-150% jitter."""
        delay = self.retry_base_delay * (2 ** attempt)
        return delay * (0.5 + self._rng.random())

    async def _run(self, name: str, operation: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        """
        Run an operation in a transaction, re-running it on write conflicts.

        Args:
            name: Operation name for logging
            operation: Coroutine function receiving a fresh UnitOfWork

        Returns:
            The operation's result

        Raises:
            ConcurrencyConflictError: If conflicts persist past max_retries
        """
        attempt = 0
        while True:
            try:
                async with self.db_manager.get_session() as session:
                    uow = UnitOfWork(session)
                    result = await operation(uow)
                    if self.verify_positions:
                        await self._verify(uow)
                break
            except Exception as e:
                if not is_write_conflict(e):
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"{name} failed after {attempt + 1} attempts: {e}")
                    if isinstance(e, ConcurrencyConflictError):
                        raise
                    raise ConcurrencyConflictError(f"{name} hit a write conflict: {e}") from e
                delay = self._backoff_delay(attempt)
                attempt += 1
                logger.warning(
                    f"{name} write conflict, retrying from a fresh read "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}) in {delay:.3f}s: {e}"
                )
                await self._sleep(delay)

        if uow.events:
            self.dispatcher.dispatch(uow.events)
        return result

    async def _verify(self, uow: UnitOfWork) -> None:
        """Raise ConcurrencyConflictError if a touched container lost contiguity."""
        task_shifter = PositionShifter.for_tasks(uow.session)
        for column_id in uow.touched_columns:
            if not await task_shifter.is_contiguous(column_id):
                raise ConcurrencyConflictError(f"Task positions in column {column_id} are not contiguous")
        column_shifter = PositionShifter.for_columns(uow.session)
        for board_id in uow.touched_boards:
            if not await column_shifter.is_contiguous(board_id):
                raise ConcurrencyConflictError(f"Column positions on board {board_id} are not contiguous")

    # ==============================================================================
    # MOVES
    # ==============================================================================

    async def move_task(
        self,
        task_id: EntityId,
        target_column_id: EntityId,
        target_position: Optional[int] = None,
    ) -> Task:
        """
        Move a task to a column and slot. See MoveCoordinator.move_task.
        """
        async def operation(uow: UnitOfWork) -> Task:
            coordinator = MoveCoordinator(
                uow.session,
                status_policy=self.status_policy,
                aggregation_depth=self.aggregation_depth,
            )
            task = await coordinator.move_task(task_id, target_column_id, target_position)
            uow.events.extend(coordinator.events)
            for event in coordinator.events:
                uow.touched_columns.update({str(event.from_column_id), str(event.to_column_id)})
            return task

        return await self._run("move_task", operation)

    async def reorder_column(
        self,
        board_id: EntityId,
        column_id: EntityId,
        new_position: int,
    ) -> List[Column]:
        """
        Move a column to a new slot. See BoardReorder.reorder_column.
        """
        async def operation(uow: UnitOfWork) -> List[Column]:
            uow.touched_boards.add(str(board_id))
            return await BoardReorder(uow.session).reorder_column(board_id, column_id, new_position)

        return await self._run("reorder_column", operation)

    # ==============================================================================
    # BOARD AND COLUMN LIFECYCLE
    # ==============================================================================

    async def create_board(self, name: str, with_default_columns: bool = True) -> Board:
        async def operation(uow: UnitOfWork) -> Board:
            return await ColumnService(uow.session).create_board(name, with_default_columns)

        return await self._run("create_board", operation)

    async def create_column(
        self,
        board_id: EntityId,
        name: str,
        is_terminal: bool = False,
        capacity: Optional[int] = None,
        position: Optional[int] = None,
    ) -> Column:
        async def operation(uow: UnitOfWork) -> Column:
            uow.touched_boards.add(str(board_id))
            return await ColumnService(uow.session).create_column(
                board_id, name, is_terminal=is_terminal, capacity=capacity, position=position
            )

        return await self._run("create_column", operation)

    async def update_column(self, column_id: EntityId, **changes) -> Column:
        async def operation(uow: UnitOfWork) -> Column:
            return await ColumnService(uow.session).update_column(column_id, **changes)

        return await self._run("update_column", operation)

    async def delete_column(self, column_id: EntityId) -> None:
        async def operation(uow: UnitOfWork) -> None:
            service = ColumnService(uow.session)
            column = await service.get_column(column_id)
            uow.touched_boards.add(str(column.board_id))
            await service.delete_column(column_id)

        await self._run("delete_column", operation)

    async def get_board_columns(self, board_id: EntityId) -> List[Column]:
        async def operation(uow: UnitOfWork) -> List[Column]:
            return await ColumnService(uow.session).get_board_columns(board_id)

        return await self._run("get_board_columns", operation)

    # ==============================================================================
    # TASK LIFECYCLE
    # ==============================================================================

    def _task_service(self, session: AsyncSession) -> TaskService:
        return TaskService(session, aggregation_depth=self.aggregation_depth)

    async def create_task(
        self,
        column_id: EntityId,
        title: str,
        parent_id: Optional[EntityId] = None,
        subtasks: Optional[List[str]] = None,
    ) -> Task:
        async def operation(uow: UnitOfWork) -> Task:
            service = self._task_service(uow.session)
            task = await service.create_task(column_id, title, parent_id=parent_id, subtasks=subtasks)
            uow.touched_columns.update(service.touched_columns)
            return task

        return await self._run("create_task", operation)

    async def update_task(self, task_id: EntityId, title: Optional[str] = None) -> Task:
        async def operation(uow: UnitOfWork) -> Task:
            return await self._task_service(uow.session).update_task(task_id, title=title)

        return await self._run("update_task", operation)

    async def delete_task(self, task_id: EntityId) -> int:
        async def operation(uow: UnitOfWork) -> int:
            service = self._task_service(uow.session)
            deleted = await service.delete_task(task_id)
            uow.touched_columns.update(service.touched_columns)
            return deleted

        return await self._run("delete_task", operation)

    async def set_status(self, task_id: EntityId, status: TaskStatus) -> Task:
        async def operation(uow: UnitOfWork) -> Task:
            return await self._task_service(uow.session).set_status(task_id, status)

        return await self._run("set_status", operation)

    async def get_task(self, task_id: EntityId) -> Task:
        async def operation(uow: UnitOfWork) -> Task:
            return await self._task_service(uow.session).get_task(task_id)

        return await self._run("get_task", operation)

    async def get_subtasks(self, parent_id: EntityId) -> List[Task]:
        async def operation(uow: UnitOfWork) -> List[Task]:
            return await self._task_service(uow.session).get_subtasks(parent_id)

        return await self._run("get_subtasks", operation)

    async def get_column_tasks(self, column_id: EntityId) -> List[Task]:
        async def operation(uow: UnitOfWork) -> List[Task]:
            return await self._task_service(uow.session).get_column_tasks(column_id)

        return await self._run("get_column_tasks", operation)

    async def repair_column_positions(self, column_id: EntityId) -> int:
        """
        Rewrite a column's task positions to 0..n-1, keeping their order.

        Returns:
            Number of tasks whose position changed
        """
        async def operation(uow: UnitOfWork) -> int:
            return await PositionShifter.for_tasks(uow.session).normalize(column_id)

        return await self._run("repair_column_positions", operation)
