"""
Post-commit delivery of board events.

Collaborators such as notifications, activity logs or project status sync
subscribe here. Delivery happens only after the move's transaction has
committed, each handler in its own background task, and a failing handler
is logged without affecting the move or the other handlers.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, Iterable, List, Set, Union

from taskboard.logging_config import get_logger
from taskboard.models import TaskMovedEvent

logger = get_logger(__name__)

EventHandler = Callable[[TaskMovedEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    """Routes TaskMovedEvent instances to subscribed handlers."""

    def __init__(self) -> None:
        self._handlers: List[EventHandler] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, handler: EventHandler) -> None:
        """
        Register a handler; plain callables and coroutine functions both work.

        Args:
            handler: Called with each TaskMovedEvent
        """
        if handler not in self._handlers:
            self._handlers.append(handler)
            logger.debug(f"Subscribed event handler: {getattr(handler, '__name__', handler)}")

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a previously registered handler, if present."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    @property
    def pending_count(self) -> int:
        """Number of deliveries still running."""
        return len(self._pending)

    def dispatch(self, events: Iterable[TaskMovedEvent]) -> int:
        """
        Schedule delivery of committed events to every handler.

        Must be called from inside a running event loop, after commit.

        Args:
            events: Events recorded by the committed transaction

        Returns:
            Number of deliveries scheduled
        """
        loop = asyncio.get_running_loop()
        scheduled = 0
        for event in events:
            for handler in list(self._handlers):
                task = loop.create_task(self._deliver(handler, event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                scheduled += 1
        if scheduled:
            logger.debug(f"Scheduled {scheduled} event deliveries")
        return scheduled

    async def _deliver(self, handler: EventHandler, event: TaskMovedEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Event handler {getattr(handler, '__name__', handler)} failed "
                f"for task {event.task_id}: {e}",
                exc_info=True
            )

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
