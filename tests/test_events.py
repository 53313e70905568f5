"""
Tests for EventDispatcher - post-commit delivery of move events.
"""

from uuid import uuid4

import pytest

from taskboard.models import TaskMovedEvent, TaskStatus
from taskboard.services.events import EventDispatcher


def _event(**overrides) -> TaskMovedEvent:
    fields = dict(
        task_id=uuid4(),
        board_id=uuid4(),
        from_column_id=uuid4(),
        to_column_id=uuid4(),
        from_position=0,
        to_position=0,
        previous_status=TaskStatus.TODO,
        new_status=TaskStatus.IN_PROGRESS,
    )
    fields.update(overrides)
    return TaskMovedEvent(**fields)


class TestSubscriptions:
    """Tests for handler registration."""

    def test_subscribe_once(self):
        dispatcher = EventDispatcher()

        def handler(event):
            pass

        dispatcher.subscribe(handler)
        dispatcher.subscribe(handler)

        assert dispatcher.handler_count == 1

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()

        def handler(event):
            pass

        dispatcher.subscribe(handler)
        dispatcher.unsubscribe(handler)
        dispatcher.unsubscribe(handler)

        assert dispatcher.handler_count == 0


class TestDispatch:
    """Tests for event delivery."""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        dispatcher = EventDispatcher()
        received = []

        def sync_handler(event):
            received.append(("sync", event.task_id))

        async def async_handler(event):
            received.append(("async", event.task_id))

        dispatcher.subscribe(sync_handler)
        dispatcher.subscribe(async_handler)
        event = _event()

        scheduled = dispatcher.dispatch([event])
        await dispatcher.drain()

        assert scheduled == 2
        assert sorted(received) == [("async", event.task_id), ("sync", event.task_id)]
        assert dispatcher.pending_count == 0

    @pytest.mark.asyncio
    async def test_delivery_is_deferred(self):
        """Test that handlers run in background tasks, not inside dispatch()."""
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(received.append)

        dispatcher.dispatch([_event()])
        assert received == []

        await dispatcher.drain()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self, caplog):
        """Test a raising handler is logged and the others still run."""
        dispatcher = EventDispatcher()
        received = []

        def broken(event):
            raise RuntimeError("notification service down")

        dispatcher.subscribe(broken)
        dispatcher.subscribe(received.append)

        dispatcher.dispatch([_event(), _event()])
        await dispatcher.drain()

        assert len(received) == 2
        assert "notification service down" in caplog.text

    @pytest.mark.asyncio
    async def test_no_handlers(self):
        dispatcher = EventDispatcher()

        assert dispatcher.dispatch([_event()]) == 0
        await dispatcher.drain()
