"""
tests/core/test_events.py

Test cases for the in-process event bus.
Covers delivery to sync and async handlers, cancellation handles and
isolation of failing handlers.
"""

import pytest

from doit.core.events import EventBus


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_handlers() -> None:
    """Test that both plain and coroutine handlers receive the event."""
    bus = EventBus()
    received: list[str] = []

    async def async_handler(event: str) -> None:
        received.append(f"async:{event}")

    bus.subscribe("topic", lambda event: received.append(f"sync:{event}"))
    bus.subscribe("topic", async_handler)

    await bus.publish("topic", "hello")

    assert received == ["sync:hello", "async:hello"]


@pytest.mark.asyncio
async def test_cancel_stops_delivery_and_is_idempotent() -> None:
    """Test that a cancelled subscription no longer receives events."""
    bus = EventBus()
    received: list[int] = []
    subscription = bus.subscribe("topic", received.append)

    await bus.publish("topic", 1)
    subscription.cancel()
    subscription.cancel()
    await bus.publish("topic", 2)

    assert received == [1]
    assert subscription.active is False
    assert bus.handler_count("topic") == 0


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others() -> None:
    """Test that an exception in one handler is logged and the next still runs."""
    bus = EventBus()
    received: list[str] = []

    def broken(_event: str) -> None:
        raise RuntimeError("boom")

    bus.subscribe("topic", broken)
    bus.subscribe("topic", received.append)

    await bus.publish("topic", "event")

    assert received == ["event"]


@pytest.mark.asyncio
async def test_topics_are_isolated() -> None:
    """Test that events are only delivered to handlers of the same topic."""
    bus = EventBus()
    received: list[str] = []
    bus.subscribe(("collection", "tasks"), received.append)

    await bus.publish(("collection", "chats"), "chats")
    await bus.publish(("collection", "tasks"), "tasks")

    assert received == ["tasks"]
