"""
core/events.py

In-process publish/subscribe registry.
- Handlers are registered per topic (a string or an event class)
- Every registration returns a Subscription handle; cancel() is synchronous
  and idempotent
- A failing handler is logged and does not prevent delivery to the others
"""

import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]


class Subscription:
    """Handle returned by EventBus.subscribe; detaches the handler on cancel()."""

    def __init__(self, detach: Callable[[], None]) -> None:
        self._detach = detach
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._detach()


class EventBus:
    """
    Registry of topic handlers with explicit unsubscribe handles.
    """

    def __init__(self) -> None:
        # Mapping of topic to list of (registration token, handler)
        self._handlers: dict[Hashable, list[tuple[object, Handler]]] = {}

    def subscribe(self, topic: Hashable, handler: Handler) -> Subscription:
        """
        Registers a handler for a topic and returns its cancellation handle.
        """
        token = object()
        self._handlers.setdefault(topic, []).append((token, handler))
        logger.debug(f"[EVENTS] Handler registered for {topic!r}")
        return Subscription(lambda: self._remove(topic, token))

    def _remove(self, topic: Hashable, token: object) -> None:
        registrations = self._handlers.get(topic)
        if not registrations:
            return
        self._handlers[topic] = [entry for entry in registrations if entry[0] is not token]
        if not self._handlers[topic]:
            del self._handlers[topic]
        logger.debug(f"[EVENTS] Handler removed for {topic!r}")

    def handler_count(self, topic: Hashable) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, topic: Hashable, event: Any) -> None:
        """
        Delivers an event to every handler registered for the topic.
        """
        for _, handler in list(self._handlers.get(topic, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[EVENTS] Handler for {topic!r} failed: {e}", exc_info=True)
