"""Host notifications for value changes.

Every save that changes the bound value produces one ``ValueChanged``
per host event name (``ntx-value-change`` then ``change``). Hosts
subscribe to forward them into the surrounding form. Delivery is
synchronous so a host sees the notification before ``save`` returns.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from approvers.events.types import HOST_EVENTS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValueChanged:
    """The repeater's bound value was replaced."""

    event_type: str
    value: str
    source: str = "approvers"
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


ValueHandler = Callable[[ValueChanged], object]
Unsubscribe = Callable[[], None]


class EventBus:
    """Synchronous fan-out of ``ValueChanged`` with a bounded history."""

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: dict[str, list[ValueHandler]] = defaultdict(list)
        self._history: list[ValueChanged] = []
        self._max_history = max_history

    def subscribe(self, event_type: str, handler: ValueHandler) -> Unsubscribe:
        """Register ``handler`` for one host event name.

        Returns a callable that removes the registration again.
        """
        if event_type not in HOST_EVENTS:
            raise ValueError(f"Unknown host event: {event_type!r}")
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, value: str, *, source: str = "approvers") -> list[ValueChanged]:
        """Announce a new bound value under every host event name, in order."""
        events = [ValueChanged(name, value, source) for name in HOST_EVENTS]
        for event in events:
            self._record(event)
            for handler in list(self._handlers.get(event.event_type, [])):
                try:
                    handler(event)
                except Exception as e:
                    logger.warning(
                        "Value handler %s failed for %s: %s",
                        getattr(handler, "__name__", handler), event.event_type, e,
                    )
        return events

    def recent_events(
        self, limit: int = 50, event_type: str | None = None
    ) -> list[ValueChanged]:
        events = self._history
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]

    def _record(self, event: ValueChanged) -> None:
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: -self._max_history]
