"""
Notification sinks for register domain events.

A sink is any callable taking a DomainEvent.  The facade hands events to
an EventDispatcher after the command's transaction has committed; sinks
therefore never see events for rolled-back work.  A sink that raises is
logged and skipped: it cannot change a command's outcome.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from cash_kernel.domain.events import DomainEvent
from cash_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationSink(Protocol):
    def __call__(self, event: DomainEvent) -> None: ...


class EventDispatcher:
    """Fan domain events out to registered sinks in registration order."""

    def __init__(self, sinks: Iterable[NotificationSink] = ()):
        self._sinks: list[NotificationSink] = list(sinks)

    def subscribe(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def unsubscribe(self, sink: NotificationSink) -> None:
        self._sinks.remove(sink)

    def dispatch(self, event: DomainEvent) -> None:
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                logger.exception(
                    "notification_sink_failed",
                    extra={
                        "event_type": event.event_type,
                        "sink": getattr(sink, "__name__", type(sink).__name__),
                    },
                )


class InMemorySink:
    """Collects events in a list.  Handy for tests and demos."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_cls: type) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_cls)]

    def clear(self) -> None:
        self.events.clear()
