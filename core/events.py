"""
Event types and EventBus protocol.

The EventBus is an abstract interface the client uses to publish session and
diagnostics events. Hosts plug in their own implementation; NullEventBus
discards everything.
"""

from typing import Any, Protocol

from pydantic import BaseModel

# Event types
SESSION_STARTING = "session.starting"
SESSION_RUNNING = "session.running"
SESSION_STOPPED = "session.stopped"
SESSION_FAILED = "session.failed"
DIAGNOSTICS_PUBLISHED = "diagnostics.published"


class Event(BaseModel):
    """Domain event that can be published to subscribers."""

    type: str
    properties: dict[str, Any]


class EventBus(Protocol):
    """Abstract interface for publishing events."""

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        ...


class NullEventBus:
    """No-op EventBus implementation."""

    async def publish(self, event: Event) -> None:
        """Discard the event."""
        pass


class RecordingEventBus:
    """EventBus that keeps every published event in memory."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]
