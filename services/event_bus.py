"""
Domain Event Bus

Outbound domain events are handed to an injected bus instead of a
process-wide emitter. Sinks decide where events go: the log, an in-memory
list for tests, or a broker adapter later on.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

DRIVER_HIRED = 'DRIVER_HIRED'
DRIVER_RELEASED = 'DRIVER_RELEASED'
JOB_REQUEST_CREATED = 'JOB_REQUEST_CREATED'
JOB_REQUEST_STATUS_CHANGED = 'JOB_REQUEST_STATUS_CHANGED'
DRIVER_RATING_ADDED = 'DRIVER_RATING_ADDED'

EVENT_TYPES = frozenset({
    DRIVER_HIRED,
    DRIVER_RELEASED,
    JOB_REQUEST_CREATED,
    JOB_REQUEST_STATUS_CHANGED,
    DRIVER_RATING_ADDED,
})


@dataclass(frozen=True)
class DomainEvent:
    type: str
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'timestamp': self.timestamp.isoformat(),
            'payload': self.payload,
        }


class LoggingEventSink:
    """Writes every event to the application log"""

    def __init__(self, logger_name: str = 'events'):
        self.logger = logging.getLogger(logger_name)

    def handle(self, event: DomainEvent) -> None:
        self.logger.info(f"Domain event {event.type}", extra={'event': event.to_dict()})


class InMemoryEventSink:
    """Keeps published events in memory; used by tests and local tooling"""

    def __init__(self):
        self.events: List[DomainEvent] = []

    def handle(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[DomainEvent]:
        return [event for event in self.events if event.type == event_type]

    def clear(self) -> None:
        self.events.clear()


class DomainEventBus:
    """Fans published events out to every registered sink"""

    def __init__(self, sinks: Optional[List[Any]] = None):
        self.sinks = list(sinks) if sinks else []

    def publish(self, event_type: str, payload: Dict[str, Any]) -> DomainEvent:
        """
        Publish an event to all sinks.

        Args:
            event_type: One of the known domain event types
            payload: JSON-serializable event body

        Returns:
            DomainEvent: the published event
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown domain event type: {event_type}")

        event = DomainEvent(type=event_type, payload=payload)
        for sink in self.sinks:
            try:
                sink.handle(event)
            except Exception as e:
                # A failing sink must not undo a committed state change
                logger.error(f"Event sink {type(sink).__name__} failed for {event_type}: {str(e)}")
        return event
