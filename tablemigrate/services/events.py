"""Structured progress events emitted by the orchestrators."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of progress events."""
    PHASE_CHANGED = "phase_changed"
    ROW_STARTED = "row_started"
    ROW_FINISHED = "row_finished"
    CHUNK_STARTED = "chunk_started"
    CHUNK_FINISHED = "chunk_finished"


@dataclass
class MigrationEvent:
    """A single progress event."""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }


Subscriber = Callable[[MigrationEvent], None]


class EventEmitter:
    """
    Fan-out of progress events to subscribers.

    A failing subscriber is logged and never interrupts the run.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a callable that receives every event."""
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, event_type: EventType, **data: Any) -> MigrationEvent:
        """Build an event and deliver it to every subscriber."""
        event = MigrationEvent(type=event_type, data=data)
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception(f"Event subscriber failed on {event_type.value}")
        return event


def log_progress(event: MigrationEvent) -> None:
    """Subscriber that reports progress through the logging system."""
    data = event.data
    if event.type == EventType.PHASE_CHANGED:
        logger.info(f"Phase: {data.get('phase')}")
    elif event.type == EventType.ROW_STARTED:
        logger.info(f"Preparing row {data.get('position')}/{data.get('total')}: {data.get('row_id')}")
    elif event.type == EventType.ROW_FINISHED:
        if data.get("success"):
            logger.debug(f"Prepared row {data.get('row_id')}")
        else:
            logger.warning(f"Row {data.get('row_id')} failed: {data.get('error')}")
    elif event.type == EventType.CHUNK_STARTED:
        logger.info(f"Inserting chunk {data.get('chunk')}/{data.get('chunks')} ({data.get('size')} rows)")
    elif event.type == EventType.CHUNK_FINISHED:
        logger.info(
            f"Chunk {data.get('chunk')}/{data.get('chunks')}: "
            f"{data.get('succeeded')} inserted, {data.get('failed')} failed"
        )
