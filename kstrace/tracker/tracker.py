"""Tracker implementation for recording run lifecycle events."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import TraceEvent

logger = get_logger(__name__)


class ITracker(Protocol):
    """Recording TraceEvents for one run."""

    def track(self, event_type: str, actor: str, data: dict) -> TraceEvent:
        """Create TraceEvent, keep it in the journal and log it."""
        ...

    def events(
        self, event_type: str | None = None, actor: str | None = None
    ) -> list[TraceEvent]:
        """Get recorded events, optionally filtered."""
        ...


class Tracker:
    """In-memory journal of run lifecycle events, mirrored to the log."""

    def __init__(self):
        self._events: list[TraceEvent] = []

    def track(self, event_type: str, actor: str, data: dict) -> TraceEvent:
        """Create TraceEvent, keep it in the journal and log it."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        self._events.append(trace_event)
        logger.debug("%s: %s", actor, event_type, extra={"context": data})
        return trace_event

    def events(
        self, event_type: str | None = None, actor: str | None = None
    ) -> list[TraceEvent]:
        """Get recorded events in creation order, optionally filtered."""
        return [
            event
            for event in self._events
            if (event_type is None or event.event_type == event_type)
            and (actor is None or event.actor == actor)
        ]

    def clear(self) -> None:
        """Drop all recorded events."""
        self._events.clear()
