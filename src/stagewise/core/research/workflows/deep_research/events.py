"""Event sinks for progress events.

The workflow publishes ``ProgressEvent`` objects; a sink decides where they
go. ``JsonLinesEventSink`` writes one JSON object per line (the CLI points it
at stdout), ``MemoryEventSink`` keeps them for inspection.
"""

from __future__ import annotations

import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

from stagewise.core.research.models.enums import EventType
from stagewise.core.research.models.events import ProgressEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Destination for progress events."""

    @abstractmethod
    def publish(self, event: ProgressEvent) -> None:
        """Deliver one event. Must not raise for delivery failures."""
        ...


class JsonLinesEventSink(EventSink):
    """Write each event as a single JSON line to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def publish(self, event: ProgressEvent) -> None:
        line = event.to_json_line()
        with self._lock:
            try:
                self._stream.write(line + "\n")
                self._stream.flush()
            except (OSError, ValueError) as e:
                # A closed consumer stream does not stop the research run
                logger.warning("Dropping progress event (%s): %s", event.event_type.value, e)


class MemoryEventSink(EventSink):
    """Keep published events in memory."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[ProgressEvent]:
        return [e for e in self.events if e.event_type == event_type]

    @property
    def percents(self) -> list[int]:
        return [e.progress.percent for e in self.events if e.progress is not None]


class CallbackEventSink(EventSink):
    """Forward events to a callable (e.g. a web socket or queue writer)."""

    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self._callback = callback

    def publish(self, event: ProgressEvent) -> None:
        try:
            self._callback(event)
        except Exception as e:
            logger.warning("Progress callback failed: %s", e)
