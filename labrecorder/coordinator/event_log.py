"""
Event Log
Append-only timestamps.csv writer for user-marked events
"""

import logging
from pathlib import Path
from typing import Optional

from ..errors import ValidationError
from ..layout import EVENTS_HEADER
from ..models import EventMark
from .clock import CentralClock
from .writers import CsvRowWriter

logger = logging.getLogger(__name__)


def validate_event_kind(kind: str) -> str:
    """
    Check an event label before it is written as a CSV field.

    Raises:
        ValidationError: empty, or containing a comma or line break.
    """
    cleaned = (kind or '').strip()
    if not cleaned:
        raise ValidationError("Event type cannot be empty.")
    if ',' in cleaned or '\n' in cleaned or '\r' in cleaned:
        raise ValidationError(f"Event type '{cleaned}' must not contain commas or line breaks.")
    return cleaned


class EventLog:
    """
    Ordered (timestamp, event kind) log for one session.

    Each mark takes its timestamp from the central clock at the moment it
    is accepted, so rows are non-decreasing in time. Every row is flushed
    immediately. Not thread-safe on its own: the owning session serializes
    calls.
    """

    def __init__(self, path: Path, clock: CentralClock):
        self.path = Path(path)
        self.clock = clock
        self._writer = CsvRowWriter(self.path, EVENTS_HEADER, flush_each_row=True)

    @property
    def events_written(self) -> int:
        return self._writer.rows_written

    @property
    def is_open(self) -> bool:
        return self._writer.is_open

    def open(self):
        """Create timestamps.csv. Raises RecordingIOError on failure."""
        self._writer.open()

    def record(self, kind: str) -> EventMark:
        """
        Stamp and persist one event.

        Args:
            kind: Event label, already validated.

        Returns:
            The persisted EventMark.

        Raises:
            RecordingIOError: the row could not be written.
        """
        mark = EventMark(self.clock.now_ms(), kind)
        if not self._writer.append(mark.timestamp, mark.kind):
            logger.warning(f"Event log closed; '{kind}' not persisted")
        return mark

    def close(self):
        """Flush and close. Raises RecordingIOError on failure."""
        self._writer.close()

    def __repr__(self):
        return f"<EventLog({self.path}, events={self.events_written})>"


def open_event_log(path: Path, clock: CentralClock) -> Optional[EventLog]:
    """Open an event log, logging instead of raising on failure."""
    event_log = EventLog(path, clock)
    try:
        event_log.open()
    except Exception as e:
        logger.error(f"✗ Failed creating timestamp writer: {e}")
        return None
    return event_log
