"""
Activity Log
Bounded, subscribable record of recorder messages for a user interface
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, List

DEFAULT_CAPACITY = 100


class ActivityLog(logging.Handler):
    """
    Ring buffer of formatted log entries.

    Attach it to the 'labrecorder' logger and every message the recorder
    logs (connections, errors, marks) lands here as 'HH:MM:SS: message'.
    Once capacity is reached the oldest entry is evicted.

    Subscribers are called with each new entry on the thread that logged it.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, level=logging.INFO):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        super().__init__(level=level)
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()
        self._subscribers: List[Callable[[str], None]] = []

    def emit(self, record: logging.LogRecord):
        try:
            stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
            entry = f"{stamp}: {record.getMessage()}"
        except Exception:
            self.handleError(record)
            return

        with self._entries_lock:
            self._entries.append(entry)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(entry)
            except Exception:
                self.handleError(record)

    def entries(self) -> List[str]:
        """
        Snapshot of the buffer.

        Returns:
            Entries newest first.
        """
        with self._entries_lock:
            return list(reversed(self._entries))

    def subscribe(self, callback: Callable[[str], None]):
        with self._entries_lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str], None]):
        with self._entries_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def clear(self):
        with self._entries_lock:
            self._entries.clear()

    def __len__(self):
        with self._entries_lock:
            return len(self._entries)

    def __repr__(self):
        return f"<ActivityLog(entries={len(self)}/{self.capacity})>"
