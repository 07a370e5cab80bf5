"""
Central Clock System
Provides synchronized millisecond timestamps for device links and event marks
"""

import threading
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CentralClock:
    """
    Thread-safe central clock for recorder timestamps

    All rows written during a session take their time from one clock:
    - Thread-safe access (both device links and the control path call it)
    - Non-decreasing timestamps (a wall clock stepping backwards is held at the last value)
    - Millisecond precision, epoch based, matching the persisted CSV rows
    """

    def __init__(self, time_source: Optional[Callable[[], float]] = None):
        """
        Initialize central clock

        Args:
            time_source: Callable returning epoch seconds. Defaults to time.time;
                         tests inject a controllable source.
        """
        self._time_source = time_source or time.time
        self._lock = threading.Lock()
        self._last_timestamp: Optional[int] = None
        self._call_count = 0

        logger.debug("Central clock initialized")

    def now_ms(self) -> int:
        """
        Get current synchronized timestamp

        Returns:
            int: Current epoch time in milliseconds, never below a previous reading
        """
        with self._lock:
            current = int(self._time_source() * 1000)

            if self._last_timestamp is not None and current < self._last_timestamp:
                logger.debug(
                    f"Wall clock stepped back {self._last_timestamp - current} ms; holding timestamp"
                )
                current = self._last_timestamp

            self._last_timestamp = current
            self._call_count += 1

            return current

    def reset(self):
        """Forget the last reading, so the next one follows the time source again"""
        with self._lock:
            self._last_timestamp = None
            self._call_count = 0

    def get_stats(self) -> dict:
        """
        Get clock usage

        Returns:
            dict: Number of readings and the last millisecond timestamp handed out
        """
        with self._lock:
            return {
                'total_calls': self._call_count,
                'last_timestamp': self._last_timestamp,
            }

    def __repr__(self):
        return f"<CentralClock(calls={self._call_count})>"
