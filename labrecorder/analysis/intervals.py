"""
Interval Pairing
Replays an event log into closed interval windows and point markers
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from ..models import INTERVAL_END, INTERVAL_START, MANUAL_MARK


@dataclass(frozen=True)
class ClosedInterval:
    """[start, end) in raw milliseconds. index counts intervals in closing order from 0."""
    index: int
    start: int
    end: int


def pair_intervals(events: Iterable[Tuple[int, str]]) -> List[ClosedInterval]:
    """
    Pair interval_start / interval_end events in file order.

    A single pending start is kept: a second start replaces the first,
    an end without a pending start is ignored, and a start still pending
    when the log ends produces nothing.
    """
    intervals = []
    pending = None
    for timestamp, kind in events:
        if kind == INTERVAL_START:
            pending = timestamp
        elif kind == INTERVAL_END and pending is not None:
            intervals.append(ClosedInterval(len(intervals), pending, timestamp))
            pending = None
    return intervals


def manual_marks(events: Iterable[Tuple[int, str]]) -> List[int]:
    """Timestamps of manual_mark events, in file order."""
    return [timestamp for timestamp, kind in events if kind == MANUAL_MARK]
