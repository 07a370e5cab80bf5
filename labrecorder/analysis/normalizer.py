"""
Time Normalizer / Stats Engine
Puts every series and event of a recording on one elapsed-seconds axis
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import EmptyRecordingError
from ..models import ChannelKind, MANUAL_MARK, RecordingMode
from .intervals import manual_marks, pair_intervals
from .loader import Recording, load_recording

logger = logging.getLogger(__name__)

# ARGB, semi-transparent; interval N is drawn with INTERVAL_PALETTE[N % 6]
INTERVAL_PALETTE: Tuple[Tuple[int, int, int, int], ...] = (
    (128, 128, 128, 128),
    (128, 128, 64, 64),
    (128, 64, 128, 64),
    (128, 64, 64, 128),
    (128, 128, 128, 64),
    (128, 128, 64, 128),
)

_UNITS = {
    ChannelKind.HR: 'BPM',
    ChannelKind.RR: 'ms',
}

_TITLES = {
    ChannelKind.HR: 'Heart Rate',
    ChannelKind.RR: 'RR Intervals',
}


@dataclass(frozen=True)
class ChannelStats:
    """
    Summary of one channel's raw values.

    mean is truncated toward zero, not rounded, to match the summary
    figures shown to users historically.
    """
    min: int
    max: int
    mean: int
    count: int


@dataclass(frozen=True)
class PointMarker:
    time_s: float
    kind: str


@dataclass(frozen=True)
class IntervalWindow:
    """Shaded [start_s, end_s) region; index counts intervals in closing order."""
    index: int
    start_s: float
    end_s: float
    color_index: int

    @property
    def label(self) -> str:
        return f"Interval {self.index + 1}"

    def color(self, palette: Sequence[Tuple[int, int, int, int]] = INTERVAL_PALETTE) -> Tuple[int, int, int, int]:
        return palette[self.color_index % len(palette)]


@dataclass(frozen=True)
class Markers:
    points: List[PointMarker]
    intervals: List[IntervalWindow]


def compute_stats(values) -> Optional[ChannelStats]:
    """
    min / max / truncated mean over raw values.

    Returns:
        ChannelStats, or None for an empty series.
    """
    data = np.asarray(values, dtype=np.int64)
    if data.size == 0:
        return None
    return ChannelStats(
        min=int(np.min(data)),
        max=int(np.max(data)),
        mean=int(np.mean(data)),
        count=int(data.size),
    )


def format_stats(stats: Optional[ChannelStats], channel: ChannelKind) -> str:
    """Render stats as the per-participant summary text."""
    title = _TITLES[channel]
    if stats is None:
        return f"{title}:\n  No data"
    unit = _UNITS[channel]
    return (
        f"{title}:\n"
        f"  Min: {stats.min} {unit}\n"
        f"  Max: {stats.max} {unit}\n"
        f"  Avg: {stats.mean} {unit}"
    )


class NormalizedRecording:
    """
    A recording on the normalized time axis

    Accessors used by chart rendering:
    - get_channel_series(slot, channel): [(seconds, value), ...] in file order
    - get_stats(slot, channel): ChannelStats or None
    - get_markers(): point markers and interval windows
    """

    def __init__(
        self,
        recording: Recording,
        origin_ms: int,
        series: Dict[Tuple[int, ChannelKind], pd.DataFrame],
        markers: Markers,
    ):
        self.recording = recording
        self.origin_ms = origin_ms
        self._series = series
        self._markers = markers
        self._stats: Dict[Tuple[int, ChannelKind], Optional[ChannelStats]] = {}

    @property
    def path(self) -> Path:
        return self.recording.path

    @property
    def mode(self) -> RecordingMode:
        return self.recording.mode

    @property
    def slots(self) -> List[int]:
        return list(self.recording.slots)

    @property
    def load_errors(self) -> list:
        return list(self.recording.load_errors)

    def get_channel_frame(self, slot: int, channel: ChannelKind) -> pd.DataFrame:
        """DataFrame[time_s, value]; empty for a missing or unreadable file."""
        frame = self._series.get((slot, channel))
        if frame is None:
            return pd.DataFrame({
                'time_s': pd.Series([], dtype=float),
                'value': pd.Series([], dtype=np.int64),
            })
        return frame.copy()

    def get_channel_series(self, slot: int, channel: ChannelKind) -> List[Tuple[float, int]]:
        frame = self._series.get((slot, channel))
        if frame is None:
            return []
        return [(float(t), int(v)) for t, v in zip(frame['time_s'], frame['value'])]

    def get_stats(self, slot: int, channel: ChannelKind) -> Optional[ChannelStats]:
        key = (slot, channel)
        if key not in self._stats:
            frame = self._series.get(key)
            self._stats[key] = compute_stats(frame['value'].to_numpy()) if frame is not None else None
        return self._stats[key]

    def get_markers(self) -> Markers:
        return self._markers

    def summary(self, slot: int) -> str:
        """Stats text for one participant, as printed by the CLI."""
        label = f"Participant {slot}" if self.mode is RecordingMode.GROUP else self.path.name
        parts = [label, '']
        for channel in (ChannelKind.HR, ChannelKind.RR):
            parts.append(format_stats(self.get_stats(slot, channel), channel))
            parts.append('')
        return '\n'.join(parts).rstrip()

    def __repr__(self):
        return f"<NormalizedRecording({self.path.name}, slots={self.slots}, origin={self.origin_ms})>"


class TimeNormalizer:
    """
    Converts a loaded Recording into a NormalizedRecording

    origin = earliest timestamp across every channel row and every event;
    time_s = (timestamp - origin) / 1000.
    """

    def __init__(self, palette: Sequence[Tuple[int, int, int, int]] = INTERVAL_PALETTE):
        if not palette:
            raise ValueError("palette must not be empty")
        self.palette = tuple(palette)

    @property
    def palette_size(self) -> int:
        return len(self.palette)

    def normalize(self, recording: Recording) -> NormalizedRecording:
        """
        Raises:
            EmptyRecordingError: no channel rows and no events.
        """
        origin = self._origin(recording)

        series = {}
        for key, frame in recording.channels.items():
            series[key] = pd.DataFrame({
                'time_s': (frame['timestamp'].to_numpy(dtype=np.int64) - origin) / 1000.0,
                'value': frame['value'].to_numpy(dtype=np.int64),
            })

        events = list(zip(
            (int(t) for t in recording.events['timestamp']),
            (str(k) for k in recording.events['event_type']),
        ))
        points = [PointMarker(self._seconds(t, origin), MANUAL_MARK) for t in manual_marks(events)]
        intervals = [
            IntervalWindow(
                index=interval.index,
                start_s=self._seconds(interval.start, origin),
                end_s=self._seconds(interval.end, origin),
                color_index=interval.index % self.palette_size,
            )
            for interval in pair_intervals(events)
        ]

        logger.info(
            f"✓ Normalized {recording.path.name}: origin {origin}, "
            f"{len(points)} marker(s), {len(intervals)} interval(s)"
        )
        return NormalizedRecording(recording, origin, series, Markers(points, intervals))

    @staticmethod
    def _origin(recording: Recording) -> int:
        minima = [int(frame['timestamp'].min()) for frame in recording.channels.values() if len(frame)]
        if len(recording.events):
            minima.append(int(recording.events['timestamp'].min()))
        if not minima:
            raise EmptyRecordingError(f"No data found in {recording.path}")
        return min(minima)

    @staticmethod
    def _seconds(timestamp: int, origin: int) -> float:
        return (timestamp - origin) / 1000.0


def analyze(path: Path, strict: bool = False) -> NormalizedRecording:
    """Load and normalize a recording directory in one step."""
    return TimeNormalizer().normalize(load_recording(path, strict=strict))
