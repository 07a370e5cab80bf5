"""
Lab Recorder Analysis
Offline reading, time normalization and statistics for closed recordings
"""

from .intervals import ClosedInterval, manual_marks, pair_intervals
from .loader import Recording, load_recording
from .normalizer import (
    ChannelStats,
    INTERVAL_PALETTE,
    IntervalWindow,
    Markers,
    NormalizedRecording,
    PointMarker,
    TimeNormalizer,
    analyze,
    compute_stats,
    format_stats,
)

__all__ = [
    'ClosedInterval',
    'manual_marks',
    'pair_intervals',
    'Recording',
    'load_recording',
    'ChannelStats',
    'INTERVAL_PALETTE',
    'IntervalWindow',
    'Markers',
    'NormalizedRecording',
    'PointMarker',
    'TimeNormalizer',
    'analyze',
    'compute_stats',
    'format_stats',
]
