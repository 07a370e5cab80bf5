"""
Lab Recorder
Heart-rate and RR-interval recording for one or two participants over BLE

Sub-packages:
- coordinator: recording session, event log, central clock
- sensors.heart_rate: frame codec, device links, discovery
- analysis: offline loading, time normalization and statistics
"""

# coordinator is imported before sensors: the link module depends on its clock
from .coordinator import CentralClock, RecordingSession, RecordingSummary
from .errors import (
    EmptyRecordingError,
    LabRecorderError,
    LinkError,
    MalformedFrameError,
    NotRecordingError,
    ParseError,
    RecordingIOError,
    ValidationError,
)
from .models import ChannelKind, ConnectionState, Device, EventMark, RecordingMode, Sample, SampleKind
from .pipeline import LabRecorder, RecorderConfig

__all__ = [
    'CentralClock',
    'RecordingSession',
    'RecordingSummary',
    'EmptyRecordingError',
    'LabRecorderError',
    'LinkError',
    'MalformedFrameError',
    'NotRecordingError',
    'ParseError',
    'RecordingIOError',
    'ValidationError',
    'ChannelKind',
    'ConnectionState',
    'Device',
    'EventMark',
    'RecordingMode',
    'Sample',
    'SampleKind',
    'LabRecorder',
    'RecorderConfig',
]

__version__ = '1.0.0'
