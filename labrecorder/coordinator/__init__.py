"""
Lab Recorder Coordinator
Recording lifecycle, event marks and the shared wall clock
"""

from .clock import CentralClock
from .event_log import EventLog
from .session import RecordingSession, RecordingSummary

__all__ = [
    'CentralClock',
    'EventLog',
    'RecordingSession',
    'RecordingSummary',
]
