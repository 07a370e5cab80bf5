"""
Lab Recorder Errors
Exception taxonomy shared across the recorder
"""

from typing import Optional


class LabRecorderError(Exception):
    """Base class for all recorder errors."""


class ValidationError(LabRecorderError, ValueError):
    """A required identifier or label is missing or unusable."""


class RecordingIOError(LabRecorderError, OSError):
    """A recording directory or file could not be created, written or closed."""


class NotRecordingError(LabRecorderError, RuntimeError):
    """An event mark was attempted while no session is active."""


class MalformedFrameError(LabRecorderError, ValueError):
    """A heart-rate notification payload could not be decoded."""


class EmptyRecordingError(LabRecorderError, ValueError):
    """A recording holds no rows in any channel or in the event log."""


class ParseError(LabRecorderError, ValueError):
    """
    A persisted file could not be parsed.

    Args:
        message: Human readable reason.
        path:    File that failed to load.
        line:    1-based line number of the offending row, if known.
    """

    def __init__(self, message: str, path=None, line: Optional[int] = None):
        self.path = path
        self.line = line
        location = str(path) if path is not None else '<unknown>'
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"{location}: {message}")


class LinkError(LabRecorderError):
    """
    Connection, discovery or subscription failure on a device link.

    Never raised out of a DeviceLink; it travels on the StateChanged
    event that moves the link into the Error state.
    """

    def __init__(self, message: str, slot: Optional[int] = None, address: Optional[str] = None):
        self.slot = slot
        self.address = address
        super().__init__(message)
