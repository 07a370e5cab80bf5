"""
Recording Directory Layout
Where a session writes its files and what their headers look like

    <root>/
      SingleRecordings/<participantId>/{hr.csv, rr.csv, timestamps.csv}
      <groupId>/Participant_1/{hr.csv, rr.csv}
      <groupId>/Participant_2/{hr.csv, rr.csv}
      <groupId>/timestamps.csv
"""

from pathlib import Path

from .errors import ValidationError
from .models import ChannelKind, RecordingMode

SINGLE_RECORDINGS_DIR = 'SingleRecordings'
PARTICIPANT_DIR_PREFIX = 'Participant_'
EVENTS_FILE = 'timestamps.csv'

CHANNEL_FILES = {
    ChannelKind.HR: 'hr.csv',
    ChannelKind.RR: 'rr.csv',
}

CHANNEL_HEADERS = {
    ChannelKind.HR: ('timestamp', 'hr'),
    ChannelKind.RR: ('timestamp', 'rr_ms'),
}

EVENTS_HEADER = ('timestamp', 'event_type')


def validate_identifier(identifier: str, mode: RecordingMode) -> str:
    """
    Check a participant or group id before it becomes a directory name.

    Args:
        identifier: Caller supplied id, surrounding whitespace ignored.
        mode:       Recording mode the id is used for.

    Returns:
        The stripped identifier.

    Raises:
        ValidationError: empty, path-like, or colliding with the layout.
    """
    label = 'Group ID' if mode is RecordingMode.GROUP else 'Participant ID'
    cleaned = (identifier or '').strip()

    if not cleaned:
        raise ValidationError(f"{label} cannot be empty.")
    if cleaned in ('.', '..') or '/' in cleaned or '\\' in cleaned:
        raise ValidationError(f"{label} '{cleaned}' is not a valid directory name.")
    if ',' in cleaned or '\n' in cleaned or '\r' in cleaned:
        raise ValidationError(f"{label} '{cleaned}' must not contain commas or line breaks.")
    if mode is RecordingMode.GROUP and cleaned == SINGLE_RECORDINGS_DIR:
        raise ValidationError(f"{label} '{cleaned}' is reserved.")

    return cleaned


def recording_dir(root: Path, mode: RecordingMode, identifier: str) -> Path:
    """Directory holding one recording."""
    root = Path(root)
    if mode is RecordingMode.SINGLE:
        return root / SINGLE_RECORDINGS_DIR / identifier
    return root / identifier


def slot_dir(recording: Path, mode: RecordingMode, slot: int) -> Path:
    """Directory holding the channel files of one participant slot."""
    if mode is RecordingMode.SINGLE:
        return Path(recording)
    return Path(recording) / f"{PARTICIPANT_DIR_PREFIX}{slot}"


def channel_path(recording: Path, mode: RecordingMode, slot: int, channel: ChannelKind) -> Path:
    return slot_dir(recording, mode, slot) / CHANNEL_FILES[channel]


def events_path(recording: Path) -> Path:
    return Path(recording) / EVENTS_FILE
