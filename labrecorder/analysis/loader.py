"""
Recording Loader
Reads a closed recording's CSV files back into memory for analysis

Files are parsed strictly: the header must match exactly and every row must
have two fields of the expected type. A bad row fails the whole file; rows
read before it are discarded.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import ParseError
from ..layout import (
    CHANNEL_FILES,
    CHANNEL_HEADERS,
    EVENTS_FILE,
    EVENTS_HEADER,
    PARTICIPANT_DIR_PREFIX,
)
from ..models import ChannelKind, RecordingMode

logger = logging.getLogger(__name__)

_INTEGER_PATTERN = r'[+-]?\d+'


def _empty_series() -> pd.DataFrame:
    return pd.DataFrame({
        'timestamp': pd.Series([], dtype=np.int64),
        'value': pd.Series([], dtype=np.int64),
    })


def _empty_events() -> pd.DataFrame:
    return pd.DataFrame({
        'timestamp': pd.Series([], dtype=np.int64),
        'event_type': pd.Series([], dtype=object),
    })


@dataclass
class Recording:
    """
    One recording as read from disk.

    Attributes:
        path:        Recording directory.
        mode:        SINGLE when channel files sit directly in the directory.
        slots:       Participant slots present on disk.
        channels:    (slot, channel) -> DataFrame[timestamp, value]; missing files are absent.
        events:      DataFrame[timestamp, event_type] in file order.
        load_errors: Files that failed to parse in lenient mode.
    """
    path: Path
    mode: RecordingMode
    slots: List[int]
    channels: Dict[Tuple[int, ChannelKind], pd.DataFrame] = field(default_factory=dict)
    events: pd.DataFrame = field(default_factory=_empty_events)
    load_errors: List[ParseError] = field(default_factory=list)

    def series(self, slot: int, channel: ChannelKind) -> pd.DataFrame:
        """Rows for one channel; empty if the file was missing or unreadable."""
        frame = self.channels.get((slot, channel))
        return frame if frame is not None else _empty_series()

    @property
    def row_count(self) -> int:
        return sum(len(frame) for frame in self.channels.values()) + len(self.events)


def _read_table(path: Path, header: Sequence[str]) -> pd.DataFrame:
    """Read a two-column CSV as strings and check its header and row shape."""
    try:
        raw = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        raise ParseError(f"file is empty, expected header '{','.join(header)}'", path, 1)
    except pd.errors.ParserError as e:
        raise ParseError(f"wrong column count ({e})", path)

    if raw.shape[1] != len(header):
        raise ParseError(f"expected {len(header)} columns, found {raw.shape[1]}", path, 1)

    found = [str(value).strip() for value in raw.iloc[0]]
    if found != list(header):
        raise ParseError(f"expected header '{','.join(header)}', found '{','.join(found)}'", path, 1)

    body = raw.iloc[1:].reset_index(drop=True)
    missing = body.isna().any(axis=1).to_numpy()
    if missing.any():
        first = int(np.argmax(missing))
        raise ParseError(f"expected {len(header)} fields", path, first + 2)
    return body


def _integer_column(column: pd.Series, path: Path, name: str) -> np.ndarray:
    cleaned = column.astype(str).str.strip()
    valid = cleaned.str.fullmatch(_INTEGER_PATTERN, na=False).to_numpy(dtype=bool)
    if not valid.all():
        first = int(np.argmin(valid))
        raise ParseError(f"non-numeric {name} '{column.iloc[first]}'", path, first + 2)

    bounds = np.iinfo(np.int64)
    for index, value in enumerate(cleaned):
        if not bounds.min <= int(value) <= bounds.max:
            raise ParseError(f"{name} '{value}' out of range", path, index + 2)
    return cleaned.astype(np.int64).to_numpy()


def read_channel_file(path: Path, channel: ChannelKind) -> Optional[pd.DataFrame]:
    """
    Load hr.csv or rr.csv.

    Returns:
        DataFrame[timestamp, value] in file order, or None if the file does not exist.

    Raises:
        ParseError: bad header, wrong column count or non-numeric field.
    """
    path = Path(path)
    if not path.is_file():
        return None

    header = CHANNEL_HEADERS[channel]
    body = _read_table(path, header)
    return pd.DataFrame({
        'timestamp': _integer_column(body.iloc[:, 0], path, header[0]),
        'value': _integer_column(body.iloc[:, 1], path, header[1]),
    })


def read_events_file(path: Path) -> Optional[pd.DataFrame]:
    """
    Load timestamps.csv.

    Returns:
        DataFrame[timestamp, event_type] in file order, or None if the file does not exist.

    Raises:
        ParseError: bad header, wrong column count, non-numeric timestamp or empty event type.
    """
    path = Path(path)
    if not path.is_file():
        return None

    body = _read_table(path, EVENTS_HEADER)
    timestamps = _integer_column(body.iloc[:, 0], path, EVENTS_HEADER[0])
    kinds = body.iloc[:, 1].astype(str).str.strip()
    empty = (kinds == '').to_numpy()
    if empty.any():
        raise ParseError("empty event_type", path, int(np.argmax(empty)) + 2)
    return pd.DataFrame({'timestamp': timestamps, 'event_type': kinds.to_numpy(dtype=object)})


def detect_layout(path: Path) -> Tuple[RecordingMode, Dict[int, Path]]:
    """
    Work out whether a directory holds a group or a single recording.

    Returns:
        (mode, {slot: directory holding that slot's channel files})
    """
    path = Path(path)
    participant_dirs = {
        slot: path / f"{PARTICIPANT_DIR_PREFIX}{slot}"
        for slot in RecordingMode.GROUP.slots
    }
    present = {slot: d for slot, d in participant_dirs.items() if d.is_dir()}
    if present:
        return RecordingMode.GROUP, present
    return RecordingMode.SINGLE, {1: path}


def load_recording(path: Path, strict: bool = False) -> Recording:
    """
    Load every channel file and the event log of one recording.

    A missing channel file leaves that series empty. A file that fails to
    parse is logged and recorded in load_errors, or re-raised when strict.

    Args:
        path:   Recording directory (group directory or single participant directory).
        strict: Re-raise the first ParseError instead of collecting it.

    Raises:
        FileNotFoundError: the directory does not exist.
        ParseError:        a file failed to parse and strict is set.
    """
    path = Path(path)
    if not path.is_dir():
        raise FileNotFoundError(f"Recording directory not found: {path}")

    mode, slot_dirs = detect_layout(path)
    recording = Recording(path=path, mode=mode, slots=sorted(slot_dirs))

    def attempt(loader, *args):
        try:
            return loader(*args)
        except ParseError as e:
            if strict:
                raise
            logger.error(f"✗ {e}")
            recording.load_errors.append(e)
            return None

    for slot, directory in sorted(slot_dirs.items()):
        for channel, filename in CHANNEL_FILES.items():
            frame = attempt(read_channel_file, directory / filename, channel)
            if frame is not None:
                recording.channels[(slot, channel)] = frame

    events = attempt(read_events_file, path / EVENTS_FILE)
    if events is not None:
        recording.events = events

    logger.info(
        f"Loaded {mode.value} recording {path.name}: {recording.row_count} rows, "
        f"{len(recording.load_errors)} file error(s)"
    )
    return recording
