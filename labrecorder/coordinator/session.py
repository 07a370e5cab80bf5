"""
Recording Session
Owns one recording's lifecycle, its per-channel writers and its event log
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import NotRecordingError, RecordingIOError
from ..layout import CHANNEL_HEADERS, channel_path, events_path, recording_dir, slot_dir, validate_identifier
from ..models import (
    ChannelKind,
    EventMark,
    INTERVAL_END,
    INTERVAL_START,
    RecordingMode,
    Sample,
    SessionState,
)
from ..sensors.heart_rate.link import DeviceLink, LinkEvent, SamplesDecoded, StateChanged
from .clock import CentralClock
from .event_log import EventLog, open_event_log, validate_event_kind
from .writers import CsvRowWriter, open_writer

logger = logging.getLogger(__name__)


@dataclass
class RecordingSummary:
    """What a stopped session left on disk."""
    session_id: str
    mode: RecordingMode
    directory: Path
    rows_written: Dict[Tuple[int, ChannelKind], int] = field(default_factory=dict)
    events_written: int = 0
    close_errors: List[str] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(self.rows_written.values())


class RecordingSession:
    """
    Idle -> Active -> Idle lifecycle for one recording

    Responsibilities:
    - Validate the recording id and create the recording directory
    - Open hr/rr writers for every slot with a live link at start
    - Route decoded samples from attached links to their slot's writers
    - Stamp and persist event marks, including interval start/end toggling
    - Flush and close everything on stop, collecting close failures

    Thread model: link workers call record_samples() concurrently with the
    control path calling start/stop/mark. The session lock guards the
    session state and the event log; each channel writer has its own lock,
    so the two slots never contend with each other.
    """

    def __init__(self, output_root: Path, clock: Optional[CentralClock] = None):
        """
        Args:
            output_root: Directory under which recordings are created.
            clock:       Clock used to stamp event marks.
        """
        self.output_root = Path(output_root)
        self.clock = clock if clock else CentralClock()

        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session_id: Optional[str] = None
        self._mode: Optional[RecordingMode] = None
        self._directory: Optional[Path] = None
        self._writers: Dict[int, Dict[ChannelKind, CsvRowWriter]] = {}
        self._event_log: Optional[EventLog] = None
        self._interval_running = False

        self._attached: Dict[int, Tuple[DeviceLink, Callable[[LinkEvent], None]]] = {}
        self._attached_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def mode(self) -> Optional[RecordingMode]:
        return self._mode

    @property
    def directory(self) -> Optional[Path]:
        return self._directory

    @property
    def interval_running(self) -> bool:
        return self._interval_running

    @property
    def recording_slots(self) -> List[int]:
        """Slots that have at least one open channel writer."""
        with self._lock:
            return sorted(self._writers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, session_id: str, mode: RecordingMode, live_slots: Iterable[int]) -> Path:
        """
        Start recording.

        Args:
            session_id: Participant id (single mode) or group id (group mode).
            mode:       RecordingMode.SINGLE or RecordingMode.GROUP.
            live_slots: Slots whose links are currently Connected or better.

        Returns:
            The recording directory.

        Raises:
            ValidationError:  the id is empty or unusable as a directory name.
            RecordingIOError: the recording directory could not be created.
            RuntimeError:     a recording is already active.
        """
        identifier = validate_identifier(session_id, mode)
        live = set(live_slots)

        with self._lock:
            if self._state is SessionState.ACTIVE:
                raise RuntimeError(f"Recording '{self._session_id}' is already active")

            directory = recording_dir(self.output_root, mode, identifier)
            try:
                existed = directory.exists() and any(directory.iterdir())
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"✗ Error creating directory {directory}: {e}")
                raise RecordingIOError(f"Could not create recording directory {directory}: {e}") from e

            if existed:
                logger.warning(f"⚠ Directory {directory} already exists. Files will be overwritten.")

            writers: Dict[int, Dict[ChannelKind, CsvRowWriter]] = {}
            for slot in mode.slots:
                if slot not in live:
                    continue
                slot_writers = self._open_slot_writers(directory, mode, slot)
                if slot_writers:
                    writers[slot] = slot_writers

            ignored = sorted(live - set(mode.slots))
            if ignored:
                logger.info(f"Slots {ignored} are not recorded in {mode.value} mode")

            self._event_log = open_event_log(events_path(directory), self.clock)
            self._writers = writers
            self._session_id = identifier
            self._mode = mode
            self._directory = directory
            self._interval_running = False
            self._state = SessionState.ACTIVE

        slots_text = ', '.join(f"P{slot}" for slot in sorted(writers)) or 'no devices'
        logger.info(f"✓ Recording started ({mode.value}, {slots_text}) in {directory}")
        return directory

    def stop(self) -> Optional[RecordingSummary]:
        """
        Stop recording, flushing and closing every writer.

        Close failures are collected in the summary, never raised.

        Returns:
            RecordingSummary, or None if no recording was active.
        """
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return None

            self._state = SessionState.IDLE
            writers, self._writers = self._writers, {}
            event_log, self._event_log = self._event_log, None
            summary = RecordingSummary(
                session_id=self._session_id,
                mode=self._mode,
                directory=self._directory,
            )
            self._interval_running = False

        for slot, slot_writers in sorted(writers.items()):
            for channel, writer in slot_writers.items():
                try:
                    writer.close()
                except RecordingIOError as e:
                    logger.error(f"✗ [P{slot}] {e}")
                    summary.close_errors.append(str(e))
                summary.rows_written[(slot, channel)] = writer.rows_written

        if event_log is not None:
            try:
                event_log.close()
            except RecordingIOError as e:
                logger.error(f"✗ {e}")
                summary.close_errors.append(str(e))
            summary.events_written = event_log.events_written

        if summary.close_errors:
            logger.warning(f"⚠ Recording stopped with {len(summary.close_errors)} close error(s)")
        else:
            logger.info(f"✓ Recording stopped. Files saved in {summary.directory}")
        return summary

    # ------------------------------------------------------------------
    # Event marks
    # ------------------------------------------------------------------

    def mark_timestamp(self, kind: str) -> EventMark:
        """
        Stamp and persist an event.

        Returns:
            The persisted EventMark.

        Raises:
            NotRecordingError: no recording is active.
            ValidationError:   the event kind is empty or contains a comma or line break.
            RecordingIOError:  the row could not be written; the session stays active.
        """
        with self._lock:
            return self._mark_locked(kind)

    def toggle_interval(self) -> EventMark:
        """Write interval_start, or interval_end if an interval is running."""
        with self._lock:
            kind = INTERVAL_END if self._interval_running else INTERVAL_START
            return self._mark_locked(kind)

    def _mark_locked(self, kind: str) -> EventMark:
        if self._state is not SessionState.ACTIVE:
            logger.info("Must be recording to mark a timestamp.")
            raise NotRecordingError("Must be recording to mark a timestamp.")

        kind = validate_event_kind(kind)
        if self._event_log is None:
            mark = EventMark(self.clock.now_ms(), kind)
            logger.warning(f"⚠ '{kind}' not persisted; timestamp file is unavailable")
        else:
            try:
                mark = self._event_log.record(kind)
            except RecordingIOError as e:
                logger.error(f"✗ Error writing timestamp: {e}")
                raise

        if kind == INTERVAL_START:
            self._interval_running = True
        elif kind == INTERVAL_END:
            self._interval_running = False

        logger.info(f"'{kind}' marked.")
        return mark

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    def record_samples(self, slot: int, samples: Iterable[Sample]) -> int:
        """
        Append samples to a slot's channel files.

        Samples for a slot without writers, or arriving while idle, are
        dropped. Write failures are logged and never raised.

        Returns:
            Number of rows written.
        """
        with self._lock:
            if self._state is not SessionState.ACTIVE:
                return 0
            slot_writers = self._writers.get(slot)
        if not slot_writers:
            return 0

        written = 0
        for sample in samples:
            writer = slot_writers.get(sample.channel)
            if writer is None:
                continue
            try:
                if writer.append(sample.timestamp, sample.value):
                    written += 1
            except RecordingIOError as e:
                logger.error(f"✗ [P{slot}] Error writing {sample.channel.value} data, channel stopped: {e}")
        return written

    # ------------------------------------------------------------------
    # Link wiring
    # ------------------------------------------------------------------

    def attach(self, link: DeviceLink):
        """
        Route a link's decoded samples into this session.

        Raises:
            ValueError: another link is already attached for the same slot.
        """
        with self._attached_lock:
            current = self._attached.get(link.slot)
            if current is not None:
                if current[0] is link:
                    return
                raise ValueError(f"Slot {link.slot} already has an attached link")

            def on_link_event(event: LinkEvent):
                self._on_link_event(event)

            self._attached[link.slot] = (link, on_link_event)
        link.add_listener(on_link_event)

    def detach(self, link: DeviceLink):
        with self._attached_lock:
            current = self._attached.get(link.slot)
            if current is None or current[0] is not link:
                return
            del self._attached[link.slot]
        link.remove_listener(current[1])

    def _on_link_event(self, event: LinkEvent):
        try:
            if isinstance(event, SamplesDecoded):
                self.record_samples(event.slot, event.frame.samples())
            elif isinstance(event, StateChanged) and self.is_active and not event.current.is_live:
                if event.previous.is_live:
                    logger.warning(f"⚠ [P{event.slot}] Link lost during recording; recording continues")
        except Exception as e:
            logger.error(f"✗ [P{event.slot}] Error routing link event: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_slot_writers(self, directory: Path, mode: RecordingMode, slot: int) -> Dict[ChannelKind, CsvRowWriter]:
        target = slot_dir(directory, mode, slot)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"✗ [P{slot}] ERROR: Failed creating writers: {e}")
            return {}

        slot_writers = {}
        for channel, header in CHANNEL_HEADERS.items():
            writer = open_writer(channel_path(directory, mode, slot, channel), header)
            if writer is not None:
                slot_writers[channel] = writer
            else:
                logger.error(f"✗ [P{slot}] {channel.value} channel will not be recorded")
        return slot_writers

    def get_status(self) -> dict:
        """
        Get session status

        Returns:
            Dict containing state, id, mode, directory, recorded slots and interval state
        """
        with self._lock:
            return {
                'state': self._state.value,
                'session_id': self._session_id,
                'mode': self._mode.value if self._mode else None,
                'directory': str(self._directory) if self._directory else None,
                'slots': sorted(self._writers),
                'interval_running': self._interval_running,
            }

    def __repr__(self):
        return f"<RecordingSession(id={self._session_id}, state={self._state.value})>"
