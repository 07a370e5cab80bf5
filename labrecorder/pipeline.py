"""
Lab Recorder - Recorder Pipeline
================================
Central object that owns the two heart-rate slots, discovery, the recording
session and the activity log.

Usage:
    recorder = LabRecorder(BleakCapability(), RecorderConfig.for_group())
    recorder.scan_and_connect()
    recorder.start_recording('G12')
    recorder.toggle_interval()
    ...
    recorder.stop_recording()
    recorder.shutdown()

Failure policy:
    A link that fails to connect ends in the Error state and is reported in
    the activity log; recording still starts with whichever slots are live.
    A channel file that cannot be created is skipped; the other channels
    keep recording.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .activity_log import ActivityLog
from .coordinator.clock import CentralClock
from .coordinator.session import RecordingSession, RecordingSummary
from .models import ConnectionState, Device, EventMark, MANUAL_MARK, RecordingMode, SampleKind
from .sensors.heart_rate.capability import BleCapability
from .sensors.heart_rate.config import HeartRateConfig
from .sensors.heart_rate.link import DeviceLink, LinkEvent, SamplesDecoded, StateChanged
from .sensors.heart_rate.scanner import STOP_CANCELLED, ScanCoordinator

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = 'labrecorder'
OUTPUT_ROOT_ENV = 'LABRECORDER_ROOT'
SLOTS = (1, 2)


def default_output_root() -> Path:
    """LABRECORDER_ROOT if set, otherwise ~/Documents/LabRecorder."""
    override = os.environ.get(OUTPUT_ROOT_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / 'Documents' / 'LabRecorder'


@dataclass
class RecorderConfig:
    """
    Configuration for a LabRecorder.

    participants selects the mode: 1 records a single participant,
    2 records a group of two.
    """

    output_root: Path = field(default_factory=default_output_root)
    participants: int = 1
    log_capacity: int = 100
    heart_rate: HeartRateConfig = field(default_factory=HeartRateConfig)

    def __post_init__(self):
        self.output_root = Path(self.output_root).expanduser()
        if self.participants not in SLOTS:
            raise ValueError(f"participants must be 1 or 2, got {self.participants}")

    @property
    def mode(self) -> RecordingMode:
        return RecordingMode.SINGLE if self.participants == 1 else RecordingMode.GROUP

    @classmethod
    def for_single(cls, output_root: Optional[Path] = None) -> 'RecorderConfig':
        """Configuration for recording one participant."""
        if output_root is None:
            return cls(participants=1)
        return cls(output_root=output_root, participants=1)

    @classmethod
    def for_group(cls, output_root: Optional[Path] = None) -> 'RecorderConfig':
        """Configuration for recording two participants side by side."""
        if output_root is None:
            return cls(participants=2)
        return cls(output_root=output_root, participants=2)


class LabRecorder:
    """
    Owns everything needed for one recording workstation.

    Responsibilities:
      - Scan for straps and auto-assign them to slots 1 and 2
      - Drive one DeviceLink per slot
      - Start / stop the RecordingSession with whichever slots are live
      - Mark events and intervals
      - Keep a live projection (state, latest heart rate) for display
      - Collect every recorder log message in the ActivityLog
    """

    def __init__(
        self,
        capability: BleCapability,
        config: Optional[RecorderConfig] = None,
        clock: Optional[CentralClock] = None,
    ):
        """
        Args:
            capability : Platform BLE operations (BleakCapability on desktops)
            config     : RecorderConfig, defaults to a single-participant setup
            clock      : Shared CentralClock; one is created if omitted
        """
        self.capability = capability
        self.config = config if config else RecorderConfig()
        self.clock = clock if clock else CentralClock()

        self.activity_log = ActivityLog(capacity=self.config.log_capacity)
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        if package_logger.level == logging.NOTSET:
            package_logger.setLevel(logging.INFO)
        package_logger.addHandler(self.activity_log)

        self.scanner = ScanCoordinator(capability, self.config.heart_rate)
        self.session = RecordingSession(self.config.output_root, self.clock)
        self.links: Dict[int, DeviceLink] = {
            slot: DeviceLink(slot, capability, self.clock, self.config.heart_rate)
            for slot in SLOTS
        }

        self._latest_hr: Dict[int, int] = {slot: 0 for slot in SLOTS}
        self._latest_lock = threading.Lock()
        self._scan_callback: Optional[Callable[[List[Device]], None]] = None

        for link in self.links.values():
            link.add_listener(self._on_link_event)
            self.session.attach(link)

        logger.info(f"LabRecorder created ({self.mode.value}, output {self.config.output_root})")

    # -----------------------------------------------------------------------
    # Configuration
    # -----------------------------------------------------------------------

    @property
    def mode(self) -> RecordingMode:
        return self.config.mode

    def set_participants(self, participants: int):
        """
        Switch between single (1) and group (2) recording.

        Raises:
            ValueError:   participants is not 1 or 2.
            RuntimeError: a recording is active.
        """
        if participants not in SLOTS:
            raise ValueError(f"participants must be 1 or 2, got {participants}")
        if self.session.is_active:
            raise RuntimeError("Cannot change the number of participants while recording")
        self.config.participants = participants
        logger.info(f"Number of participants set to {participants}")

    # -----------------------------------------------------------------------
    # Discovery and connection
    # -----------------------------------------------------------------------

    def start_scan(self, on_complete: Optional[Callable[[List[Device]], None]] = None):
        """
        Disconnect every slot and scan for straps without blocking.

        When the scan ends, discovered devices are assigned to slots and
        connected; on_complete is then called with the discovered devices.
        """
        self.disconnect_all()
        self._scan_callback = on_complete
        self.scanner.start(self.config.participants, self._on_scan_complete)

    def scan_and_connect(self, timeout: Optional[float] = None) -> List[Device]:
        """
        Scan, assign and connect, blocking until the scan has ended.

        Returns:
            Devices discovered by the scan.
        """
        self.disconnect_all()
        self._scan_callback = None
        devices = self.scanner.scan(self.config.participants, timeout=timeout)
        self._auto_connect(devices)
        return devices

    def cancel_scan(self):
        self.scanner.cancel()

    def connect(self, slot: int, device: Device):
        """Connect one slot to a specific device."""
        self._link(slot).connect(device)

    def disconnect(self, slot: int):
        self._link(slot).disconnect()

    def disconnect_all(self):
        for link in self.links.values():
            link.disconnect()

    def wait_until_streaming(self, timeout: float = 15.0, poll_interval: float = 0.1) -> List[int]:
        """
        Wait for every connecting slot to settle.

        Returns:
            Slots that reached Subscribed.
        """
        deadline = time.monotonic() + timeout
        pending = (ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.SERVICE_DISCOVERY)
        while time.monotonic() < deadline:
            if not any(link.state in pending for link in self.links.values()):
                break
            time.sleep(poll_interval)
        return [slot for slot, link in self.links.items() if link.state is ConnectionState.SUBSCRIBED]

    def _on_scan_complete(self, devices: List[Device], reason: str):
        if reason == STOP_CANCELLED:
            return
        self._auto_connect(devices)
        callback = self._scan_callback
        if callback is not None:
            callback(devices)

    def _auto_connect(self, devices: List[Device]):
        if not devices:
            logger.warning(f"⚠ No {self.config.heart_rate.device_name_prefix} devices found.")
            return

        assignments = {1: devices[0]}
        if self.mode is RecordingMode.GROUP:
            second = next((d for d in devices[1:] if d.address != devices[0].address), None)
            if second is not None:
                assignments[2] = second
            else:
                logger.warning("⚠ Only one device found; slot 2 stays disconnected.")

        for slot, device in assignments.items():
            logger.info(f"Device {slot} auto-selected: {device.name}")
            self.links[slot].connect(device)

    # -----------------------------------------------------------------------
    # Recording
    # -----------------------------------------------------------------------

    def start_recording(self, session_id: str) -> Path:
        """
        Start a recording with every slot that is currently live.

        Raises:
            ValidationError:  the id is empty or not a valid directory name.
            RecordingIOError: the recording directory could not be created.
        """
        live_slots = [slot for slot, link in self.links.items() if link.is_live]
        if not live_slots:
            logger.warning("⚠ No device is connected; only timestamps will be recorded.")
        return self.session.start(session_id, self.mode, live_slots)

    def stop_recording(self) -> Optional[RecordingSummary]:
        return self.session.stop()

    def mark_timestamp(self, kind: str = MANUAL_MARK) -> EventMark:
        return self.session.mark_timestamp(kind)

    def toggle_interval(self) -> EventMark:
        return self.session.toggle_interval()

    @property
    def is_recording(self) -> bool:
        return self.session.is_active

    # -----------------------------------------------------------------------
    # Live projection
    # -----------------------------------------------------------------------

    def latest_heart_rate(self, slot: int) -> int:
        with self._latest_lock:
            return self._latest_hr.get(slot, 0)

    def get_status(self) -> dict:
        """
        Return recorder state for logging / UI display.
        """
        slots = {}
        for slot, link in self.links.items():
            slots[slot] = {
                'device': str(link.device) if link.device else None,
                'state': link.state.value,
                'heart_rate': self.latest_heart_rate(slot),
            }
        return {
            'mode': self.mode.value,
            'recording': self.session.is_active,
            'session': self.session.get_status(),
            'interval_running': self.session.interval_running,
            'scanning': self.scanner.is_scanning,
            'slots': slots,
        }

    def _on_link_event(self, event: LinkEvent):
        if isinstance(event, SamplesDecoded):
            hr = event.frame.heart_rate
            if hr.kind is SampleKind.HEART_RATE:
                with self._latest_lock:
                    self._latest_hr[event.slot] = hr.value
        elif isinstance(event, StateChanged):
            if event.current in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
                with self._latest_lock:
                    self._latest_hr[event.slot] = 0

    # -----------------------------------------------------------------------
    # Shutdown
    # -----------------------------------------------------------------------

    def shutdown(self):
        """
        Stop any recording, cancel any scan and release both devices.
        """
        logger.info("Shutting down recorder...")
        if self.session.is_active:
            self.session.stop()
        self.scanner.cancel()
        for link in self.links.values():
            self.session.detach(link)
            link.remove_listener(self._on_link_event)
            link.shutdown()
        logger.info("✓ Recorder shut down")
        logging.getLogger(PACKAGE_LOGGER).removeHandler(self.activity_log)

    def _link(self, slot: int) -> DeviceLink:
        if slot not in self.links:
            raise ValueError(f"Unknown slot: {slot}")
        return self.links[slot]

    # -----------------------------------------------------------------------
    # Dunder helpers
    # -----------------------------------------------------------------------

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def __repr__(self):
        states = ', '.join(f"P{slot}={link.state.value}" for slot, link in self.links.items())
        return f"<LabRecorder({self.mode.value}, {states}, recording={self.session.is_active})>"
