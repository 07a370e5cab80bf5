"""
Shared fixtures: an in-memory BLE capability, a hand-driven clock and
link event recording. Nothing here touches a real Bluetooth adapter.
"""

import threading
from typing import Dict, List, Optional

import pytest

from labrecorder.coordinator.clock import CentralClock
from labrecorder.models import ConnectionState, Device
from labrecorder.sensors.heart_rate.capability import BleCapability, GattListener
from labrecorder.sensors.heart_rate.config import HeartRateConfig
from labrecorder.sensors.heart_rate.link import SamplesDecoded, StateChanged


class ManualTime:
    """Callable time source for CentralClock, in epoch seconds."""

    def __init__(self, start_ms: int = 1_000_000):
        self.ms = start_ms

    def set_ms(self, ms: int):
        self.ms = ms

    def advance(self, ms: int):
        self.ms += ms

    def __call__(self) -> float:
        return self.ms / 1000.0


class FakeHandle:
    def __init__(self, address: str, listener: GattListener):
        self.address = address
        self.listener = listener
        self.released = False


class FakeCapability(BleCapability):
    """
    Records every call and, with auto_complete, answers each GATT step
    successfully on the calling thread (the link worker).
    """

    def __init__(self, auto_complete: bool = True, advertise_on_scan: Optional[List[Device]] = None):
        self.auto_complete = auto_complete
        self.advertise_on_scan = list(advertise_on_scan or [])

        self.scan_starts = 0
        self.scan_stops = 0
        self.on_device = None
        self.on_failed = None

        self.handles: List[FakeHandle] = []
        self.disconnected: List[str] = []
        self.subscriptions: List[tuple] = []

        self.fail_connect: Dict[str, str] = {}
        self.fail_discovery: Dict[str, str] = {}
        self.fail_subscribe: Dict[str, str] = {}
        self.raise_on_connect = False

        self._lock = threading.Lock()

    # Scanning

    def start_scan(self, on_device, on_failed=None):
        self.scan_starts += 1
        self.on_device = on_device
        self.on_failed = on_failed
        for device in self.advertise_on_scan:
            on_device(device)

    def stop_scan(self):
        self.scan_stops += 1

    def advertise(self, name: str, address: str):
        self.on_device(Device(name=name, address=address))

    # GATT

    def connect(self, address, listener):
        if self.raise_on_connect:
            raise OSError("adapter unavailable")
        handle = FakeHandle(address, listener)
        with self._lock:
            self.handles.append(handle)
        if self.auto_complete:
            if address in self.fail_connect:
                listener.on_connection_state(False, self.fail_connect[address])
            else:
                listener.on_connection_state(True)
        return handle

    def discover_services(self, handle):
        if not self.auto_complete:
            return
        error = self.fail_discovery.get(handle.address)
        handle.listener.on_services_discovered(error is None, error)

    def enable_notifications(self, handle, service_uuid, characteristic_uuid):
        self.subscriptions.append((handle.address, service_uuid, characteristic_uuid))
        if not self.auto_complete:
            return
        error = self.fail_subscribe.get(handle.address)
        handle.listener.on_notifications_enabled(error is None, error)

    def disconnect(self, handle):
        handle.released = True
        with self._lock:
            self.disconnected.append(handle.address)

    # Test helpers

    def listener_for(self, address: str) -> GattListener:
        """Listener of the most recent connection to address."""
        with self._lock:
            for handle in reversed(self.handles):
                if handle.address == address:
                    return handle.listener
        raise KeyError(address)

    def notify(self, address: str, data: bytes, arrival_ms: Optional[int] = None):
        self.listener_for(address).on_notification(data, arrival_ms)


class EventRecorder:
    """Link listener that keeps every event it sees."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def __call__(self, event):
        with self._lock:
            self.events.append(event)

    def states(self) -> List[ConnectionState]:
        with self._lock:
            return [e.current for e in self.events if isinstance(e, StateChanged)]

    def state_events(self) -> List[StateChanged]:
        with self._lock:
            return [e for e in self.events if isinstance(e, StateChanged)]

    def frames(self):
        with self._lock:
            return [e.frame for e in self.events if isinstance(e, SamplesDecoded)]


POLAR_A = Device(name='Polar H10 A1B2C3D4', address='AA:AA:AA:AA:AA:01')
POLAR_B = Device(name='Polar H9 11223344', address='AA:AA:AA:AA:AA:02')
OTHER = Device(name='Mi Band 5', address='BB:BB:BB:BB:BB:01')


@pytest.fixture
def manual_time():
    return ManualTime()


@pytest.fixture
def clock(manual_time):
    return CentralClock(time_source=manual_time)


@pytest.fixture
def hr_config():
    return HeartRateConfig.for_testing()


@pytest.fixture
def capability():
    return FakeCapability()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def output_root(tmp_path):
    root = tmp_path / 'LabRecorder'
    root.mkdir()
    return root
