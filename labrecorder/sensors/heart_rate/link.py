"""
Heart Rate Device Link
Owns one strap's connection state machine and turns its notifications into samples

Connect -> discover -> subscribe -> stream -> disconnect, driven entirely by
a single worker thread per link. Capability callbacks and caller commands are
queued into an inbox and applied in order, so link state is never
touched from more than one thread. Posting never blocks; once inbox_size
notifications are waiting, newer frames are dropped and counted.
Everything the outside world learns about the link arrives as
StateChanged / SamplesDecoded events.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from ...coordinator.clock import CentralClock
from ...errors import LinkError, MalformedFrameError
from ...models import ConnectionState, Device
from .capability import BleCapability, GattListener
from .codec import DecodedFrame, FrameCodec
from .config import HeartRateConfig

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.ERROR, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.SERVICE_DISCOVERY, ConnectionState.ERROR, ConnectionState.DISCONNECTED},
    ConnectionState.SERVICE_DISCOVERY: {ConnectionState.SUBSCRIBED, ConnectionState.ERROR, ConnectionState.DISCONNECTED},
    ConnectionState.SUBSCRIBED: {ConnectionState.DISCONNECTED, ConnectionState.ERROR},
    ConnectionState.ERROR: {ConnectionState.DISCONNECTED},
}

# Inbox message kinds
_CONNECT = 'connect'
_DISCONNECT = 'disconnect'
_CONNECTION = 'connection'
_SERVICES = 'services'
_SUBSCRIBED = 'subscribed'
_NOTIFICATION = 'notification'
_STOP = 'stop'


@dataclass(frozen=True)
class StateChanged:
    slot: int
    device: Optional[Device]
    previous: ConnectionState
    current: ConnectionState
    error: Optional[LinkError] = None


@dataclass(frozen=True)
class SamplesDecoded:
    slot: int
    device: Optional[Device]
    frame: DecodedFrame


LinkEvent = Union[StateChanged, SamplesDecoded]


class _Connection(GattListener):
    """Posts one connection's capability callbacks into the link inbox."""

    def __init__(self, link: 'DeviceLink', generation: int):
        self._link = link
        self.generation = generation

    def on_connection_state(self, connected: bool, error: Optional[str] = None):
        self._link._post(_CONNECTION, self.generation, (connected, error))

    def on_services_discovered(self, success: bool, error: Optional[str] = None):
        self._link._post(_SERVICES, self.generation, (success, error))

    def on_notifications_enabled(self, success: bool, error: Optional[str] = None):
        self._link._post(_SUBSCRIBED, self.generation, (success, error))

    def on_notification(self, data: bytes, arrival_ms: Optional[int] = None):
        if arrival_ms is None:
            arrival_ms = self._link.clock.now_ms()
        self._link._post(_NOTIFICATION, self.generation, (bytes(data), arrival_ms), droppable=True)


class DeviceLink:
    """
    One participant slot's connection to a heart-rate strap

    Responsibilities:
    - Drive the ConnectionState machine from capability completions
    - Decode notifications with FrameCodec, in arrival order
    - Publish state transitions and decoded frames to listeners
    - Release the device handle on disconnect or failure (single attempt, no retry)
    """

    def __init__(
        self,
        slot: int,
        capability: BleCapability,
        clock: Optional[CentralClock] = None,
        config: Optional[HeartRateConfig] = None,
    ):
        """
        Args:
            slot:       Participant slot this link feeds (1 or 2).
            capability: Platform BLE operations.
            clock:      Clock used to stamp notifications the capability did not stamp.
            config:     HeartRateConfig. Defaults to HeartRateConfig().
        """
        self.slot = slot
        self.capability = capability
        self.clock = clock if clock else CentralClock()
        self.config = config if config else HeartRateConfig()
        self.codec = FrameCodec()

        # Worker-owned state
        self._state = ConnectionState.DISCONNECTED
        self._device: Optional[Device] = None
        self._handle: Any = None
        self._generation = 0

        # Unbounded; only queued notifications are capped, at inbox_size
        self._inbox: queue.Queue = queue.Queue()
        self._queued_frames = 0
        self._frames_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

        self._listeners: List[Callable[[LinkEvent], None]] = []
        self._listeners_lock = threading.Lock()

        self.frames_decoded = 0
        self.frames_dropped = 0
        self.frames_malformed = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def device(self) -> Optional[Device]:
        return self._device

    @property
    def is_live(self) -> bool:
        """True while Connected, discovering services, or Subscribed."""
        return self._state.is_live

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self):
        """Start the link worker thread."""
        with self._worker_lock:
            if self.is_running:
                logger.debug(f"[P{self.slot}] Link worker already running")
                return

            self._worker = threading.Thread(
                target=self._run,
                name=f"HR-Link-P{self.slot}",
                daemon=True,
            )
            self._worker.start()
            logger.debug(f"[P{self.slot}] Link worker started")

    def connect(self, device: Device):
        """
        Begin connecting to a device.

        Returns immediately; progress is reported as StateChanged events.
        """
        self.start()
        logger.info(f"[P{self.slot}] Attempting to connect to {device.address}")
        self._post(_CONNECT, None, device)

    def disconnect(self):
        """Disconnect and release the device handle. Safe in any state."""
        if not self.is_running:
            return
        self._post(_DISCONNECT, None, None)

    def shutdown(self):
        """Disconnect, then stop the worker thread."""
        with self._worker_lock:
            worker = self._worker
        if worker is None or not worker.is_alive():
            return

        self._post(_DISCONNECT, None, None)
        self._post(_STOP, None, None)
        worker.join(timeout=self.config.worker_join_timeout)
        if worker.is_alive():
            logger.warning(f"[P{self.slot}] Link worker did not stop gracefully")
        else:
            logger.debug(f"[P{self.slot}] Link worker stopped")

    def wait_idle(self):
        """Block until every queued command and callback has been applied."""
        if self.is_running:
            self._inbox.join()

    def add_listener(self, callback: Callable[[LinkEvent], None]):
        with self._listeners_lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[LinkEvent], None]):
        with self._listeners_lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def get_status(self) -> dict:
        """
        Return the current link state.

        Returns:
            Dict containing slot, device, connection state and frame counters.
        """
        return {
            'slot': self.slot,
            'device': str(self._device) if self._device else None,
            'state': self._state.value,
            'frames_decoded': self.frames_decoded,
            'frames_dropped': self.frames_dropped,
            'frames_malformed': self.frames_malformed,
        }

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def _post(self, kind: str, generation: Optional[int], payload: Any, droppable: bool = False):
        if droppable:
            with self._frames_lock:
                if self._queued_frames >= self.config.inbox_size:
                    self.frames_dropped += 1
                    logger.warning(f"[P{self.slot}] Link inbox full; dropped a heart-rate frame")
                    return
                self._queued_frames += 1
        self._inbox.put_nowait((kind, generation, payload))

    def _run(self):
        while True:
            kind, generation, payload = self._inbox.get()
            try:
                if kind == _STOP:
                    return
                if kind == _NOTIFICATION:
                    with self._frames_lock:
                        self._queued_frames -= 1
                self._dispatch(kind, generation, payload)
            except Exception as e:
                logger.error(f"[P{self.slot}] Unexpected error handling '{kind}': {e}", exc_info=True)
            finally:
                self._inbox.task_done()

    def _dispatch(self, kind: str, generation: Optional[int], payload: Any):
        if kind == _CONNECT:
            self._do_connect(payload)
            return
        if kind == _DISCONNECT:
            self._do_disconnect()
            return

        if generation != self._generation:
            logger.debug(f"[P{self.slot}] Discarding '{kind}' callback from a superseded connection")
            return

        if kind == _CONNECTION:
            self._on_connection(*payload)
        elif kind == _SERVICES:
            self._on_services(*payload)
        elif kind == _SUBSCRIBED:
            self._on_subscribed(*payload)
        elif kind == _NOTIFICATION:
            self._on_notification(*payload)

    # ------------------------------------------------------------------
    # State machine (worker thread only)
    # ------------------------------------------------------------------

    def _do_connect(self, device: Device):
        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            logger.warning(
                f"[P{self.slot}] Connect to {device.address} ignored; link is {self._state.value}"
            )
            return

        if self._state is ConnectionState.ERROR:
            self._release()
            self._set_state(ConnectionState.DISCONNECTED)

        self._generation += 1
        self._device = device
        self._set_state(ConnectionState.CONNECTING)

        try:
            self._handle = self.capability.connect(device.address, _Connection(self, self._generation))
        except Exception as e:
            self._fail(f"Connect to {device.address} failed: {e}")

    def _do_disconnect(self):
        if self._handle is None and self._state is ConnectionState.DISCONNECTED:
            return

        self._release()
        if self._state is not ConnectionState.DISCONNECTED:
            logger.info(f"[P{self.slot}] Disconnected from {self._address}.")
            self._set_state(ConnectionState.DISCONNECTED)

    def _on_connection(self, connected: bool, error: Optional[str]):
        if connected:
            if self._state is not ConnectionState.CONNECTING:
                logger.debug(f"[P{self.slot}] Ignoring connect completion in state {self._state.value}")
                return
            self._set_state(ConnectionState.CONNECTED)
            logger.info(f"[P{self.slot}] Connected to {self._address}. Discovering services...")
            try:
                self.capability.discover_services(self._handle)
            except Exception as e:
                self._fail(f"Service discovery could not start: {e}")
            return

        if error:
            self._fail(f"GATT error for {self._address}: {error}")
            return

        self._release()
        if self._state is not ConnectionState.DISCONNECTED:
            logger.info(f"[P{self.slot}] Disconnected from {self._address}.")
            self._set_state(ConnectionState.DISCONNECTED)

    def _on_services(self, success: bool, error: Optional[str]):
        if self._state is not ConnectionState.CONNECTED:
            return
        if not success:
            self._fail(f"Service discovery failed: {error or 'unknown error'}")
            return

        self._set_state(ConnectionState.SERVICE_DISCOVERY)
        logger.info(f"[P{self.slot}] Services discovered. Enabling HR notifications.")
        try:
            self.capability.enable_notifications(
                self._handle, self.config.service_uuid, self.config.measurement_uuid
            )
        except Exception as e:
            self._fail(f"Heart Rate characteristic not available on {self._address}: {e}")

    def _on_subscribed(self, success: bool, error: Optional[str]):
        if self._state is not ConnectionState.SERVICE_DISCOVERY:
            return
        if not success:
            self._fail(f"Could not enable HR notifications on {self._address}: {error or 'unknown error'}")
            return
        self._set_state(ConnectionState.SUBSCRIBED)
        logger.info(f"[P{self.slot}] ✓ Streaming heart rate from {self._address}")

    def _on_notification(self, data: bytes, arrival_ms: int):
        if self._state not in (ConnectionState.SERVICE_DISCOVERY, ConnectionState.SUBSCRIBED):
            return
        try:
            frame = self.codec.decode(data, arrival_ms)
        except MalformedFrameError as e:
            self.frames_malformed += 1
            logger.warning(f"[P{self.slot}] Dropped malformed frame: {e}")
            return

        self.frames_decoded += 1
        self._emit(SamplesDecoded(self.slot, self._device, frame))

    def _fail(self, message: str):
        error = LinkError(message, slot=self.slot, address=self._address)
        logger.error(f"[P{self.slot}] ERROR: {message}")
        self._release()
        if self._state is not ConnectionState.ERROR:
            self._set_state(ConnectionState.ERROR, error)

    def _release(self):
        # Any callback still in flight for the released handle is now stale
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self.capability.disconnect(handle)
        except Exception as e:
            logger.warning(f"[P{self.slot}] Error releasing device handle: {e}")

    def _set_state(self, new_state: ConnectionState, error: Optional[LinkError] = None):
        previous = self._state
        if new_state not in _ALLOWED_TRANSITIONS[previous]:
            raise RuntimeError(f"Illegal link transition {previous.value} -> {new_state.value}")

        self._state = new_state
        logger.debug(f"[P{self.slot}] {previous.value} -> {new_state.value}")
        self._emit(StateChanged(self.slot, self._device, previous, new_state, error))

    def _emit(self, event: LinkEvent):
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"[P{self.slot}] Link listener failed: {e}", exc_info=True)

    @property
    def _address(self) -> str:
        return self._device.address if self._device else '<none>'

    def __repr__(self):
        return f"<DeviceLink(slot={self.slot}, state={self._state.value})>"
