"""
Heart Rate Strap Discovery
Acceptance policy layered over the platform scanner

Discovered devices are filtered to the configured name prefix, de-duplicated
by address, and the scan ends as soon as the target number of straps has
been seen or the timeout elapses, whichever comes first. Both paths share
one stop token, so the stop logic runs exactly once per scan.
"""

import logging
import threading
from typing import Callable, List, Optional

from ...models import Device
from .capability import BleCapability
from .config import HeartRateConfig

logger = logging.getLogger(__name__)

STOP_TARGET_REACHED = 'target_reached'
STOP_TIMEOUT = 'timeout'
STOP_CANCELLED = 'cancelled'
STOP_FAILED = 'failed'


class _ScanToken:
    """Per-scan cancellation token owning the timeout timer."""

    def __init__(self, target_count: int, on_complete: Optional[Callable]):
        self.target_count = target_count
        self.on_complete = on_complete
        self.devices: List[Device] = []
        self.stopped = False
        self.reason: Optional[str] = None
        self.timer: Optional[threading.Timer] = None
        self.done = threading.Event()


class ScanCoordinator:
    """
    Runs one discovery scan at a time on top of a BleCapability

    Usage:
        scanner = ScanCoordinator(capability)
        devices = scanner.scan(target_count=2)
    """

    def __init__(self, capability: BleCapability, config: Optional[HeartRateConfig] = None):
        self.capability = capability
        self.config = config if config else HeartRateConfig()
        self._lock = threading.Lock()
        self._token: Optional[_ScanToken] = None

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._token is not None and not self._token.stopped

    @property
    def devices(self) -> List[Device]:
        """Devices accepted by the current or most recent scan, in discovery order."""
        with self._lock:
            return list(self._token.devices) if self._token else []

    def start(
        self,
        target_count: int,
        on_complete: Optional[Callable[[List[Device], str], None]] = None,
    ):
        """
        Begin a scan.

        Args:
            target_count: Stop once this many distinct matching devices are seen.
            on_complete:  Called once with (devices, reason) when the scan ends.
        """
        if target_count < 1:
            raise ValueError(f"target_count must be at least 1, got {target_count}")

        self.cancel()

        token = _ScanToken(target_count, on_complete)
        with self._lock:
            self._token = token

        logger.info(
            f"Starting BLE scan ({self.config.scan_timeout_ms / 1000:g}s or "
            f"{target_count} device{'s' if target_count > 1 else ''})..."
        )

        # Armed before start_scan; a synchronous capability may finish the scan inside it
        token.timer = threading.Timer(self.config.scan_timeout, self._on_timeout, args=(token,))
        token.timer.daemon = True
        token.timer.start()

        try:
            self.capability.start_scan(
                lambda device: self._on_device(token, device),
                lambda message: self._on_failed(token, message),
            )
        except Exception as e:
            logger.error(f"ERROR: BLE scan could not start: {e}", exc_info=True)
            self._finish(token, STOP_FAILED)

    def scan(self, target_count: int, timeout: Optional[float] = None) -> List[Device]:
        """
        Run a scan and wait for it to end.

        Args:
            target_count: Stop once this many distinct matching devices are seen.
            timeout:      Extra safety bound on the wait, in seconds.

        Returns:
            Accepted devices in discovery order.
        """
        self.start(target_count)
        with self._lock:
            token = self._token
        wait = timeout if timeout is not None else self.config.scan_timeout + 5.0
        if not token.done.wait(wait):
            logger.warning("Scan did not conclude in time; cancelling")
            self._finish(token, STOP_CANCELLED)
        return list(token.devices)

    def cancel(self):
        """Stop the running scan, if any."""
        with self._lock:
            token = self._token
        if token is not None:
            self._finish(token, STOP_CANCELLED)

    def _on_device(self, token: _ScanToken, device: Device):
        if not self.config.accepts(device.name):
            return

        with self._lock:
            if token.stopped or device in token.devices:
                return
            token.devices.append(device)
            reached = len(token.devices) >= token.target_count

        logger.info(f"Found device: {device.name}")
        if reached:
            logger.info(f"Found {token.target_count} {self.config.device_name_prefix} device(s). Stopping scan.")
            self._finish(token, STOP_TARGET_REACHED)

    def _on_timeout(self, token: _ScanToken):
        with self._lock:
            if token.stopped:
                return
        logger.info(f"Scan timeout ({self.config.scan_timeout_ms / 1000:g}s) reached.")
        self._finish(token, STOP_TIMEOUT)

    def _on_failed(self, token: _ScanToken, message: str):
        logger.error(f"ERROR: BLE Scan Failed: {message}")
        self._finish(token, STOP_FAILED)

    def _finish(self, token: _ScanToken, reason: str):
        with self._lock:
            if token.stopped:
                return
            token.stopped = True
            token.reason = reason
            devices = list(token.devices)

        if token.timer is not None:
            token.timer.cancel()

        logger.info("Stopping BLE scan.")
        try:
            self.capability.stop_scan()
        except Exception as e:
            logger.warning(f"Error stopping BLE scan: {e}")

        token.done.set()
        if token.on_complete is not None:
            try:
                token.on_complete(devices, reason)
            except Exception as e:
                logger.error(f"Scan completion handler failed: {e}", exc_info=True)
