"""
BLE Capability Boundary
What the recorder needs from a Bluetooth stack, and nothing more

The recorder never talks to an OS adapter directly. A capability
implementation submits commands without blocking the caller and reports
completions later through a GattListener, on whatever thread it likes.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ...models import Device


class GattListener(ABC):
    """
    Completion callbacks for one connection.

    A fresh listener is handed to every connect() call, so late callbacks
    from a connection that has since been replaced can be told apart.
    """

    @abstractmethod
    def on_connection_state(self, connected: bool, error: Optional[str] = None):
        """Link came up (connected=True) or went down, with an error text on failure."""

    @abstractmethod
    def on_services_discovered(self, success: bool, error: Optional[str] = None):
        """Service discovery finished."""

    @abstractmethod
    def on_notifications_enabled(self, success: bool, error: Optional[str] = None):
        """The heart-rate characteristic subscription finished."""

    @abstractmethod
    def on_notification(self, data: bytes, arrival_ms: Optional[int] = None):
        """
        A heart-rate measurement notification arrived.

        Args:
            data:       Raw payload.
            arrival_ms: Receive time in epoch ms, or None to let the link stamp it.
        """


class BleCapability(ABC):
    """Scanning and GATT operations provided by the platform."""

    @abstractmethod
    def start_scan(
        self,
        on_device: Callable[[Device], None],
        on_failed: Optional[Callable[[str], None]] = None,
    ):
        """Begin reporting advertising devices until stop_scan()."""

    @abstractmethod
    def stop_scan(self):
        """Stop a running scan. Safe to call when no scan is running."""

    @abstractmethod
    def connect(self, address: str, listener: GattListener) -> Any:
        """
        Begin connecting to a device.

        Returns:
            Opaque handle used for the other GATT calls.
        """

    @abstractmethod
    def discover_services(self, handle: Any):
        """Begin service discovery; completes via on_services_discovered."""

    @abstractmethod
    def enable_notifications(self, handle: Any, service_uuid: str, characteristic_uuid: str):
        """Subscribe to a characteristic; completes via on_notifications_enabled."""

    @abstractmethod
    def disconnect(self, handle: Any):
        """Drop the connection and release the handle. Must tolerate repeated calls."""
