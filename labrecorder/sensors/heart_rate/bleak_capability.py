"""
Bleak BLE Capability
BleCapability implementation on top of bleak, for desktop hosts

bleak is asyncio based; the recorder is thread based. A private event loop
runs on a daemon thread and every command is submitted to it with
run_coroutine_threadsafe, so no caller ever blocks on radio I/O.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional

from bleak import BleakClient, BleakScanner

from ...models import Device
from .capability import BleCapability, GattListener

logger = logging.getLogger(__name__)


class _BleakHandle:
    """Connection handle returned by BleakCapability.connect()."""

    def __init__(self, address: str, listener: GattListener):
        self.address = address
        self.listener = listener
        self.client: Optional[BleakClient] = None
        self.closing = False

    def __repr__(self):
        return f"<BleakHandle({self.address}, connected={self.client is not None})>"


class BleakCapability(BleCapability):
    """
    BLE scanning and GATT access through bleak

    Usage:
        capability = BleakCapability()
        capability.start()
        ...
        capability.close()
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._scanner: Optional[BleakScanner] = None

    # ------------------------------------------------------------------
    # Event loop lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the background event loop."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._run_loop,
                name="Bleak-Loop-Thread",
                daemon=True,
            )
            self._thread.start()
        logger.debug("Bleak event loop started")

    def close(self):
        """Stop scanning and the background event loop."""
        with self._lock:
            loop, thread = self._loop, self._thread
        if loop is None:
            return

        self.stop_scan()
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=5)
        with self._lock:
            self._loop = None
            self._thread = None
        logger.debug("Bleak event loop stopped")

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _submit(self, coro):
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def start_scan(
        self,
        on_device: Callable[[Device], None],
        on_failed: Optional[Callable[[str], None]] = None,
    ):
        def detection_callback(device, advertisement_data):
            name = device.name or getattr(advertisement_data, 'local_name', None) or ''
            on_device(Device(name=name, address=device.address))

        self._submit(self._start_scan(detection_callback, on_failed))

    async def _start_scan(self, detection_callback, on_failed):
        try:
            if self._scanner is not None:
                await self._scanner.stop()
            self._scanner = BleakScanner(detection_callback=detection_callback)
            await self._scanner.start()
        except Exception as e:
            self._scanner = None
            logger.error(f"✗ Bleak scan failed to start: {e}")
            if on_failed is not None:
                on_failed(str(e))

    def stop_scan(self):
        if self._loop is None:
            return
        self._submit(self._stop_scan())

    async def _stop_scan(self):
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except Exception as e:
            logger.warning(f"Error stopping bleak scanner: {e}")

    # ------------------------------------------------------------------
    # GATT
    # ------------------------------------------------------------------

    def connect(self, address: str, listener: GattListener) -> _BleakHandle:
        handle = _BleakHandle(address, listener)
        self._submit(self._connect(handle))
        return handle

    async def _connect(self, handle: _BleakHandle):
        def on_disconnect(_client):
            if not handle.closing:
                handle.listener.on_connection_state(False)

        client = BleakClient(handle.address, disconnected_callback=on_disconnect)
        try:
            await client.connect()
        except Exception as e:
            handle.listener.on_connection_state(False, str(e) or type(e).__name__)
            return

        handle.client = client
        if handle.closing:
            await self._disconnect(handle)
            return
        handle.listener.on_connection_state(True)

    def discover_services(self, handle: _BleakHandle):
        self._submit(self._discover_services(handle))

    async def _discover_services(self, handle: _BleakHandle):
        # bleak resolves the service table during connect()
        if handle.client is None or not handle.client.is_connected:
            handle.listener.on_services_discovered(False, "not connected")
            return
        services = handle.client.services
        if services is None or not list(services):
            handle.listener.on_services_discovered(False, "no services reported")
            return
        handle.listener.on_services_discovered(True)

    def enable_notifications(self, handle: _BleakHandle, service_uuid: str, characteristic_uuid: str):
        self._submit(self._enable_notifications(handle, service_uuid, characteristic_uuid))

    async def _enable_notifications(self, handle: _BleakHandle, service_uuid: str, characteristic_uuid: str):
        client = handle.client
        if client is None:
            handle.listener.on_notifications_enabled(False, "not connected")
            return

        service = client.services.get_service(service_uuid)
        characteristic = service.get_characteristic(characteristic_uuid) if service else None
        if characteristic is None:
            handle.listener.on_notifications_enabled(False, "Heart Rate characteristic not found")
            return

        def on_notify(_sender, data: bytearray):
            handle.listener.on_notification(bytes(data))

        try:
            await client.start_notify(characteristic, on_notify)
        except Exception as e:
            handle.listener.on_notifications_enabled(False, str(e) or type(e).__name__)
            return
        handle.listener.on_notifications_enabled(True)

    def disconnect(self, handle: _BleakHandle):
        handle.closing = True
        if self._loop is None:
            return
        self._submit(self._disconnect(handle))

    async def _disconnect(self, handle: _BleakHandle):
        client, handle.client = handle.client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting {handle.address}: {e}")
