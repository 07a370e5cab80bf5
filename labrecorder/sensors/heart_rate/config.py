"""
Heart Rate Sensor Configuration
BLE identifiers, discovery policy and link queue settings
"""

from dataclasses import dataclass

# Standard Bluetooth heart-rate service and measurement characteristic
HR_SERVICE_UUID = '0000180d-0000-1000-8000-00805f9b34fb'
HR_MEASUREMENT_CHAR_UUID = '00002a37-0000-1000-8000-00805f9b34fb'


@dataclass
class HeartRateConfig:
    """
    Configuration parameters for BLE heart-rate straps (Polar H-series).

    Controls which advertised devices are accepted during discovery,
    how long a scan may run, and how the per-link sample queue behaves.
    """

    # Discovery settings
    device_name_prefix: str = 'Polar'  # Case-insensitive prefix match
    scan_timeout_ms: int = 2000

    # GATT identifiers
    service_uuid: str = HR_SERVICE_UUID
    measurement_uuid: str = HR_MEASUREMENT_CHAR_UUID

    # Link worker settings
    inbox_size: int = 1024  # Notifications waiting for the link worker; newer frames beyond this are dropped
    worker_join_timeout: float = 5.0

    def accepts(self, name: str) -> bool:
        """
        Check an advertised device name against the allow-list.

        Args:
            name: Advertised name, may be None or empty.

        Returns:
            True if the name starts with the configured prefix.
        """
        if not name:
            return False
        return name.lower().startswith(self.device_name_prefix.lower())

    @property
    def scan_timeout(self) -> float:
        """Scan timeout in seconds."""
        return self.scan_timeout_ms / 1000.0

    @classmethod
    def for_testing(cls) -> 'HeartRateConfig':
        """
        Create a configuration for unit tests.

        Shortens the scan timeout so timeout paths run quickly.

        Returns:
            HeartRateConfig with a 200 ms scan timeout.
        """
        config = cls(
            scan_timeout_ms=200,
            worker_join_timeout=2.0,
        )
        return config
