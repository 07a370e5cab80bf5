"""
Heart Rate Sensor Module for Lab Recorder
BLE heart-rate straps (Polar H-series) streaming HR and RR intervals

Architecture:
- Codec: Heart Rate Measurement (0x2A37) frame decoding
- Link: Per-slot connection state machine and sample stream
- Scanner: Name-filtered, count- or timeout-bounded discovery
- Capability: Abstract platform boundary, with a bleak implementation

The bleak implementation is imported lazily so the rest of the module
works without a Bluetooth stack.
"""

from .codec import DecodedFrame, FrameCodec
from .config import HeartRateConfig, HR_MEASUREMENT_CHAR_UUID, HR_SERVICE_UUID
from .capability import BleCapability, GattListener
from .link import DeviceLink, LinkEvent, SamplesDecoded, StateChanged
from .scanner import ScanCoordinator

__all__ = [
    'DecodedFrame',
    'FrameCodec',
    'HeartRateConfig',
    'HR_MEASUREMENT_CHAR_UUID',
    'HR_SERVICE_UUID',
    'BleCapability',
    'GattListener',
    'DeviceLink',
    'LinkEvent',
    'SamplesDecoded',
    'StateChanged',
    'ScanCoordinator',
]
