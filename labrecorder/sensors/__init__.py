"""
Lab Recorder Sensors
Physiological sensor links

Available Sensors:
- Heart rate: BLE heart-rate straps (HR in bpm + RR intervals), up to two concurrently
"""

from .heart_rate import DeviceLink, FrameCodec, HeartRateConfig, ScanCoordinator

__all__ = [
    'DeviceLink',
    'FrameCodec',
    'HeartRateConfig',
    'ScanCoordinator',
]
