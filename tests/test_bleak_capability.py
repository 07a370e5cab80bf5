"""
The bleak capability only needs to import and fit the capability boundary here;
it is exercised against real straps by hand.
"""

import pytest

pytest.importorskip('bleak')

from labrecorder.sensors.heart_rate.bleak_capability import BleakCapability  # noqa: E402
from labrecorder.sensors.heart_rate.capability import BleCapability  # noqa: E402


def test_is_a_capability():
    assert issubclass(BleakCapability, BleCapability)


def test_close_without_start_is_harmless():
    capability = BleakCapability()

    capability.close()
    capability.stop_scan()
