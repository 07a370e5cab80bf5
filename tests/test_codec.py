"""
Heart Rate Measurement frame decoding
"""

import pytest

from labrecorder.errors import MalformedFrameError
from labrecorder.models import SampleKind
from labrecorder.sensors.heart_rate.codec import FrameCodec, decode


@pytest.fixture
def codec():
    return FrameCodec()


@pytest.mark.parametrize('bpm', [0, 1, 60, 128, 255])
def test_8bit_frame_without_rr(codec, bpm):
    frame = codec.decode(bytes([0x00, bpm]), 1000)

    assert frame.heart_rate.kind is SampleKind.HEART_RATE
    assert frame.heart_rate.value == bpm
    assert frame.heart_rate.timestamp == 1000
    assert frame.rr_intervals == []


def test_16bit_frame_with_rr_values(codec):
    # flags 0x11: 16-bit HR + RR present; HR 0x0150 = 336; RR 1000 and 65535
    raw = bytes([0x11, 0x50, 0x01, 0xE8, 0x03, 0xFF, 0xFF])

    frame = codec.decode(raw, 5000)

    assert frame.heart_rate.value == 336
    assert [s.value for s in frame.rr_intervals] == [1000, 65535]
    assert all(s.kind is SampleKind.RR_INTERVAL for s in frame.rr_intervals)


@pytest.mark.parametrize('k', [0, 1, 2, 5])
def test_16bit_frame_yields_k_rr_samples_in_order(codec, k):
    rr_values = [700 + 13 * i for i in range(k)]
    raw = bytearray([0x11, 0x48, 0x00])
    for value in rr_values:
        raw += value.to_bytes(2, 'little')

    frame = codec.decode(bytes(raw), 1)

    assert frame.heart_rate.value == 0x48
    assert [s.value for s in frame.rr_intervals] == rr_values


def test_8bit_frame_with_rr(codec):
    frame = codec.decode(bytes([0x10, 60, 0x20, 0x03]), 42)

    assert frame.heart_rate.value == 60
    assert [s.value for s in frame.rr_intervals] == [800]


def test_rr_samples_share_frame_arrival_time(codec):
    frame = codec.decode(bytes([0x10, 60, 0x20, 0x03, 0x30, 0x03]), 777)

    assert {s.timestamp for s in frame.samples()} == {777}


def test_trailing_odd_byte_is_ignored(codec):
    frame = codec.decode(bytes([0x10, 60, 0x20, 0x03, 0x99]), 0)

    assert [s.value for s in frame.rr_intervals] == [800]


def test_rr_bytes_ignored_without_rr_flag(codec):
    frame = codec.decode(bytes([0x00, 60, 0x20, 0x03]), 0)

    assert frame.rr_intervals == []


def test_contact_and_energy_flags_do_not_change_hr(codec):
    # 0x06: sensor contact supported + detected
    frame = codec.decode(bytes([0x06, 71]), 0)

    assert frame.heart_rate.value == 71


def test_samples_lists_heart_rate_first(codec):
    frame = codec.decode(bytes([0x10, 60, 0x20, 0x03]), 0)

    kinds = [s.kind for s in frame.samples()]
    assert kinds == [SampleKind.HEART_RATE, SampleKind.RR_INTERVAL]


def test_empty_payload_is_malformed(codec):
    with pytest.raises(MalformedFrameError):
        codec.decode(b'', 0)


@pytest.mark.parametrize('raw', [bytes([0x00]), bytes([0x01, 0x50])])
def test_payload_too_short_for_heart_rate_is_malformed(codec, raw):
    with pytest.raises(MalformedFrameError):
        codec.decode(raw, 0)


def test_malformed_frame_is_a_value_error(codec):
    with pytest.raises(ValueError):
        codec.decode(b'', 0)


def test_module_level_decode():
    assert decode(bytes([0x00, 90]), 3).heart_rate.value == 90
