"""
Heart Rate Frame Codec
Decodes Heart Rate Measurement (0x2A37) notification payloads

Layout:
    byte 0      flags; bit 0 (0x01) = 16-bit heart rate, bit 4 (0x10) = RR values follow
    byte 1[-2]  heart rate, uint8 or little-endian uint16
    rest        RR intervals, little-endian uint16 each, as many as fit

Other flag bits (sensor contact, energy expended) are ignored.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ...errors import MalformedFrameError
from ...models import Sample, SampleKind

logger = logging.getLogger(__name__)

FLAG_HR_16BIT = 0x01
FLAG_RR_PRESENT = 0x10


@dataclass(frozen=True)
class DecodedFrame:
    """One notification's worth of samples, all sharing the arrival time."""
    heart_rate: Sample
    rr_intervals: List[Sample] = field(default_factory=list)

    def samples(self) -> List[Sample]:
        """Heart rate first, then RR values in payload order."""
        return [self.heart_rate, *self.rr_intervals]


class FrameCodec:
    """
    Stateless decoder for heart-rate notifications.

    RR values are stamped with the frame's arrival time rather than a
    per-beat reconstruction; downstream files keep that convention.
    """

    def decode(self, raw: bytes, arrival_ms: int) -> DecodedFrame:
        """
        Decode one notification payload.

        Args:
            raw:        Notification bytes.
            arrival_ms: Wall-clock milliseconds when the frame was received.

        Returns:
            DecodedFrame with one heart-rate sample and zero or more RR samples.

        Raises:
            MalformedFrameError: empty payload, or too short for its heart-rate field.
        """
        if not raw:
            raise MalformedFrameError("Empty heart-rate frame")

        data = bytes(raw)
        flags = data[0]
        is_16bit = bool(flags & FLAG_HR_16BIT)

        if is_16bit:
            if len(data) < 3:
                raise MalformedFrameError(f"16-bit heart-rate frame too short ({len(data)} bytes)")
            hr_value = int.from_bytes(data[1:3], 'little')
            offset = 3
        else:
            if len(data) < 2:
                raise MalformedFrameError(f"8-bit heart-rate frame too short ({len(data)} bytes)")
            hr_value = data[1]
            offset = 2

        heart_rate = Sample(SampleKind.HEART_RATE, hr_value, arrival_ms)

        rr_intervals = []
        if flags & FLAG_RR_PRESENT:
            # Trailing odd byte is left unparsed
            while offset + 2 <= len(data):
                rr_value = int.from_bytes(data[offset:offset + 2], 'little')
                rr_intervals.append(Sample(SampleKind.RR_INTERVAL, rr_value, arrival_ms))
                offset += 2

            if offset < len(data):
                logger.debug(f"Ignoring {len(data) - offset} trailing byte(s) in RR block")

        return DecodedFrame(heart_rate, rr_intervals)


def decode(raw: bytes, arrival_ms: int) -> DecodedFrame:
    """Module-level shortcut for FrameCodec().decode."""
    return _CODEC.decode(raw, arrival_ms)


_CODEC = FrameCodec()
