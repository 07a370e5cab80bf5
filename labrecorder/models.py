"""
Lab Recorder Data Model
Value types shared by the device, session and analysis layers
"""

from dataclasses import dataclass, field
from enum import Enum


class ConnectionState(Enum):
    """Lifecycle of one device link (one per participant slot)."""
    DISCONNECTED = 'Disconnected'
    CONNECTING = 'Connecting'
    CONNECTED = 'Connected'
    SERVICE_DISCOVERY = 'ServiceDiscovery'
    SUBSCRIBED = 'Subscribed'
    ERROR = 'Error'

    @property
    def is_live(self) -> bool:
        """True once the link is Connected or further along."""
        return self in (
            ConnectionState.CONNECTED,
            ConnectionState.SERVICE_DISCOVERY,
            ConnectionState.SUBSCRIBED,
        )


class SampleKind(Enum):
    HEART_RATE = 'hr'
    RR_INTERVAL = 'rr'


class ChannelKind(Enum):
    """Persisted physiological series for one slot."""
    HR = 'hr'
    RR = 'rr'

    @classmethod
    def for_sample(cls, kind: SampleKind) -> 'ChannelKind':
        return cls.HR if kind is SampleKind.HEART_RATE else cls.RR


class RecordingMode(Enum):
    SINGLE = 'single'
    GROUP = 'group'

    @property
    def slots(self) -> tuple:
        """Participant slots recorded in this mode."""
        return (1,) if self is RecordingMode.SINGLE else (1, 2)


class SessionState(Enum):
    IDLE = 'Idle'
    ACTIVE = 'Active'


# Event kinds with built-in meaning; any other non-empty label is accepted
MANUAL_MARK = 'manual_mark'
INTERVAL_START = 'interval_start'
INTERVAL_END = 'interval_end'


@dataclass(frozen=True)
class Device:
    """
    A discovered heart-rate sensor.

    Equality and hashing use the address only; the advertised name
    can change between scans.
    """
    name: str = field(compare=False)
    address: str

    def __str__(self):
        return f"{self.name} ({self.address})"


@dataclass(frozen=True)
class Sample:
    """
    One decoded physiological value.

    Attributes:
        kind:      HEART_RATE (bpm) or RR_INTERVAL (raw 16-bit value).
        value:     Integer value as decoded from the frame.
        timestamp: Wall-clock milliseconds at which the frame arrived.
    """
    kind: SampleKind
    value: int
    timestamp: int

    @property
    def channel(self) -> ChannelKind:
        return ChannelKind.for_sample(self.kind)


@dataclass(frozen=True)
class EventMark:
    """A user-marked event as written to timestamps.csv."""
    timestamp: int
    kind: str
