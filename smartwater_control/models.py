# smartwater_control/models.py
"""Plain data containers shared by the channel, manager, monitor and aggregator."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum


@dataclass(frozen=True)
class CharacteristicAddress:
    """A (service, characteristic) pair naming one GATT attribute."""

    service: str
    characteristic: str

    def __str__(self) -> str:
        return f"{self.service}:{self.characteristic}"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ManagerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class DeviceMode(str, Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"

    @classmethod
    def from_token(cls, token: str | None) -> "DeviceMode":
        """`AUTO` is auto; anything else (including nothing) is manual."""
        if token is not None and token.strip().upper() == cls.AUTO.value:
            return cls.AUTO
        return cls.MANUAL

    def toggled(self) -> "DeviceMode":
        return DeviceMode.MANUAL if self is DeviceMode.AUTO else DeviceMode.AUTO


@dataclass
class DeviceHandle:
    """The currently selected device."""

    identifier: str
    name: str | None = None
    state: ConnectionState = ConnectionState.DISCONNECTED

    @property
    def label(self) -> str:
        return self.name or self.identifier


@dataclass
class DiscoveredDevice:
    identifier: str
    name: str | None = None
    rssi: int | None = None


class Granularity(str, Enum):
    """Requested history resolution.

    ``window`` is the number of hourly samples folded into one bucket and
    ``sample_count`` the number of samples requested from the device.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def window(self) -> int:
        return _WINDOWS[self]

    @property
    def sample_count(self) -> int:
        return _SAMPLE_COUNTS[self]

    @property
    def bucket_count(self) -> int:
        return math.ceil(self.sample_count / self.window)

    @property
    def label_prefix(self) -> str:
        return _LABEL_PREFIXES[self]


_WINDOWS = {Granularity.DAILY: 1, Granularity.WEEKLY: 24, Granularity.MONTHLY: 24 * 7}
_SAMPLE_COUNTS = {Granularity.DAILY: 24, Granularity.WEEKLY: 168, Granularity.MONTHLY: 720}
_LABEL_PREFIXES = {Granularity.DAILY: "", Granularity.WEEKLY: "Day", Granularity.MONTHLY: "Week"}


@dataclass(frozen=True)
class Bucket:
    label: str
    value: float


@dataclass(frozen=True)
class SummaryStats:
    total: float = 0.0
    average: float = 0.0
    peak: float = 0.0
    generated_at: date | None = None

    @classmethod
    def empty(cls) -> "SummaryStats":
        return cls()


@dataclass
class HistoryResult:
    """Bucket series + stats for one history request.

    ``error`` holds a single user-facing message when the request fell back
    to the empty result because something went wrong.
    """

    granularity: Granularity
    series: list[Bucket] = field(default_factory=list)
    stats: SummaryStats = field(default_factory=SummaryStats.empty)
    error: str | None = None

    @property
    def labels(self) -> list[str]:
        return [b.label for b in self.series]

    @property
    def values(self) -> list[float]:
        return [b.value for b in self.series]

    @classmethod
    def empty(cls, granularity: Granularity, error: str | None = None) -> "HistoryResult":
        return cls(granularity=granularity, error=error)


@dataclass(frozen=True)
class Thresholds:
    max_level: int | None = None
    min_level: int | None = None
