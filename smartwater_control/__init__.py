"""BLE client for the ESP32 smart water dispenser.

- Channel codec and command builders for the dispenser's plain-text protocol.
- Connection manager owning the single selected device (scan, connect, drop).
- Telemetry monitor for the live sensor stream and pump mode.
- History aggregator turning the raw hourly buffer into daily / weekly /
  monthly series with summary stats.
"""
from __future__ import annotations

from .client import SmartWaterClient
from .config import Settings, load_settings
from .exception import (
    CharacteristicMissingError,
    ConfigError,
    DecodeError,
    DeviceNotFound,
    NotConnected,
    SmartWaterError,
    TransportError,
)
from .models import (
    Bucket,
    DeviceHandle,
    DeviceMode,
    DiscoveredDevice,
    Granularity,
    HistoryResult,
    SummaryStats,
    Thresholds,
)

__all__ = [
    "Bucket",
    "CharacteristicMissingError",
    "ConfigError",
    "DecodeError",
    "DeviceHandle",
    "DeviceMode",
    "DeviceNotFound",
    "DiscoveredDevice",
    "Granularity",
    "HistoryResult",
    "NotConnected",
    "Settings",
    "SmartWaterClient",
    "SmartWaterError",
    "SummaryStats",
    "Thresholds",
    "TransportError",
    "load_settings",
]
