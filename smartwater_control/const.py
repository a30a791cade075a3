# smartwater_control/const.py
"""Constants for the smart water dispenser client."""

from __future__ import annotations

from .models import CharacteristicAddress

# ────────────────────────────────────────────────────────────────────────────────
# Core identifiers
# ────────────────────────────────────────────────────────────────────────────────

# Only adverts whose name starts with this prefix are surfaced by a scan.
DEVICE_NAME_PREFIX: str = "ESP32_"

# ────────────────────────────────────────────────────────────────────────────────
# BLE GATT layout (fixed by the ESP32 firmware, not discovered)
# ────────────────────────────────────────────────────────────────────────────────
ENVIRONMENTAL_SENSING_SERVICE_UUID = "0000181a-0000-1000-8000-00805f9b34fb"
SENSOR_DATA_CHAR_UUID = "00002a6e-0000-1000-8000-00805f9b34fb"  # notify
COMMAND_CHAR_UUID = "00002a3d-0000-1000-8000-00805f9b34fb"  # write / read mode
HISTORY_CHAR_UUID = "00002a3e-0000-1000-8000-00805f9b34fb"  # read
MAX_LEVEL_CHAR_UUID = "00002a3f-0000-1000-8000-00805f9b34fb"  # read
MIN_LEVEL_CHAR_UUID = "00002a40-0000-1000-8000-00805f9b34fb"  # read

SENSOR_STREAM = CharacteristicAddress(ENVIRONMENTAL_SENSING_SERVICE_UUID, SENSOR_DATA_CHAR_UUID)
COMMAND_SINK = CharacteristicAddress(ENVIRONMENTAL_SENSING_SERVICE_UUID, COMMAND_CHAR_UUID)
HISTORY_BUFFER = CharacteristicAddress(ENVIRONMENTAL_SENSING_SERVICE_UUID, HISTORY_CHAR_UUID)
MAX_THRESHOLD = CharacteristicAddress(ENVIRONMENTAL_SENSING_SERVICE_UUID, MAX_LEVEL_CHAR_UUID)
MIN_THRESHOLD = CharacteristicAddress(ENVIRONMENTAL_SENSING_SERVICE_UUID, MIN_LEVEL_CHAR_UUID)

# Characteristics a device must expose before we adopt it as the selected one.
REQUIRED_ADDRESSES = (SENSOR_STREAM, COMMAND_SINK)

# ────────────────────────────────────────────────────────────────────────────────
# Command grammar (plain text, one command per write)
# ────────────────────────────────────────────────────────────────────────────────
CMD_PUMP_ON = "PUMP_ON"
CMD_PUMP_OFF = "PUMP_OFF"
CMD_MODE_AUTO = "AUTO"
CMD_MODE_MANUAL = "MANUAL"
CMD_SET_MAX_LEVEL = "SET_MAX_LEVEL"
CMD_SET_MIN_LEVEL = "SET_MIN_LEVEL"
CMD_GET_HISTORY = "GET_HISTORY_DATA"

LEVEL_MIN = 0
LEVEL_MAX = 100

SAMPLE_DELIMITER = ","

# ────────────────────────────────────────────────────────────────────────────────
# Timing defaults
# ────────────────────────────────────────────────────────────────────────────────
SCAN_TIMEOUT: float = 10.0
HISTORY_SETTLE_DELAY: float = 0.5
CONNECT_ATTEMPTS: int = 1

# ────────────────────────────────────────────────────────────────────────────────
# Display defaults
# ────────────────────────────────────────────────────────────────────────────────
STATUS_ONLINE = "Online"
STATUS_OFFLINE = "Offline"
NOT_CONNECTED_LABEL = "Not connected"
NOT_AVAILABLE_LABEL = "N/A"
