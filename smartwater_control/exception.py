# smartwater_control/exception.py
"""Exceptions raised by the smart water dispenser client.

Every exception carries a default message that can be shown to a user as-is.
"""

from __future__ import annotations


class SmartWaterError(Exception):
    """Base class for all client errors."""

    default_message = "Unexpected device error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotConnected(SmartWaterError):
    """An operation needed a selected device and there is none."""

    default_message = "No device connected"


class TransportError(SmartWaterError):
    """The BLE link rejected a write, read, scan or connect."""

    default_message = "Failed to communicate with the device"


class CharacteristicMissingError(TransportError):
    """A required GATT characteristic is not exposed by the device."""

    default_message = "Device does not expose the expected characteristics"


class DeviceNotFound(TransportError):
    """No device with the requested identifier could be resolved."""

    default_message = "Device not found"


class DecodeError(SmartWaterError):
    """A payload could not be decoded or parsed."""

    default_message = "Received data could not be decoded"


class ConfigError(SmartWaterError):
    """Settings failed validation."""

    default_message = "Invalid configuration"
