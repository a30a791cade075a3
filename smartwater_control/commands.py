# smartwater_control/commands.py
"""Builders for the dispenser's plain-text command grammar.

    PUMP_ON | PUMP_OFF | AUTO | MANUAL | GET_HISTORY_DATA
    SET_MAX_LEVEL:<integer> | SET_MIN_LEVEL:<integer>

One command per write, no acknowledgement beyond the GATT write response.
"""

from __future__ import annotations

import re

from .const import (
    CMD_GET_HISTORY,
    CMD_MODE_AUTO,
    CMD_MODE_MANUAL,
    CMD_PUMP_OFF,
    CMD_PUMP_ON,
    CMD_SET_MAX_LEVEL,
    CMD_SET_MIN_LEVEL,
    LEVEL_MAX,
    LEVEL_MIN,
)
from .models import DeviceMode

__all__ = [
    "create_pump_on_command",
    "create_pump_off_command",
    "create_mode_command",
    "create_set_max_level_command",
    "create_set_min_level_command",
    "create_history_request_command",
    "validate_command",
]

_PLAIN_COMMANDS = frozenset(
    {CMD_PUMP_ON, CMD_PUMP_OFF, CMD_MODE_AUTO, CMD_MODE_MANUAL, CMD_GET_HISTORY}
)
_LEVEL_RE = re.compile(rf"^({CMD_SET_MAX_LEVEL}|{CMD_SET_MIN_LEVEL}):(-?\d+)$")


def _check_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise TypeError(f"Level must be int (got {type(level).__name__})")
    if level < LEVEL_MIN or level > LEVEL_MAX:
        raise ValueError(f"Level out of range {LEVEL_MIN}..{LEVEL_MAX}: {level}")
    return level


def create_pump_on_command() -> str:
    return CMD_PUMP_ON


def create_pump_off_command() -> str:
    return CMD_PUMP_OFF


def create_mode_command(mode: DeviceMode | str) -> str:
    # DeviceMode is a str enum, so .upper() works on both forms
    return DeviceMode(mode.upper()).value


def create_set_max_level_command(level: int) -> str:
    return f"{CMD_SET_MAX_LEVEL}:{_check_level(level)}"


def create_set_min_level_command(level: int) -> str:
    return f"{CMD_SET_MIN_LEVEL}:{_check_level(level)}"


def create_history_request_command() -> str:
    return CMD_GET_HISTORY


def validate_command(text: str) -> str:
    """Return ``text`` if it is a well-formed command, else raise ValueError."""
    if text in _PLAIN_COMMANDS:
        return text
    m = _LEVEL_RE.match(text or "")
    if m:
        _check_level(int(m.group(2)))
        return text
    raise ValueError(f"Unknown command: {text!r}")
