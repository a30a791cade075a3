# smartwater_control/codec.py
"""Payload codec for the dispenser's text protocol.

The firmware speaks plain text over GATT: commands are written as UTF-8 bytes,
sensor notifications and characteristic reads come back as UTF-8 text, and the
history buffer is a comma-separated list of decimals.
"""

from __future__ import annotations

import base64
import binascii
import math
from typing import List

from .const import SAMPLE_DELIMITER
from .exception import DecodeError

__all__ = [
    "encode_command",
    "decode_payload",
    "parse_sample_list",
    "decode_captured_payload",
]


def encode_command(text: str) -> bytes:
    """Return the bytes written to the device for ``text``."""
    return text.encode("utf-8")


def decode_payload(payload: bytes | bytearray) -> str:
    """Inverse of :func:`encode_command`; raises DecodeError on malformed bytes."""
    try:
        return bytes(payload).decode("utf-8")
    except (UnicodeDecodeError, TypeError) as ex:
        raise DecodeError(f"Malformed payload: {ex}") from ex


def _to_number(token: str) -> float:
    try:
        value = float(token)
    except ValueError:
        return 0.0
    # "nan" / "inf" parse in Python but are not readings
    return value if math.isfinite(value) else 0.0


def parse_sample_list(text: str) -> List[float]:
    """Split a history payload into numbers.

    Tokens that are not numbers become ``0.0`` so the list keeps one entry per
    sample the device reported. An empty payload is an empty list.
    """
    if not text or not text.strip():
        return []
    return [_to_number(tok.strip()) for tok in text.split(SAMPLE_DELIMITER)]


def decode_captured_payload(blob: str) -> bytes:
    """Turn a captured characteristic value (hex or base64) back into bytes.

    Hex is tried first since it is unambiguous with spaces stripped; mobile BLE
    stacks log values as base64, so that is the fallback.
    """
    s = "".join((blob or "").split())
    if not s:
        raise DecodeError("Empty payload")
    if len(s) % 2 == 0:
        try:
            return bytes.fromhex(s)
        except ValueError:
            pass
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as ex:
        raise DecodeError("Payload is neither hex nor base64") from ex
