import base64

import pytest

from smartwater_control.codec import (
    decode_captured_payload,
    decode_payload,
    encode_command,
    parse_sample_list,
)
from smartwater_control.exception import DecodeError


@pytest.mark.parametrize(
    "command",
    ["PUMP_ON", "PUMP_OFF", "AUTO", "MANUAL", "GET_HISTORY_DATA", "SET_MAX_LEVEL:80", "SET_MIN_LEVEL:5"],
)
def test_command_round_trip(command):
    assert decode_payload(encode_command(command)) == command


def test_encode_is_plain_utf8():
    assert encode_command("PUMP_ON") == b"PUMP_ON"


def test_decode_rejects_malformed_bytes():
    with pytest.raises(DecodeError):
        decode_payload(b"\xff\xfe\x00")


def test_parse_sample_list_non_numeric_becomes_zero():
    assert parse_sample_list("1,2,x,4") == [1, 2, 0, 4]


def test_parse_sample_list_keeps_length_and_decimals():
    values = parse_sample_list(" 1.5, 2 ,,nan,inf,-3")
    assert values == [1.5, 2.0, 0.0, 0.0, 0.0, -3.0]


def test_parse_sample_list_empty():
    assert parse_sample_list("") == []
    assert parse_sample_list("   ") == []


def test_decode_captured_payload_hex_and_base64():
    assert decode_captured_payload("50 55 4d 50 5f 4f 4e") == b"PUMP_ON"
    b64 = base64.b64encode(b"1,2,3").decode()
    assert decode_captured_payload(b64) == b"1,2,3"


def test_decode_captured_payload_rejects_garbage():
    with pytest.raises(DecodeError):
        decode_captured_payload("not*valid")
    with pytest.raises(DecodeError):
        decode_captured_payload("")
