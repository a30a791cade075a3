import json

import pytest

from smartwater_control.config import Settings, load_settings
from smartwater_control.const import DEVICE_NAME_PREFIX, SCAN_TIMEOUT
from smartwater_control.exception import ConfigError


def test_defaults():
    s = load_settings(environ={})
    assert s == Settings()
    assert s.name_prefix == DEVICE_NAME_PREFIX == "ESP32_"
    assert s.scan_timeout == SCAN_TIMEOUT == 10.0
    assert s.settle_delay == 0.5
    assert s.connect_attempts == 1


def test_file_env_and_overrides_layer(tmp_path):
    cfg = tmp_path / "settings.json"
    cfg.write_text(json.dumps({"name_prefix": "WATER_", "scan_timeout": 4, "settle_delay": 1}))
    env = {"SMARTWATER_SCAN_TIMEOUT": "6.5", "SMARTWATER_CONFIG": str(cfg)}

    s = load_settings(environ=env, settle_delay=0.25)

    assert s.name_prefix == "WATER_"
    assert s.scan_timeout == 6.5
    assert s.settle_delay == 0.25


def test_invalid_values_raise_config_error():
    with pytest.raises(ConfigError):
        load_settings(environ={"SMARTWATER_CONNECT_ATTEMPTS": "0"})
    with pytest.raises(ConfigError):
        load_settings(environ={}, scan_timeout="soon")


def test_unknown_keys_rejected(tmp_path):
    cfg = tmp_path / "settings.json"
    cfg.write_text(json.dumps({"colour": "blue"}))
    with pytest.raises(ConfigError):
        load_settings(cfg, environ={})


def test_unreadable_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "missing.json", environ={})
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        load_settings(bad, environ={})
