# smartwater_control/config.py
"""Settings for the dispenser client.

Sources, lowest precedence first:
  1. defaults from const.py
  2. a JSON file (explicit path, or $SMARTWATER_CONFIG)
  3. SMARTWATER_* environment variables
  4. keyword overrides passed to load_settings()
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import voluptuous as vol

from .const import CONNECT_ATTEMPTS, DEVICE_NAME_PREFIX, HISTORY_SETTLE_DELAY, SCAN_TIMEOUT
from .exception import ConfigError

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "SMARTWATER_"
ENV_CONFIG_FILE = f"{ENV_PREFIX}CONFIG"

CONF_NAME_PREFIX = "name_prefix"
CONF_SCAN_TIMEOUT = "scan_timeout"
CONF_SETTLE_DELAY = "settle_delay"
CONF_CONNECT_ATTEMPTS = "connect_attempts"

SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_NAME_PREFIX, default=DEVICE_NAME_PREFIX): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Optional(CONF_SCAN_TIMEOUT, default=SCAN_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0.01, max=300)
        ),
        vol.Optional(CONF_SETTLE_DELAY, default=HISTORY_SETTLE_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0, max=30)
        ),
        vol.Optional(CONF_CONNECT_ATTEMPTS, default=CONNECT_ATTEMPTS): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=10)
        ),
    }
)


@dataclass(frozen=True)
class Settings:
    name_prefix: str = DEVICE_NAME_PREFIX
    scan_timeout: float = SCAN_TIMEOUT
    settle_delay: float = HISTORY_SETTLE_DELAY
    connect_attempts: int = CONNECT_ATTEMPTS

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _read_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as ex:
        raise ConfigError(f"Cannot read config file {path}: {ex}") from ex
    except json.JSONDecodeError as ex:
        raise ConfigError(f"Config file {path} is not valid JSON: {ex}") from ex
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a JSON object")
    return data


def _read_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in (CONF_NAME_PREFIX, CONF_SCAN_TIMEOUT, CONF_SETTLE_DELAY, CONF_CONNECT_ATTEMPTS):
        env_key = ENV_PREFIX + key.upper()
        if env_key in environ:
            out[key] = environ[env_key]
    return out


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> Settings:
    """Build validated Settings; raises ConfigError on bad input."""
    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    file_path = path or env.get(ENV_CONFIG_FILE)
    if file_path:
        raw.update(_read_file(Path(file_path)))
    raw.update(_read_env(env))
    raw.update({k: v for k, v in overrides.items() if v is not None})

    try:
        validated = SETTINGS_SCHEMA(raw)
    except vol.Invalid as ex:
        raise ConfigError(f"Invalid configuration: {ex}") from ex

    settings = Settings(**validated)
    _LOGGER.debug("Loaded settings: %s", settings)
    return settings
