# smartwater_control/client.py
"""Facade used by the presentation layer (CLI, UI, scripts).

Wires one ConnectionManager, one TelemetryMonitor and one HistoryAggregator
together and exposes the operations a screen would trigger. Use it as an async
context manager so the device is released when the owning scope ends:

    async with SmartWaterClient() as client:
        await client.connect("AA:BB:CC:DD:EE:FF")
        await client.pump_on()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from . import commands
from .config import Settings, load_settings
from .const import COMMAND_SINK, MAX_THRESHOLD, MIN_THRESHOLD
from .connection import ConnectionManager
from .exception import DecodeError
from .history import HistoryAggregator
from .models import (
    CharacteristicAddress,
    DeviceHandle,
    DeviceMode,
    DiscoveredDevice,
    Granularity,
    HistoryResult,
    Thresholds,
)
from .telemetry import SensorListener, TelemetryMonitor

_LOGGER = logging.getLogger(__name__)


class SmartWaterClient:
    """Single entry point for talking to one dispenser."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        scanner_cls: Any = None,
        connect_fn: Any = None,
        client_cls: Any = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.connection = ConnectionManager(
            self.settings,
            scanner_cls=scanner_cls,
            connect_fn=connect_fn,
            client_cls=client_cls,
        )
        self.telemetry = TelemetryMonitor(self.connection)
        self.history = HistoryAggregator(self.connection, settle_delay=self.settings.settle_delay)

    async def __aenter__(self) -> "SmartWaterClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.connection.stop_scan()
        await self.connection.disconnect()

    # ---- display state ----
    @property
    def status(self) -> str:
        return self.connection.status

    @property
    def device_label(self) -> str:
        return self.connection.device_label

    @property
    def selected(self) -> DeviceHandle | None:
        return self.connection.selected

    @property
    def latest_value(self) -> Optional[str]:
        return self.telemetry.latest_value

    @property
    def last_updated_label(self) -> str:
        return self.telemetry.last_updated_label

    @property
    def mode(self) -> DeviceMode:
        return self.telemetry.mode

    # ---- discovery / lifecycle ----
    async def scan(self, timeout: float | None = None) -> List[DiscoveredDevice]:
        return await self.connection.scan(timeout)

    def stop_scan(self) -> None:
        self.connection.stop_scan()

    async def connect(self, identifier: str) -> DeviceHandle:
        return await self.connection.connect(identifier)

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    # ---- commands ----
    async def send_command(self, command: str) -> None:
        """Write one command to the device.

        Raises ValueError for text outside the command grammar, NotConnected
        when no device is selected and TransportError when the write fails.
        """
        commands.validate_command(command)
        channel = self.connection.require_channel()
        await channel.write(COMMAND_SINK, command)
        _LOGGER.debug("%s: Command sent: %s", channel.name, command)

    async def pump_on(self) -> None:
        await self.send_command(commands.create_pump_on_command())

    async def pump_off(self) -> None:
        await self.send_command(commands.create_pump_off_command())

    async def set_mode(self, mode: DeviceMode | str) -> None:
        await self.send_command(commands.create_mode_command(mode))
        self.telemetry.mode = DeviceMode(mode.upper())

    async def toggle_mode(self) -> DeviceMode:
        return await self.telemetry.toggle_mode()

    async def set_max_level(self, level: int) -> None:
        await self.send_command(commands.create_set_max_level_command(level))

    async def set_min_level(self, level: int) -> None:
        await self.send_command(commands.create_set_min_level_command(level))

    async def _read_level(self, address: CharacteristicAddress) -> Optional[int]:
        channel = self.connection.require_channel()
        try:
            text = await channel.read_once(address)
        except DecodeError as ex:
            _LOGGER.warning("%s: threshold unreadable: %s", channel.name, ex)
            return None
        if text is None:
            return None
        try:
            return int(float(text.strip()))
        except (ValueError, OverflowError):
            _LOGGER.warning("%s: threshold %r is not a number", channel.name, text)
            return None

    async def read_thresholds(self) -> Thresholds:
        """Current max/min fill levels; raises NotConnected / TransportError."""
        return Thresholds(
            max_level=await self._read_level(MAX_THRESHOLD),
            min_level=await self._read_level(MIN_THRESHOLD),
        )

    # ---- telemetry / history ----
    def subscribe_to_sensor_updates(self, callback: SensorListener) -> Callable[[], None]:
        return self.telemetry.subscribe_to_sensor_updates(callback)

    async def request_history(self, granularity: Granularity | str) -> HistoryResult:
        return await self.history.request_history(granularity)
