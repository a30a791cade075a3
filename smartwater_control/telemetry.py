# smartwater_control/telemetry.py
"""Live sensor value and pump mode for the selected dispenser."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .channel import CommunicationChannel, Subscription
from .commands import create_mode_command
from .const import COMMAND_SINK, NOT_AVAILABLE_LABEL, SENSOR_STREAM
from .connection import ConnectionManager
from .exception import DecodeError, NotConnected, TransportError
from .models import DeviceHandle, DeviceMode

SensorListener = Callable[[str, datetime], None]

_LOGGER = logging.getLogger(__name__)


class TelemetryMonitor:
    """Republish the sensor stream of whichever device the manager selects.

    The monitor is the only writer of ``latest_value`` / ``last_updated``.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self.latest_value: Optional[str] = None
        self.last_updated: Optional[datetime] = None
        self.mode: DeviceMode = DeviceMode.MANUAL
        self._subscription: Optional[Subscription] = None
        self._listeners: List[SensorListener] = []
        manager.add_connect_listener(self._on_connected)
        manager.add_disconnect_listener(self._on_disconnected)

    # ---- display helpers ----
    @property
    def latest_number(self) -> Optional[float]:
        if self.latest_value is None:
            return None
        try:
            return float(self.latest_value)
        except ValueError:
            return None

    @property
    def last_updated_label(self) -> str:
        if self.last_updated is None:
            return NOT_AVAILABLE_LABEL
        return self.last_updated.strftime("%H:%M:%S")

    def subscribe_to_sensor_updates(self, cb: SensorListener) -> Callable[[], None]:
        """Call ``cb(value, timestamp)`` for every decoded reading."""
        self._listeners.append(cb)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(cb)
            except ValueError:
                pass

        return _unsubscribe

    # ---- connection hooks ----
    async def _on_connected(self, handle: DeviceHandle, channel: CommunicationChannel) -> None:
        try:
            self._subscription = await channel.subscribe(SENSOR_STREAM, self._on_sensor_update)
        except (NotConnected, TransportError) as ex:
            _LOGGER.error("%s: Error monitoring sensor: %s", handle.label, ex)
        await self.refresh_mode(channel)

    def _on_disconnected(self, handle: DeviceHandle) -> None:
        # the channel already cancelled the subscription itself
        self._subscription = None
        self.latest_value = None
        self.last_updated = None
        self.mode = DeviceMode.MANUAL
        _LOGGER.debug("%s: telemetry reset", handle.label)

    def _on_sensor_update(self, value: Optional[str], error: Optional[Exception]) -> None:
        if error is not None or value is None:
            _LOGGER.debug("Sensor update skipped: %s", error)
            return
        value = value.strip()
        if not value:
            _LOGGER.debug("Sensor update skipped: empty payload")
            return
        now = datetime.now()
        self.latest_value = value
        self.last_updated = now
        for cb in tuple(self._listeners):
            try:
                cb(self.latest_value, now)
            except Exception:
                _LOGGER.debug("sensor listener raised", exc_info=True)

    # ---- mode ----
    async def refresh_mode(self, channel: Optional[CommunicationChannel] = None) -> DeviceMode:
        """Read the mode token once; anything but AUTO counts as manual."""
        token: Optional[str] = None
        try:
            channel = channel or self._manager.require_channel()
            token = await channel.read_once(COMMAND_SINK)
        except (NotConnected, TransportError, DecodeError) as ex:
            _LOGGER.warning("Could not read mode: %s", ex)
        self.mode = DeviceMode.from_token(token)
        return self.mode

    async def toggle_mode(self) -> DeviceMode:
        """Flip the mode locally, then tell the device.

        The new mode is not re-read and is kept even if the write fails; the
        write error still propagates to the caller.
        """
        channel = self._manager.require_channel()
        self.mode = self.mode.toggled()
        await channel.write(COMMAND_SINK, create_mode_command(self.mode))
        return self.mode
