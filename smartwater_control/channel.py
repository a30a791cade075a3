# smartwater_control/channel.py
"""GATT communication channel to the selected dispenser.

Notes:
- One channel wraps one connected bleak client; it never reconnects.
- Writes are not queued or locked; callers serialize them if ordering matters.
- Notifications are fanned out per characteristic. Each subscription owns a
  queue and a pump task, so a slow subscriber never blocks bleak's callback
  and cancelling a subscription drops anything still queued for it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from bleak_retry_connector import BLEAK_RETRY_EXCEPTIONS as BLEAK_EXCEPTIONS

from .codec import decode_payload, encode_command
from .exception import DecodeError, NotConnected, TransportError
from .models import CharacteristicAddress, DeviceHandle

if TYPE_CHECKING:  # pragma: no cover
    from bleak.backends.characteristic import BleakGATTCharacteristic

UpdateCallback = Callable[[Optional[str], Optional[Exception]], None]

_LOGGER = logging.getLogger(__name__)


class Subscription:
    """Handle for one standing notification stream.

    ``on_update(value, error)`` gets exactly one of the two per notification.
    """

    def __init__(
        self,
        address: CharacteristicAddress,
        on_update: UpdateCallback,
        logger: logging.Logger,
    ) -> None:
        self.address = address
        self._on_update = on_update
        self._logger = logger
        self._queue: asyncio.Queue[Tuple[Optional[str], Optional[Exception]] | None] = asyncio.Queue()
        self._cancelled = False
        self._task = asyncio.create_task(self._pump())

    @property
    def active(self) -> bool:
        return not self._cancelled

    def push(self, value: Optional[str], error: Optional[Exception]) -> None:
        if not self._cancelled:
            self._queue.put_nowait((value, error))

    async def _pump(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None or self._cancelled:
                return
            value, error = item
            if error is not None:
                self._logger.warning("Notification on %s not delivered: %s", self.address, error)
            try:
                self._on_update(value, error)
            except Exception:
                self._logger.debug("Subscriber on %s raised", self.address, exc_info=True)

    def close(self) -> bool:
        """Stop delivery; returns False if it was already closed."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._queue.put_nowait(None)
        return True


class CommunicationChannel:
    """Write / read-once / subscribe over one connected bleak client."""

    def __init__(self, client: Any, handle: DeviceHandle) -> None:
        self._client = client
        self.handle = handle
        self._logger = logging.getLogger(
            f"{__package__}.{handle.identifier.replace(':', '-')}"
        )
        self._subscriptions: Dict[CharacteristicAddress, List[Subscription]] = {}
        self._closed = False

    @property
    def name(self) -> str:
        return self.handle.label

    @property
    def is_open(self) -> bool:
        return not self._closed and bool(getattr(self._client, "is_connected", False))

    @property
    def client(self) -> Any:
        return self._client

    def _require_open(self) -> None:
        if not self.is_open:
            raise NotConnected()

    # ---- request / response ----
    async def write(self, address: CharacteristicAddress, command: str) -> None:
        self._require_open()
        self._logger.debug("%s: Writing %r to %s", self.name, command, address)
        try:
            await self._client.write_gatt_char(
                address.characteristic, encode_command(command), response=True
            )
        except BLEAK_EXCEPTIONS as ex:
            self._logger.debug("%s: write failed", self.name, exc_info=True)
            raise TransportError(f"Failed to send {command} to {self.name}") from ex

    async def read_once(self, address: CharacteristicAddress) -> Optional[str]:
        """Read a characteristic; ``None`` means the device had no value."""
        self._require_open()
        try:
            data = await self._client.read_gatt_char(address.characteristic)
        except BLEAK_EXCEPTIONS as ex:
            self._logger.debug("%s: read of %s failed", self.name, address, exc_info=True)
            raise TransportError(f"Failed to read from {self.name}") from ex
        if not data:
            self._logger.debug("%s: %s returned no value", self.name, address)
            return None
        return decode_payload(data)

    # ---- notifications ----
    def _make_handler(
        self, address: CharacteristicAddress
    ) -> Callable[["BleakGATTCharacteristic", bytearray], None]:
        def _handler(_sender: "BleakGATTCharacteristic", data: bytearray) -> None:
            self._logger.debug(
                "%s: Notification received on %s: %s", self.name, address, bytes(data).hex(" ").upper()
            )
            value: Optional[str] = None
            error: Optional[Exception] = None
            try:
                value = decode_payload(data)
            except DecodeError as ex:
                error = ex
            for sub in tuple(self._subscriptions.get(address, ())):
                sub.push(value, error)

        return _handler

    async def subscribe(self, address: CharacteristicAddress, on_update: UpdateCallback) -> Subscription:
        self._require_open()
        sub = Subscription(address, on_update, self._logger)
        subs = self._subscriptions.get(address)
        if subs:
            subs.append(sub)
            return sub

        self._subscriptions[address] = [sub]
        self._logger.debug("%s: Subscribe to notifications on %s", self.name, address)
        try:
            await self._client.start_notify(address.characteristic, self._make_handler(address))
        except BLEAK_EXCEPTIONS as ex:
            sub.close()
            self._subscriptions.pop(address, None)
            raise TransportError(f"Failed to subscribe to {self.name}") from ex
        return sub

    async def cancel(self, subscription: Subscription) -> None:
        """Cancel a subscription; safe to call more than once."""
        if not subscription.close():
            return
        subs = self._subscriptions.get(subscription.address)
        if subs is None or subscription not in subs:
            return
        subs.remove(subscription)
        if subs:
            return
        del self._subscriptions[subscription.address]
        if self.is_open:
            try:
                await self._client.stop_notify(subscription.address.characteristic)
            except BLEAK_EXCEPTIONS:
                self._logger.debug(
                    "%s: stop_notify failed (already stopped?)", self.name, exc_info=True
                )

    @property
    def subscriptions(self) -> List[Subscription]:
        return [sub for subs in self._subscriptions.values() for sub in subs]

    async def close(self) -> None:
        """Cancel every subscription, then refuse further operations."""
        for sub in self.subscriptions:
            await self.cancel(sub)
        self._closed = True

    def invalidate(self) -> None:
        """Drop every subscription without touching a link that is already gone."""
        for sub in self.subscriptions:
            sub.close()
        self._subscriptions.clear()
        self._closed = True
