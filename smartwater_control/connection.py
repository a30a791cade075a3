# smartwater_control/connection.py
"""Discovery and connection lifecycle for the single selected dispenser.

The manager is the only owner of the selected DeviceHandle. Other components
get the handle and its CommunicationChannel through connect / disconnect
listeners instead of looking them up globally.

State machine:

    IDLE -> SCANNING -> (IDLE | CONNECTING) -> CONNECTED -> IDLE
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from bleak import BleakScanner
from bleak_retry_connector import (
    BLEAK_RETRY_EXCEPTIONS as BLEAK_EXCEPTIONS,
    BleakClientWithServiceCache,
    establish_connection,
)

from .channel import CommunicationChannel
from .config import Settings
from .const import (
    NOT_CONNECTED_LABEL,
    REQUIRED_ADDRESSES,
    STATUS_OFFLINE,
    STATUS_ONLINE,
)
from .exception import CharacteristicMissingError, DeviceNotFound, NotConnected, TransportError
from .models import ConnectionState, DeviceHandle, DiscoveredDevice, ManagerState

if TYPE_CHECKING:  # pragma: no cover
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

ConnectListener = Callable[[DeviceHandle, CommunicationChannel], Awaitable[None]]
DisconnectListener = Callable[[DeviceHandle], None]
DiscoveryListener = Callable[[DiscoveredDevice], None]

_LOGGER = logging.getLogger(__name__)


def matches_product_name(name: str | None, prefix: str) -> bool:
    return bool(name) and name.startswith(prefix)  # type: ignore[union-attr]


class ConnectionManager:
    """Own scanning, connecting and the one selected device."""

    def __init__(
        self,
        settings: Settings,
        *,
        scanner_cls: Any = None,
        connect_fn: Any = None,
        client_cls: Any = None,
    ) -> None:
        self.settings = settings
        self._scanner_cls = scanner_cls or BleakScanner
        self._connect_fn = connect_fn or establish_connection
        self._client_cls = client_cls or BleakClientWithServiceCache

        self._selected: DeviceHandle | None = None
        self._channel: CommunicationChannel | None = None
        self._connecting = False
        self._expected_disconnect = False
        self._connect_lock = asyncio.Lock()

        self._discovered: Dict[str, DiscoveredDevice] = {}
        self._ble_devices: Dict[str, "BLEDevice"] = {}
        self._scan_task: asyncio.Task | None = None
        self._scan_stop: asyncio.Event | None = None

        self._connect_listeners: List[ConnectListener] = []
        self._disconnect_listeners: List[DisconnectListener] = []
        self._discovery_listeners: List[DiscoveryListener] = []

    # ────────────────────────────────────────────────────────────────
    # Read-only view
    # ────────────────────────────────────────────────────────────────
    @property
    def state(self) -> ManagerState:
        if self._connecting:
            return ManagerState.CONNECTING
        if self.scanning:
            return ManagerState.SCANNING
        if self._selected is not None:
            return ManagerState.CONNECTED
        return ManagerState.IDLE

    @property
    def scanning(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    @property
    def selected(self) -> DeviceHandle | None:
        return self._selected

    @property
    def channel(self) -> CommunicationChannel | None:
        return self._channel

    def require_channel(self) -> CommunicationChannel:
        if self._channel is None:
            raise NotConnected()
        return self._channel

    @property
    def status(self) -> str:
        return STATUS_ONLINE if self._selected is not None else STATUS_OFFLINE

    @property
    def device_label(self) -> str:
        return self._selected.label if self._selected else NOT_CONNECTED_LABEL

    @property
    def discovered(self) -> List[DiscoveredDevice]:
        return list(self._discovered.values())

    # ────────────────────────────────────────────────────────────────
    # Listeners
    # ────────────────────────────────────────────────────────────────
    def add_connect_listener(self, cb: ConnectListener) -> Callable[[], None]:
        self._connect_listeners.append(cb)
        return lambda: self._remove(self._connect_listeners, cb)

    def add_disconnect_listener(self, cb: DisconnectListener) -> Callable[[], None]:
        self._disconnect_listeners.append(cb)
        return lambda: self._remove(self._disconnect_listeners, cb)

    def add_discovery_listener(self, cb: DiscoveryListener) -> Callable[[], None]:
        self._discovery_listeners.append(cb)
        return lambda: self._remove(self._discovery_listeners, cb)

    @staticmethod
    def _remove(listeners: list, cb: Any) -> None:
        try:
            listeners.remove(cb)
        except ValueError:
            pass

    # ────────────────────────────────────────────────────────────────
    # Scanning
    # ────────────────────────────────────────────────────────────────
    def _detection_callback(self, device: "BLEDevice", advertisement_data: "AdvertisementData") -> None:
        name = device.name or getattr(advertisement_data, "local_name", None)
        if not matches_product_name(name, self.settings.name_prefix):
            return
        is_new = device.address not in self._discovered
        entry = DiscoveredDevice(device.address, name, getattr(advertisement_data, "rssi", None))
        self._discovered[device.address] = entry
        self._ble_devices[device.address] = device
        if not is_new:
            return
        _LOGGER.debug("Discovered %s (%s); RSSI: %s", name, device.address, entry.rssi)
        for cb in tuple(self._discovery_listeners):
            try:
                cb(entry)
            except Exception:
                _LOGGER.debug("discovery listener raised", exc_info=True)

    def start_scan(self, timeout: float | None = None) -> "asyncio.Task[List[DiscoveredDevice]]":
        """Start a scan window; a scan already running is returned as-is."""
        if self._scan_task is not None and not self._scan_task.done():
            return self._scan_task
        self._discovered.clear()
        self._ble_devices.clear()
        self._scan_stop = asyncio.Event()
        window = self.settings.scan_timeout if timeout is None else timeout
        self._scan_task = asyncio.create_task(self._run_scan(window, self._scan_stop))
        return self._scan_task

    async def _run_scan(self, window: float, stop: asyncio.Event) -> List[DiscoveredDevice]:
        scanner = self._scanner_cls(detection_callback=self._detection_callback)
        _LOGGER.debug("Scanning for '%s*' devices for %ss", self.settings.name_prefix, window)
        try:
            await scanner.start()
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.error("Scan error: %s", ex)
            raise TransportError("Failed to start scanning") from ex
        try:
            await asyncio.wait_for(stop.wait(), timeout=window)
        except asyncio.TimeoutError:
            _LOGGER.debug("Scan window of %ss elapsed", window)
        finally:
            try:
                await scanner.stop()
            except BLEAK_EXCEPTIONS:
                _LOGGER.debug("scanner.stop() failed", exc_info=True)
        _LOGGER.debug("Scan finished with %s device(s)", len(self._discovered))
        return self.discovered

    async def scan(self, timeout: float | None = None) -> List[DiscoveredDevice]:
        return await self.start_scan(timeout)

    def stop_scan(self) -> None:
        if self._scan_stop is not None:
            self._scan_stop.set()

    async def wait_scan(self) -> List[DiscoveredDevice]:
        if self._scan_task is None:
            return self.discovered
        return await self._scan_task

    # ────────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ────────────────────────────────────────────────────────────────
    async def _resolve_device(self, identifier: str) -> "BLEDevice":
        ble_device = self._ble_devices.get(identifier) or self._ble_devices.get(identifier.upper())
        if ble_device is not None:
            return ble_device
        try:
            ble_device = await self._scanner_cls.find_device_by_address(
                identifier, timeout=self.settings.scan_timeout
            )
        except BLEAK_EXCEPTIONS as ex:
            raise TransportError(f"Failed to look up {identifier}") from ex
        if ble_device is None:
            raise DeviceNotFound(f"Device {identifier} not found")
        return ble_device

    @staticmethod
    def _check_characteristics(client: Any) -> None:
        services = getattr(client, "services", None)
        if services is None:
            raise CharacteristicMissingError()
        for address in REQUIRED_ADDRESSES:
            if not services.get_characteristic(address.characteristic):
                raise CharacteristicMissingError(f"Characteristic {address} missing")

    async def connect(self, identifier: str) -> DeviceHandle:
        """Connect to ``identifier`` and make it the selected device.

        Any previously selected device is fully disconnected first. On failure
        the manager is left IDLE with nothing selected and TransportError is
        raised.
        """
        if self.scanning:
            self.stop_scan()
            try:
                await self.wait_scan()
            except TransportError:
                pass

        async with self._connect_lock:
            await self._teardown()
            self._connecting = True
            handle = DeviceHandle(identifier, self._known_name(identifier), ConnectionState.CONNECTING)
            try:
                client = await self._open_client(handle)
            except TransportError as ex:
                _LOGGER.error("%s: Connection error: %s", handle.label, ex)
                raise
            finally:
                self._connecting = False

            handle.state = ConnectionState.CONNECTED
            self._expected_disconnect = False
            self._channel = CommunicationChannel(client, handle)
            self._selected = handle
            _LOGGER.info("%s: Connected (%s)", handle.label, handle.identifier)

            for listener in tuple(self._connect_listeners):
                try:
                    await listener(handle, self._channel)
                except Exception:
                    _LOGGER.exception("%s: connect listener failed", handle.label)
            return handle

    def _known_name(self, identifier: str) -> Optional[str]:
        entry = self._discovered.get(identifier)
        return entry.name if entry else None

    async def _open_client(self, handle: DeviceHandle) -> Any:
        ble_device = await self._resolve_device(handle.identifier)
        handle.name = handle.name or getattr(ble_device, "name", None)
        _LOGGER.debug("%s: Connecting", handle.label)
        try:
            client = await self._connect_fn(
                self._client_cls,
                ble_device,
                handle.label,
                self._disconnected,
                max_attempts=self.settings.connect_attempts,
                use_services_cache=True,
                ble_device_callback=lambda: ble_device,
            )
        except BLEAK_EXCEPTIONS as ex:
            raise TransportError(f"Failed to connect to {handle.label}") from ex

        try:
            self._check_characteristics(client)
        except CharacteristicMissingError:
            try:
                await client.disconnect()
            except BLEAK_EXCEPTIONS:
                _LOGGER.debug("%s: disconnect after failed discovery raised", handle.label, exc_info=True)
            raise
        return client

    async def disconnect(self) -> None:
        """Drop the selected device; no-op when nothing is selected."""
        async with self._connect_lock:
            await self._teardown()

    async def _teardown(self) -> None:
        handle, channel = self._selected, self._channel
        if handle is None or channel is None:
            return
        _LOGGER.debug("%s: Disconnecting", handle.label)
        self._expected_disconnect = True
        # subscriptions go first so no callback outlives the selection
        await channel.close()
        self._selected = None
        self._channel = None
        handle.state = ConnectionState.DISCONNECTED
        try:
            await channel.client.disconnect()
        except BLEAK_EXCEPTIONS:
            _LOGGER.debug("%s: disconnect raised", handle.label, exc_info=True)
        _LOGGER.info("%s: Disconnected", handle.label)
        self._notify_disconnected(handle)

    def _disconnected(self, client: Any) -> None:
        """bleak callback; only acts on the currently selected client."""
        channel = self._channel
        if channel is None or channel.client is not client:
            return
        if self._expected_disconnect:
            _LOGGER.debug("%s: Disconnected from device", channel.name)
            return
        _LOGGER.warning("%s: Device unexpectedly disconnected", channel.name)
        handle = channel.handle
        channel.invalidate()
        self._selected = None
        self._channel = None
        handle.state = ConnectionState.DISCONNECTED
        self._notify_disconnected(handle)

    def _notify_disconnected(self, handle: DeviceHandle) -> None:
        for listener in tuple(self._disconnect_listeners):
            try:
                listener(handle)
            except Exception:
                _LOGGER.exception("%s: disconnect listener failed", handle.label)
