"""Shared fakes standing in for bleak's client, scanner and establish_connection."""
import asyncio
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest
from bleak.exc import BleakError

from smartwater_control.client import SmartWaterClient
from smartwater_control.config import Settings
from smartwater_control.const import (
    COMMAND_CHAR_UUID,
    HISTORY_CHAR_UUID,
    MAX_LEVEL_CHAR_UUID,
    MIN_LEVEL_CHAR_UUID,
    SENSOR_DATA_CHAR_UUID,
)

ALL_CHARS = {
    SENSOR_DATA_CHAR_UUID,
    COMMAND_CHAR_UUID,
    HISTORY_CHAR_UUID,
    MAX_LEVEL_CHAR_UUID,
    MIN_LEVEL_CHAR_UUID,
}

ADDR_A = "AA:AA:AA:AA:AA:01"
ADDR_B = "BB:BB:BB:BB:BB:02"


class FakeServices:
    def __init__(self, uuids):
        self._uuids = set(uuids)

    def get_characteristic(self, uuid):
        return SimpleNamespace(uuid=uuid) if uuid in self._uuids else None


class FakeBleakClient:
    def __init__(self, address: str, uuids=ALL_CHARS):
        self.address = address
        self.is_connected = True
        self.services = FakeServices(uuids)
        self.reads: Dict[str, bytes] = {}
        self.writes: List[tuple] = []
        self.notify_handlers: Dict[str, Callable] = {}
        self.stopped: List[str] = []
        self.fail_writes = False
        self.fail_reads = False
        self.disconnect_calls = 0
        self.disconnected_callback: Optional[Callable] = None

    async def write_gatt_char(self, uuid, data, response=False):
        if self.fail_writes:
            raise BleakError("write rejected")
        self.writes.append((uuid, bytes(data)))

    async def read_gatt_char(self, uuid):
        if self.fail_reads:
            raise BleakError("read failed")
        return bytearray(self.reads.get(uuid, b""))

    async def start_notify(self, uuid, handler):
        self.notify_handlers[uuid] = handler

    async def stop_notify(self, uuid):
        self.notify_handlers.pop(uuid, None)
        self.stopped.append(uuid)

    async def disconnect(self):
        self.is_connected = False
        self.disconnect_calls += 1
        if self.disconnected_callback:
            self.disconnected_callback(self)

    def notify(self, uuid, data: bytes) -> None:
        handler = self.notify_handlers.get(uuid)
        if handler:
            handler(None, bytearray(data))

    def drop_link(self) -> None:
        """Simulate the peripheral going away without us asking."""
        self.is_connected = False
        if self.disconnected_callback:
            self.disconnected_callback(self)


def ble_device(address: str, name: Optional[str]):
    return SimpleNamespace(address=address, name=name)


def advert(rssi: int = -60, local_name: Optional[str] = None):
    return SimpleNamespace(rssi=rssi, local_name=local_name)


def make_scanner(adverts=(), known=None, fail_start=False):
    """Build a BleakScanner stand-in class bound to the given adverts."""

    class FakeScanner:
        instances: List["FakeScanner"] = []

        def __init__(self, detection_callback=None):
            self.detection_callback = detection_callback
            self.started = False
            self.stopped = False
            FakeScanner.instances.append(self)

        async def start(self):
            if fail_start:
                raise BleakError("adapter off")
            self.started = True
            for dev, adv in adverts:
                self.detection_callback(dev, adv)

        async def stop(self):
            self.stopped = True

        @classmethod
        async def find_device_by_address(cls, address, timeout=10.0):
            return (known or {}).get(address)

    return FakeScanner


class FakeConnector:
    """Replacement for bleak_retry_connector.establish_connection."""

    def __init__(self, uuids=ALL_CHARS):
        self.uuids = uuids
        self.clients: Dict[str, FakeBleakClient] = {}
        self.fail: set = set()
        self.calls: List[tuple] = []
        self.reads: Dict[str, bytes] = {}

    async def __call__(self, client_cls, device, name, disconnected_callback=None, **kwargs):
        self.calls.append((device.address, name, kwargs))
        if device.address in self.fail:
            raise BleakError("connection failed")
        client = FakeBleakClient(device.address, self.uuids)
        client.disconnected_callback = disconnected_callback
        client.reads.update(self.reads)
        self.clients[device.address] = client
        return client


async def drain(rounds: int = 5) -> None:
    """Let queued notification pumps run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    return Settings(scan_timeout=0.05, settle_delay=0)


@pytest.fixture
def known_devices():
    return {
        ADDR_A: ble_device(ADDR_A, "ESP32_Kitchen"),
        ADDR_B: ble_device(ADDR_B, "ESP32_Office"),
    }


@pytest.fixture
def make_client(settings, known_devices):
    """Factory: returns (SmartWaterClient, FakeConnector, scanner class)."""

    def _factory(adverts=(), uuids=ALL_CHARS, fail_start=False):
        connector = FakeConnector(uuids)
        scanner_cls = make_scanner(adverts, known_devices, fail_start=fail_start)
        client = SmartWaterClient(settings, scanner_cls=scanner_cls, connect_fn=connector)
        return client, connector, scanner_cls

    return _factory
