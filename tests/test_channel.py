import asyncio

import pytest

from conftest import FakeBleakClient, drain
from smartwater_control.channel import CommunicationChannel
from smartwater_control.const import COMMAND_SINK, HISTORY_BUFFER, SENSOR_STREAM
from smartwater_control.exception import DecodeError, NotConnected, TransportError
from smartwater_control.models import ConnectionState, DeviceHandle


def _channel():
    client = FakeBleakClient("AA:AA:AA:AA:AA:01")
    handle = DeviceHandle(client.address, "ESP32_Test", ConnectionState.CONNECTED)
    return client, CommunicationChannel(client, handle)


def test_write_encodes_command():
    async def main():
        client, channel = _channel()
        await channel.write(COMMAND_SINK, "PUMP_ON")
        assert client.writes == [(COMMAND_SINK.characteristic, b"PUMP_ON")]

    asyncio.run(main())


def test_write_failure_is_transport_error():
    async def main():
        client, channel = _channel()
        client.fail_writes = True
        with pytest.raises(TransportError):
            await channel.write(COMMAND_SINK, "PUMP_OFF")

    asyncio.run(main())


def test_operations_after_close_raise_not_connected():
    async def main():
        _, channel = _channel()
        await channel.close()
        with pytest.raises(NotConnected):
            await channel.write(COMMAND_SINK, "PUMP_ON")
        with pytest.raises(NotConnected):
            await channel.read_once(HISTORY_BUFFER)

    asyncio.run(main())


def test_read_once_not_available_and_value():
    async def main():
        client, channel = _channel()
        assert await channel.read_once(HISTORY_BUFFER) is None
        client.reads[HISTORY_BUFFER.characteristic] = b"1,2"
        assert await channel.read_once(HISTORY_BUFFER) == "1,2"

    asyncio.run(main())


def test_read_once_errors():
    async def main():
        client, channel = _channel()
        client.reads[HISTORY_BUFFER.characteristic] = b"\xff"
        with pytest.raises(DecodeError):
            await channel.read_once(HISTORY_BUFFER)
        client.fail_reads = True
        with pytest.raises(TransportError):
            await channel.read_once(HISTORY_BUFFER)

    asyncio.run(main())


def test_subscription_delivers_values_and_errors():
    async def main():
        client, channel = _channel()
        got = []
        await channel.subscribe(SENSOR_STREAM, lambda v, e: got.append((v, e)))

        client.notify(SENSOR_STREAM.characteristic, b"42")
        client.notify(SENSOR_STREAM.characteristic, b"\xff")
        client.notify(SENSOR_STREAM.characteristic, b"43")
        await drain()

        assert got[0] == ("42", None)
        assert got[1][0] is None and isinstance(got[1][1], DecodeError)
        # a delivery error does not end the stream
        assert got[2] == ("43", None)

    asyncio.run(main())


def test_fan_out_and_stop_notify_on_last_cancel():
    async def main():
        client, channel = _channel()
        a, b = [], []
        sub_a = await channel.subscribe(SENSOR_STREAM, lambda v, e: a.append(v))
        sub_b = await channel.subscribe(SENSOR_STREAM, lambda v, e: b.append(v))

        client.notify(SENSOR_STREAM.characteristic, b"1")
        await drain()
        await channel.cancel(sub_a)
        client.notify(SENSOR_STREAM.characteristic, b"2")
        await drain()

        assert a == ["1"]
        assert b == ["1", "2"]
        assert client.stopped == []

        await channel.cancel(sub_b)
        assert client.stopped == [SENSOR_STREAM.characteristic]

    asyncio.run(main())


def test_cancel_is_idempotent_and_drops_queued_updates():
    async def main():
        client, channel = _channel()
        got = []
        sub = await channel.subscribe(SENSOR_STREAM, lambda v, e: got.append(v))

        client.notify(SENSOR_STREAM.characteristic, b"queued")
        await channel.cancel(sub)
        await channel.cancel(sub)
        await drain()

        assert got == []
        assert not sub.active
        assert client.stopped == [SENSOR_STREAM.characteristic]

    asyncio.run(main())


def test_subscriber_exception_does_not_end_stream():
    async def main():
        client, channel = _channel()
        got = []

        def _cb(value, error):
            got.append(value)
            raise RuntimeError("boom")

        await channel.subscribe(SENSOR_STREAM, _cb)
        client.notify(SENSOR_STREAM.characteristic, b"1")
        client.notify(SENSOR_STREAM.characteristic, b"2")
        await drain()
        assert got == ["1", "2"]

    asyncio.run(main())


def test_invalidate_closes_without_stop_notify():
    async def main():
        client, channel = _channel()
        got = []
        sub = await channel.subscribe(SENSOR_STREAM, lambda v, e: got.append(v))
        handler = client.notify_handlers[SENSOR_STREAM.characteristic]

        channel.invalidate()
        handler(None, bytearray(b"late"))
        await drain()

        assert got == []
        assert not sub.active
        assert client.stopped == []
        assert not channel.is_open

    asyncio.run(main())
