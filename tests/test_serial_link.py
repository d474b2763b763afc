"""Unit tests for SerialSeatLink using an in-memory serial port."""

import asyncio
import json
import queue
import threading

import pytest
import serial

from seatsync.infrastructure.serial_link import SerialSeatLink


class FakeSerial:
    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.is_open = True
        self.incoming: queue.Queue = queue.Queue()
        self.written: list[bytes] = []

    def readline(self) -> bytes:
        try:
            return self.incoming.get(timeout=0.05)
        except queue.Empty:
            return b""

    def write(self, data: bytes) -> int:
        self.written.append(data)
        return len(data)

    def close(self) -> None:
        self.is_open = False


async def wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestSerialSeatLink:
    @pytest.mark.asyncio
    async def test_disabled_link_drops_commands(self, caplog):
        link = SerialSeatLink("/dev/null", enabled=False)

        await link.start()
        link.send(1, True)
        await link.stop()

        assert not link.connected
        assert "hardware link disabled" in caplog.text

    @pytest.mark.asyncio
    async def test_lines_reach_handler_and_commands_are_written(self):
        ports = []

        def factory(**kwargs):
            port = FakeSerial(**kwargs)
            ports.append(port)
            return port

        received = []

        async def handler(line: bytes) -> None:
            received.append(line)

        link = SerialSeatLink("/dev/ttyACM0", baud_rate=9600, serial_factory=factory)
        link.set_handler(handler)
        await link.start()
        try:
            await wait_for(lambda: link.connected)
            assert ports[0].kwargs["port"] == "/dev/ttyACM0"
            assert ports[0].kwargs["baudrate"] == 9600

            ports[0].incoming.put(b'{"seatId": 1, "occupied": true}\n')
            await wait_for(lambda: received)
            assert received == [b'{"seatId": 1, "occupied": true}\n']

            link.send(2, False)
            await wait_for(lambda: ports[0].written)
            assert json.loads(ports[0].written[0]) == {"seatId": 2, "occupied": False}
        finally:
            await link.stop()

        assert not ports[0].is_open

    @pytest.mark.asyncio
    async def test_reconnects_after_open_failure(self, caplog):
        attempts = []

        def factory(**kwargs):
            attempts.append(kwargs)
            if len(attempts) == 1:
                raise serial.SerialException("could not open port")
            return FakeSerial(**kwargs)

        link = SerialSeatLink("/dev/ttyACM0", reconnect_delay=0.01, serial_factory=factory)
        await link.start()
        try:
            link.send(1, True)
            await wait_for(lambda: link.connected)
        finally:
            await link.stop()

        assert len(attempts) >= 2
        assert "could not open port" in caplog.text
        assert "Command for seat 1 dropped" in caplog.text

    @pytest.mark.asyncio
    async def test_handler_error_keeps_link_open(self, caplog):
        ports = []

        def factory(**kwargs):
            port = FakeSerial(**kwargs)
            ports.append(port)
            return port

        received = []

        async def handler(line: bytes) -> None:
            if line.startswith(b"bad"):
                raise RuntimeError("handler bug")
            received.append(line)

        link = SerialSeatLink("/dev/ttyACM0", reconnect_delay=0.01, serial_factory=factory)
        link.set_handler(handler)
        await link.start()
        try:
            await wait_for(lambda: link.connected)
            ports[0].incoming.put(b"bad line\n")
            ports[0].incoming.put(b'{"seatId": 3, "occupied": false}\n')
            await wait_for(lambda: received)
        finally:
            await link.stop()

        assert received == [b'{"seatId": 3, "occupied": false}\n']
        assert len(ports) == 1
        assert "Handler failed for serial line" in caplog.text

    @pytest.mark.asyncio
    async def test_port_opened_after_stop_is_closed(self):
        opening = threading.Event()
        release = threading.Event()
        ports = []

        def factory(**kwargs):
            opening.set()
            release.wait(timeout=2.0)
            port = FakeSerial(**kwargs)
            ports.append(port)
            return port

        link = SerialSeatLink("/dev/ttyACM0", serial_factory=factory)
        await link.start()
        await wait_for(opening.is_set)

        await link.stop()
        release.set()

        await wait_for(lambda: ports and not ports[0].is_open)
        assert not link.connected
