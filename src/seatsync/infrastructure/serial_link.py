from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import serial

from seatsync.exceptions import TransportUnavailableError

logger = logging.getLogger(__name__)

LineHandler = Callable[[bytes], Awaitable[None]]


class SerialSeatLink:
    """JSON-lines link to the seat button controller.

    Inbound lines look like {"seatId": 2, "occupied": true} and are handed to
    the line handler unparsed. Outbound LED commands use the same shape and are
    best effort: while the port is closed they are dropped with a warning.
    The reader reconnects on a fixed delay for as long as the service runs.
    """

    def __init__(
        self,
        port: str,
        baud_rate: int = 9600,
        reconnect_delay: float = 5.0,
        outbox_size: int = 64,
        enabled: bool = True,
        serial_factory: Callable[..., Any] = serial.Serial,
    ) -> None:
        self._port_name = port
        self._baud_rate = baud_rate
        self._reconnect_delay = reconnect_delay
        self._enabled = enabled
        self._serial_factory = serial_factory
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue(maxsize=outbox_size)
        self._port: Optional[Any] = None
        self._handler: Optional[LineHandler] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connected(self) -> bool:
        return self._port is not None and self._port.is_open

    def set_handler(self, handler: LineHandler) -> None:
        self._handler = handler

    def send(self, seat_id: int, occupied: bool) -> None:
        """Queue an LED command; never blocks the caller."""
        line = json.dumps({"seatId": seat_id, "occupied": occupied}).encode() + b"\n"
        try:
            self._ensure_connected()
            self._outbox.put_nowait(line)
        except TransportUnavailableError as e:
            logger.warning("Command for seat %d dropped: %s", seat_id, e)
        except asyncio.QueueFull:
            logger.warning("Command for seat %d dropped: outbox full", seat_id)

    async def start(self) -> None:
        if not self._enabled:
            logger.info("Hardware link disabled, running in manual-only mode")
            return
        logger.info("Attempting to connect to controller on %s", self._port_name)
        self._tasks = [
            asyncio.create_task(self._reader_loop(), name="serial-reader"),
            asyncio.create_task(self._writer_loop(), name="serial-writer"),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._close()
        logger.info("Hardware link stopped")

    def _ensure_connected(self) -> None:
        if not self._enabled:
            raise TransportUnavailableError("hardware link disabled")
        if not self.connected:
            raise TransportUnavailableError(f"serial port {self._port_name} not open")

    async def _reader_loop(self) -> None:
        while True:
            try:
                self._port = await self._open()
                logger.info("Connected to controller on %s", self._port_name)
                await self._read_lines()
            except (serial.SerialException, OSError) as e:
                logger.error("Serial port error on %s: %s", self._port_name, e)
            except Exception:
                logger.exception("Serial reader failed")
            finally:
                self._close()
            logger.info("Serial port closed, reconnecting in %.0f seconds", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)

    async def _open(self) -> Any:
        opening = asyncio.ensure_future(
            asyncio.to_thread(
                self._serial_factory,
                port=self._port_name,
                baudrate=self._baud_rate,
                timeout=1.0,
                write_timeout=1.0,
            )
        )
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The worker thread keeps opening the port; close it once it is done.
            opening.add_done_callback(_close_abandoned_port)
            raise

    async def _read_lines(self) -> None:
        while True:
            line = await asyncio.to_thread(self._port.readline)
            if not line:
                continue
            if self._handler is None:
                logger.debug("No handler for serial line %r", line)
                continue
            try:
                await self._handler(line)
            except Exception:
                logger.exception("Handler failed for serial line %r", line)

    async def _writer_loop(self) -> None:
        while True:
            line = await self._outbox.get()
            try:
                self._ensure_connected()
                await asyncio.to_thread(self._port.write, line)
            except TransportUnavailableError as e:
                logger.warning("Command %r dropped: %s", line, e)
            except (serial.SerialException, OSError) as e:
                logger.warning("Error sending command %r: %s", line, e)

    def _close(self) -> None:
        port, self._port = self._port, None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError):
            logger.exception("Error closing serial port %s", self._port_name)


def _close_abandoned_port(opening: asyncio.Future) -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    try:
        opening.result().close()
    except (serial.SerialException, OSError):
        logger.exception("Error closing abandoned serial port")
