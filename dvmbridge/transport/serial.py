"""Serial transport for the instrument (line-oriented request/response).

Requests are escape commands (``ESC`` + letter + line terminator) or
pass-through command lines. Responses are newline-terminated text. A
query waits a fixed settle window and then reads at most one line; no
data within the window is the TIMEOUT outcome, not an error.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Final, cast

import tenacity

# pyserial-asyncio-fast is mandatory; a missing dependency must fail at import.
import serial_asyncio_fast  # type: ignore

from ..config.settings import RuntimeConfig
from ..const import CMD_DISPLAY, CMD_STATUS, LINE_DELIMITER
from ..protocol.instrument import (
    InstrumentResponse,
    encode_escape_command,
    encode_line,
    strip_newline,
)
from ..util import log_hexdump

logger = logging.getLogger("dvmbridge.serial")

SleepCallable = Callable[[float], Awaitable[None]]

# Guard against a chattering instrument filling memory between queries.
MAX_BUFFERED_BYTES: Final[int] = 4096


class InstrumentProtocol(asyncio.Protocol):
    """Buffer incoming bytes and hand them out one line at a time."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.transport: asyncio.Transport | None = None
        self._buffer = bytearray()
        self._data_event = asyncio.Event()
        self.connected_future: asyncio.Future[None] = loop.create_future()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.Transport, transport)
        logger.info("Serial transport established.")
        if not self.connected_future.done():
            self.connected_future.set_result(None)

    def connection_lost(self, exc: Exception | None) -> None:
        logger.warning("Serial connection lost: %s", exc)
        self.transport = None
        self._data_event.set()
        if not self.connected_future.done():
            self.connected_future.set_exception(exc or ConnectionError("Closed"))

    def data_received(self, data: bytes) -> None:
        self._buffer.extend(data)
        if len(self._buffer) > MAX_BUFFERED_BYTES:
            overflow = len(self._buffer) - MAX_BUFFERED_BYTES
            logger.warning("Serial buffer overflow; discarding %d stale bytes.", overflow)
            del self._buffer[:overflow]
        self._data_event.set()

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and not self.transport.is_closing()

    @property
    def available(self) -> int:
        return len(self._buffer)

    def write(self, data: bytes) -> bool:
        if self.transport is None or self.transport.is_closing():
            return False
        try:
            self.transport.write(data)
        except (OSError, ValueError) as exc:
            logger.error("Serial write failed: %s", exc)
            return False
        return True

    async def read_line(self, timeout: float) -> bytes:
        """Return bytes up to and including the next newline.

        When no newline arrives within *timeout*, whatever is buffered is
        returned as a partial line.
        """
        deadline = self.loop.time() + timeout
        while True:
            index = self._buffer.find(LINE_DELIMITER)
            if index >= 0:
                line = bytes(self._buffer[: index + 1])
                del self._buffer[: index + 1]
                return line

            remaining = deadline - self.loop.time()
            if remaining <= 0 or not self.is_connected:
                line = bytes(self._buffer)
                self._buffer.clear()
                return line

            self._data_event.clear()
            try:
                await asyncio.wait_for(self._data_event.wait(), remaining)
            except TimeoutError:
                pass


class InstrumentTransport:
    """Request/response driver for the instrument's serial port."""

    def __init__(self, config: RuntimeConfig, *, sleep: SleepCallable = asyncio.sleep) -> None:
        self.config = config
        self.protocol: InstrumentProtocol | None = None
        self._transport: asyncio.BaseTransport | None = None
        self._sleep = sleep

    @property
    def is_open(self) -> bool:
        return self.protocol is not None and self.protocol.is_connected

    def _before_sleep_log(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Unable to open %s (%s); retrying in %.1fs (attempt %d)",
            self.config.serial_port,
            exc,
            self.config.reconnect_delay,
            retry_state.attempt_number,
        )

    async def open(self) -> None:
        """Open the serial port, retrying forever with a fixed delay."""
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type(OSError),
            wait=tenacity.wait_fixed(self.config.reconnect_delay),
            stop=tenacity.stop_never,
            before_sleep=self._before_sleep_log,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                await self._connect()

    async def _connect(self) -> None:
        loop = asyncio.get_running_loop()
        logger.info(
            "Opening %s at %d baud (8N1)...",
            self.config.serial_port,
            self.config.serial_baud,
        )
        protocol_factory = functools.partial(InstrumentProtocol, loop)
        transport, proto = await serial_asyncio_fast.create_serial_connection(
            loop,
            protocol_factory,
            self.config.serial_port,
            baudrate=self.config.serial_baud,
            bytesize=8,
            parity="N",
            stopbits=1,
        )
        self._transport = transport
        self.protocol = cast(InstrumentProtocol, proto)
        await self.protocol.connected_future

    async def close(self) -> None:
        if self._transport is not None and not self._transport.is_closing():
            self._transport.close()
        self._transport = None
        self.protocol = None

    async def _reopen_if_lost(self) -> None:
        """Reopen a link that dropped after a successful open.

        A port that was never opened is left alone; ``open`` owns first contact.
        """
        if self.protocol is None or self.protocol.is_connected:
            return
        logger.warning("Serial link to %s lost; reopening.", self.config.serial_port)
        await self.close()
        await self.open()

    def _write(self, data: bytes, label: str) -> bool:
        if self.protocol is None or not self.protocol.write(data):
            logger.warning("Serial port not open; %s not sent.", label)
            return False
        log_hexdump(logger, logging.DEBUG, f"DVM < {label}", data)
        return True

    async def query(self, code: bytes) -> InstrumentResponse:
        """Send an escape command and read one response line."""
        label = f"ESC {code.decode('ascii', errors='replace')}"
        await self._reopen_if_lost()
        self._write(encode_escape_command(code), label)
        await self._sleep(self.config.instrument_settle)

        if self.protocol is None or self.protocol.available == 0:
            logger.warning(
                "Instrument timeout waiting for %s response.",
                label,
                extra={"frame": encode_escape_command(code)},
            )
            return InstrumentResponse.timeout()

        line = await self.protocol.read_line(self.config.line_timeout)
        log_hexdump(logger, logging.DEBUG, f"DVM > {label}", line)
        return InstrumentResponse(data=strip_newline(line))

    async def query_status(self) -> InstrumentResponse:
        return await self.query(CMD_STATUS)

    async def query_display(self) -> InstrumentResponse:
        return await self.query(CMD_DISPLAY)

    async def send_command(self, text: str) -> bool:
        """Write a pass-through line; the response is not awaited."""
        await self._reopen_if_lost()
        return self._write(encode_line(text), "CMD")
