"""Length-prefixed message connection with raw I/O counters."""

from __future__ import annotations

import asyncio
import struct

from echobench._internal.config import MAX_MESSAGE_SIZE
from echobench._internal.errors import (
    ConnectionClosedError,
    FramingError,
    SetupError,
    TransportError,
)
from echobench._internal.logging import get_logger
from echobench.metrics.models import RunReport

__all__ = [
    "DIAL_TIMEOUT",
    "MAX_MESSAGE_SIZE",
    "CountedConnection",
    "open_connection",
]

logger = get_logger("engine.connection")

# Seconds allowed to establish each benchmark connection.
DIAL_TIMEOUT = 3.0

_HEADER = struct.Struct(">H")


class CountedConnection:
    """One duplex stream to the echo server, framed and counted.

    Every message travels as a 2-byte big-endian length followed by the
    payload. ``read_count`` and ``write_count`` count stream calls, not
    messages: receiving one message takes a header read and, for a
    non-empty payload, a body read.

    ``send_count`` and ``recv_count`` belong to the owning worker's send and
    receive loops respectively. No two loops touch the same counter.

    Attributes:
        send_count: Messages sent successfully.
        recv_count: Messages received successfully.
        read_count: Stream read calls, successful or not.
        write_count: Stream write calls, successful or not.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

        self.send_count = 0
        self.recv_count = 0
        self.read_count = 0
        self.write_count = 0

    @property
    def closed(self) -> bool:
        """Return True once the connection was closed locally or lost."""
        return self._closed or self._writer.is_closing()

    @property
    def closed_locally(self) -> bool:
        """Return True once ``close()`` has been called."""
        return self._closed

    async def send(self, message: bytes) -> None:
        """Write one framed message.

        Args:
            message: Payload of at most ``MAX_MESSAGE_SIZE`` bytes.

        Raises:
            FramingError: If the payload does not fit the length prefix.
            ConnectionClosedError: If the connection is closed or reset.
            TransportError: On any other stream failure.
        """
        size = len(message)
        if size > MAX_MESSAGE_SIZE:
            msg = f"message of {size} bytes exceeds the {MAX_MESSAGE_SIZE} byte frame limit"
            raise FramingError(msg)

        if self.closed:
            raise ConnectionClosedError("connection closed")

        self.write_count += 1
        try:
            self._writer.write(_HEADER.pack(size) + message)
            await self._writer.drain()
        except ConnectionError as exc:
            raise ConnectionClosedError(str(exc) or "connection lost") from exc
        except OSError as exc:
            raise TransportError(str(exc)) from exc

    async def receive(self) -> bytes:
        """Read one framed message.

        Returns:
            The payload bytes.

        Raises:
            ConnectionClosedError: On end of stream, reset, or local close.
            TransportError: On any other stream failure.
        """
        header = await self._read_exactly(_HEADER.size)
        (size,) = _HEADER.unpack(header)
        if size == 0:
            return b""
        return await self._read_exactly(size)

    async def _read_exactly(self, size: int) -> bytes:
        if self._closed:
            raise ConnectionClosedError("connection closed")

        self.read_count += 1
        try:
            return await self._reader.readexactly(size)
        except asyncio.IncompleteReadError as exc:
            reason = "connection closed" if self._closed else "connection closed by peer"
            raise ConnectionClosedError(reason) from exc
        except ConnectionError as exc:
            raise ConnectionClosedError(str(exc) or "connection lost") from exc
        except OSError as exc:
            raise TransportError(str(exc)) from exc

    def close(self) -> None:
        """Abort the underlying transport.

        Pending reads see end of stream and pending drains fail, which is
        how blocked send and receive loops get unwound. Unsent buffered
        data is discarded. Calling this more than once is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        self._writer.transport.abort()

    async def wait_closed(self) -> None:
        """Wait until the transport has released the socket."""
        try:
            await self._writer.wait_closed()
        except OSError:
            logger.debug("Connection closed with error", exc_info=True)

    def report(self) -> RunReport:
        """Return a snapshot of the four counters."""
        return RunReport(
            send_count=self.send_count,
            recv_count=self.recv_count,
            read_count=self.read_count,
            write_count=self.write_count,
        )


async def open_connection(
    host: str,
    port: int,
    *,
    timeout: float = DIAL_TIMEOUT,
) -> CountedConnection:
    """Dial the echo server.

    Args:
        host: Server host.
        port: Server port.
        timeout: Seconds to wait for the connection to be established.

    Returns:
        A new CountedConnection.

    Raises:
        SetupError: If the connection cannot be established in time.
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
    except (OSError, UnicodeError) as exc:
        msg = f"cannot connect to {host}:{port}: {str(exc) or type(exc).__name__}"
        raise SetupError(msg) from exc

    return CountedConnection(reader, writer)
