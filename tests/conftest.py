"""Shared test fixtures for the echobench test suite."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
import threading
from typing import TYPE_CHECKING

import pytest

from echobench._internal.errors import ConnectionClosedError, SetupError
from echobench.metrics.models import RunReport

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _reset_echobench_logger() -> Iterator[None]:
    """Undo setup_logging() so caplog sees records in later tests."""
    yield
    logger = logging.getLogger("echobench")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def unused_address() -> str:
    """Address on localhost with nothing listening."""
    return f"127.0.0.1:{_get_free_port()}"


# =============================================================================
# Echo TCP server
# =============================================================================


async def _echo_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Write every received byte straight back, preserving framing."""
    try:
        while data := await reader.read(65536):
            writer.write(data)
            await writer.drain()
    except ConnectionError:
        pass
    finally:
        writer.close()


@pytest.fixture
async def echo_server() -> AsyncIterator[str]:
    """Asyncio echo server on the test's event loop.

    Returns the address (e.g., '127.0.0.1:54321').
    """
    server = await asyncio.start_server(_echo_handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield f"127.0.0.1:{port}"
    server.close()
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(server.wait_closed(), timeout=2.0)


@pytest.fixture
def sync_echo_server() -> Iterator[str]:
    """Echo server running in a background thread for sync tests.

    Needed when the code under test runs its own event loop or spawns
    child processes that connect to the server.
    """
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []
    address: list[str] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        server = loop.run_until_complete(
            asyncio.start_server(_echo_handler, "127.0.0.1", 0)
        )
        address.append(f"127.0.0.1:{server.sockets[0].getsockname()[1]}")
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        server.close()
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield address[0]

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


# =============================================================================
# In-memory connections
# =============================================================================


class FakeConnection:
    """Echo connection without sockets: sent messages come back on receive.

    Records the loop time of its first send and first receive so tests can
    check when measured traffic began.
    """

    def __init__(self, *, fail_send_after: int | None = None) -> None:
        self.send_count = 0
        self.recv_count = 0
        self.read_count = 0
        self.write_count = 0
        self.closed_locally = False
        self.first_io_at: float | None = None
        self._fail_send_after = fail_send_after
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self.closed_locally

    def _mark_io(self) -> None:
        if self.first_io_at is None:
            self.first_io_at = asyncio.get_running_loop().time()

    async def send(self, message: bytes) -> None:
        if self.closed_locally:
            raise ConnectionClosedError("connection closed")
        if self._fail_send_after is not None and self.write_count >= self._fail_send_after:
            raise ConnectionClosedError("connection reset by peer")
        self._mark_io()
        self.write_count += 1
        self._queue.put_nowait(message)
        await asyncio.sleep(0)

    async def receive(self) -> bytes:
        self.read_count += 1
        message = await self._queue.get()
        if message is None or self.closed_locally:
            raise ConnectionClosedError("connection closed")
        self._mark_io()
        return message

    def close(self) -> None:
        if not self.closed_locally:
            self.closed_locally = True
            self._queue.put_nowait(None)

    async def wait_closed(self) -> None:
        return None

    def report(self) -> RunReport:
        return RunReport(
            send_count=self.send_count,
            recv_count=self.recv_count,
            read_count=self.read_count,
            write_count=self.write_count,
        )


class FakeConnector:
    """Connection factory for BenchmarkSession.

    Attributes:
        connections: Every connection handed out, in dial order.
        delays: Seconds to wait before returning the Nth connection.
        fail_at: Dial index that raises SetupError, if any.
        dialed_at: Loop time at which each dial returned.
    """

    def __init__(
        self,
        *,
        delays: dict[int, float] | None = None,
        fail_at: int | None = None,
        fail_send_after: int | None = None,
    ) -> None:
        self.connections: list[FakeConnection] = []
        self.delays = delays or {}
        self.fail_at = fail_at
        self.fail_send_after = fail_send_after
        self.dialed_at: list[float] = []

    async def __call__(self, host: str, port: int) -> FakeConnection:
        index = len(self.dialed_at)
        delay = self.delays.get(index, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if index == self.fail_at:
            raise SetupError(f"cannot connect to {host}:{port}: refused")
        conn = FakeConnection(fail_send_after=self.fail_send_after)
        self.connections.append(conn)
        self.dialed_at.append(asyncio.get_running_loop().time())
        return conn


@pytest.fixture
def fake_connector() -> type[FakeConnector]:
    """Return the FakeConnector class for building sessions without sockets."""
    return FakeConnector
