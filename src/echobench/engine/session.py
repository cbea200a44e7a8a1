"""In-process benchmark session: dial, start together, run, close, sum."""

from __future__ import annotations

import asyncio
import sys
from enum import Enum, auto
from typing import TYPE_CHECKING

from echobench._internal.errors import SetupError
from echobench._internal.logging import get_logger
from echobench.engine.barrier import StartBarrier
from echobench.engine.connection import open_connection
from echobench.engine.worker import ClientWorker
from echobench.metrics.models import RunReport, sum_reports

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine
    from typing import Any

    from echobench._internal.config import BenchmarkConfig
    from echobench.engine.connection import CountedConnection

    Connector = Callable[[str, int], Awaitable[CountedConnection]]

logger = get_logger("engine.session")

# Seconds allowed for loops to unwind after their connections are closed.
SHUTDOWN_GRACE = 5.0


class SessionState(Enum):
    """State machine for a benchmark session."""

    CREATED = auto()
    CONNECTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class BenchmarkSession:
    """Runs one benchmark across N connections in the current process.

    State machine: CREATED -> CONNECTING -> RUNNING -> STOPPING -> COMPLETED
                              -> FAILED (dial failure)

    All connections are dialed before any traffic starts. Each worker's two
    loops arrive at a shared barrier; once all 2N have arrived the barrier is
    released, the session sleeps for the run duration and then closes every
    connection. The resulting I/O errors are what stop the loops.

    Attributes:
        config: Run parameters.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        *,
        connector: Connector | None = None,
        shutdown_grace: float = SHUTDOWN_GRACE,
    ) -> None:
        """Initialize a session.

        Args:
            config: Run parameters. ``processes`` is ignored here.
            connector: Coroutine function ``(host, port)`` returning a
                connection. Defaults to ``open_connection``.
            shutdown_grace: Seconds to wait for loops after closing.
        """
        self.config = config
        self._connector = connector or open_connection
        self._shutdown_grace = shutdown_grace
        self._state = SessionState.CREATED
        self._workers: list[ClientWorker] = []

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._state

    @property
    def workers(self) -> list[ClientWorker]:
        """Return the session's workers."""
        return self._workers

    async def run(self) -> RunReport:
        """Execute the session and return the summed counters.

        Raises:
            SetupError: If any connection cannot be established.
        """
        config = self.config
        message = bytes(config.message_size)
        barrier = StartBarrier(parties=2 * config.connections)

        self._state = SessionState.CONNECTING
        logger.info(
            "Connecting: addr=%s, connections=%d, size=%d, duration=%gs",
            config.address,
            config.connections,
            config.message_size,
            config.duration,
        )

        try:
            for worker_id in range(config.connections):
                conn = await self._connector(config.host, config.port)
                worker = ClientWorker(worker_id, conn, message)
                self._workers.append(worker)
                worker.start(barrier, config.duration)
        except SetupError:
            self._state = SessionState.FAILED
            logger.error("Connection %d failed, aborting run", len(self._workers))
            await self._abort()
            raise

        await barrier.wait_ready()
        barrier.release()
        self._state = SessionState.RUNNING
        logger.debug("All %d loops ready, started", barrier.arrived)

        await asyncio.sleep(config.duration)

        self._state = SessionState.STOPPING
        await self._shutdown()

        report = sum_reports(w.report() for w in self._workers)
        self._state = SessionState.COMPLETED
        logger.info(
            "Session completed: send=%d, recv=%d, read=%d, write=%d",
            report.send_count,
            report.recv_count,
            report.read_count,
            report.write_count,
        )
        return report

    async def _shutdown(self) -> None:
        """Close every connection and wait for the loops to unwind."""
        for worker in self._workers:
            worker.close()

        if not self._workers:
            return

        waits = [asyncio.ensure_future(w.wait()) for w in self._workers]
        _done, pending = await asyncio.wait(waits, timeout=self._shutdown_grace)
        if pending:
            stuck = [w.worker_id for w in self._workers if not w.done]
            logger.warning("Loops did not stop after close, cancelling: clients=%s", stuck)
            for worker in self._workers:
                worker.cancel()
            await asyncio.wait(pending, timeout=2.0)

        await asyncio.gather(*(w.connection.wait_closed() for w in self._workers))

    async def _abort(self) -> None:
        """Tear down workers that may still be parked on the barrier."""
        for worker in self._workers:
            worker.close()
            worker.cancel()
        await asyncio.gather(*(w.wait() for w in self._workers), return_exceptions=True)


def _run_loop(coro: Coroutine[Any, Any, RunReport]) -> RunReport:
    """Run ``coro`` on uvloop when available, else the default event loop."""
    if sys.platform != "win32":
        try:
            import uvloop
        except ImportError:
            logger.debug("uvloop not available, using default asyncio event loop")
        else:
            return uvloop.run(coro)
    return asyncio.run(coro)


def run_session(config: BenchmarkConfig) -> RunReport:
    """Run a session to completion in the current process.

    Args:
        config: Run parameters.

    Returns:
        The summed report of every connection.

    Raises:
        SetupError: If any connection cannot be established.
    """
    return _run_loop(BenchmarkSession(config).run())
