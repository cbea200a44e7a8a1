"""Per-connection send and receive loops."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from echobench._internal.errors import TransportError
from echobench._internal.logging import get_logger

if TYPE_CHECKING:
    from echobench.engine.barrier import StartBarrier
    from echobench.engine.connection import CountedConnection
    from echobench.metrics.models import RunReport

logger = get_logger("engine.worker")


class ClientWorker:
    """Drives duplex traffic on one connection.

    ``start()`` schedules a send loop and a receive loop. Both wait on the
    shared start barrier, then run until their connection fails. The
    session ends them by closing the connection; nothing else stops them.

    Attributes:
        worker_id: Identifier used in task names and log messages.
        connection: The connection this worker owns.
    """

    def __init__(
        self,
        worker_id: int,
        connection: CountedConnection,
        message: bytes,
    ) -> None:
        self.worker_id = worker_id
        self.connection = connection
        self._message = message
        self._tasks: list[asyncio.Task[None]] = []
        self._deadline: float | None = None

    @property
    def done(self) -> bool:
        """Return True once both loops have finished."""
        return bool(self._tasks) and all(t.done() for t in self._tasks)

    def start(self, barrier: StartBarrier, duration: float) -> None:
        """Schedule both loops.

        Args:
            barrier: Shared start barrier; each loop arrives once.
            duration: Run duration; errors after release + duration are
                expected and not logged.
        """
        if self._tasks:
            raise RuntimeError(f"worker {self.worker_id} already started")

        self._tasks = [
            asyncio.create_task(
                self._send_loop(barrier, duration),
                name=f"client-{self.worker_id}-send",
            ),
            asyncio.create_task(
                self._recv_loop(barrier, duration),
                name=f"client-{self.worker_id}-recv",
            ),
        ]

    async def _send_loop(self, barrier: StartBarrier, duration: float) -> None:
        conn = self.connection
        barrier.arrive()
        await barrier.wait_start()
        self._deadline = barrier.released_at + duration

        while True:
            try:
                await conn.send(self._message)
            except TransportError as exc:
                self._on_error("send", exc)
                return
            conn.send_count += 1
            # drain() does not suspend while the transport is below its
            # high-water mark.
            await asyncio.sleep(0)

    async def _recv_loop(self, barrier: StartBarrier, duration: float) -> None:
        conn = self.connection
        barrier.arrive()
        await barrier.wait_start()
        self._deadline = barrier.released_at + duration

        while True:
            try:
                await conn.receive()
            except TransportError as exc:
                self._on_error("recv", exc)
                return
            conn.recv_count += 1

    def _on_error(self, direction: str, exc: TransportError) -> None:
        if self.connection.closed_locally or self._is_expired():
            return
        logger.warning("Client %d %s error: %s", self.worker_id, direction, exc)

    def _is_expired(self) -> bool:
        if self._deadline is None:
            return False
        return asyncio.get_running_loop().time() >= self._deadline

    async def wait(self) -> None:
        """Block until both loops have finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    def cancel(self) -> None:
        """Cancel loops that are still running."""
        for task in self._tasks:
            task.cancel()

    def close(self) -> None:
        """Close the connection, ending both loops."""
        self.connection.close()

    def report(self) -> RunReport:
        """Return this worker's counters."""
        return self.connection.report()
