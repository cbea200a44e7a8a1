"""One-shot start barrier for benchmark loops."""

from __future__ import annotations

import asyncio


class StartBarrier:
    """Gate that holds every loop until all of them are scheduled.

    Each loop calls ``arrive()`` and then waits on ``wait_start()``. The
    session waits on ``wait_ready()`` until ``parties`` loops have arrived,
    then calls ``release()`` exactly once to let all of them go.

    Attributes:
        parties: Number of loops expected to arrive.
    """

    def __init__(self, parties: int) -> None:
        if parties < 0:
            msg = f"parties must be >= 0, got: {parties}"
            raise ValueError(msg)
        self.parties = parties
        self._arrived = 0
        self._ready = asyncio.Event()
        self._start = asyncio.Event()
        self._released_at: float | None = None
        if parties == 0:
            self._ready.set()

    @property
    def arrived(self) -> int:
        """Return how many loops have arrived so far."""
        return self._arrived

    @property
    def released(self) -> bool:
        """Return True once the start signal has fired."""
        return self._start.is_set()

    @property
    def released_at(self) -> float:
        """Return the event loop time at which the barrier was released.

        Raises:
            RuntimeError: If the barrier has not been released yet.
        """
        if self._released_at is None:
            raise RuntimeError("barrier has not been released")
        return self._released_at

    def arrive(self) -> None:
        """Signal that one loop is ready to start."""
        if self._arrived >= self.parties:
            raise RuntimeError("more arrivals than parties")
        self._arrived += 1
        if self._arrived == self.parties:
            self._ready.set()

    async def wait_ready(self) -> None:
        """Block until every party has arrived."""
        await self._ready.wait()

    def release(self) -> None:
        """Fire the start signal. May only be called once."""
        if self._start.is_set():
            raise RuntimeError("barrier already released")
        self._released_at = asyncio.get_running_loop().time()
        self._start.set()

    async def wait_start(self) -> None:
        """Block until the start signal fires."""
        await self._start.wait()
