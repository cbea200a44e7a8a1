"""Top-level benchmark orchestrator."""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING

from echobench._internal.logging import get_logger
from echobench.engine.coordinator import Coordinator, total_report
from echobench.engine.session import run_session
from echobench.metrics.models import BenchmarkResult

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import TextIO

    from echobench._internal.config import BenchmarkConfig

logger = get_logger("engine.runner")


class BenchmarkRunner:
    """Runs a benchmark in this process or fanned out across children.

    With ``processes <= 1`` the session runs in process, optionally after
    reading one line from ``stdin`` (the release cue a fan-out parent or an
    operator sends). Otherwise a Coordinator spawns the children and their
    reports are summed.

    Attributes:
        config: Run parameters.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        *,
        stdin: TextIO | None = None,
        child_args: Sequence[str] = (),
    ) -> None:
        """Initialize the runner.

        Args:
            config: Run parameters.
            stdin: Stream the release cue is read from. Defaults to
                ``sys.stdin``.
            child_args: Extra arguments passed to every child process.
        """
        self.config = config
        self._stdin = stdin
        self._child_args = list(child_args)

    @property
    def is_fan_out(self) -> bool:
        """Return True if the run spawns child processes."""
        return self.config.processes > 1

    def run(self) -> BenchmarkResult:
        """Execute the benchmark and return results.

        Raises:
            SetupError: If a connection cannot be dialed or a child cannot
                be spawned.
        """
        if self.is_fan_out:
            return self._run_fan_out()
        return self._run_local()

    def _run_local(self) -> BenchmarkResult:
        config = self.config
        if config.wait:
            logger.debug("Waiting for release cue on stdin")
            (self._stdin or sys.stdin).readline()

        start = time.monotonic()
        report = run_session(config)
        return BenchmarkResult(
            total=report,
            duration_seconds=config.duration,
            elapsed_seconds=time.monotonic() - start,
            message_size=config.message_size,
        )

    def _run_fan_out(self) -> BenchmarkResult:
        config = self.config
        logger.info(
            "Fanning out: processes=%d, connections=%d, addr=%s",
            config.processes,
            config.connections,
            config.address,
        )

        start = time.monotonic()
        coordinator = Coordinator(config, extra_args=self._child_args)
        children = coordinator.run()
        elapsed = time.monotonic() - start

        failed = [c for c in children if not c.success]
        if failed:
            logger.warning(
                "%d of %d children exited abnormally; their reports are still summed",
                len(failed),
                len(children),
            )

        return BenchmarkResult(
            total=total_report(children),
            duration_seconds=config.duration,
            elapsed_seconds=elapsed,
            message_size=config.message_size,
            children=children,
        )
