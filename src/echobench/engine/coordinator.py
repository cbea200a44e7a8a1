"""Multi-process fan-out of one benchmark across child processes."""

from __future__ import annotations

import subprocess
import sys
from typing import TYPE_CHECKING

from echobench._internal.errors import SpawnError
from echobench._internal.logging import get_logger
from echobench.engine.protocol import parse_report_output
from echobench.metrics.models import ChildResult, RunReport, sum_reports

if TYPE_CHECKING:
    from collections.abc import Sequence

    from echobench._internal.config import BenchmarkConfig

logger = get_logger("engine.coordinator")


class Coordinator:
    """Manages the lifecycle of P child benchmark processes.

    Each child re-invokes ``echobench run`` with its share of the
    connections and ``--wait``, so it blocks on stdin before starting its
    session. Once every child is spawned the coordinator writes one line to
    each stdin in turn, waits for all of them, and parses the report line
    each printed on stdout.

    Children are released one after another, not atomically.

    Attributes:
        config: Parent run parameters.
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        *,
        command: Sequence[str] | None = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Parent run parameters; ``processes`` children are spawned.
            command: Command prefix that runs ``echobench``. Defaults to
                the current interpreter with ``-m echobench``.
            extra_args: Arguments appended to every child command line,
                e.g. ``["--verbose"]``.
        """
        self.config = config
        self._command = list(command) if command is not None else [
            sys.executable,
            "-m",
            "echobench",
        ]
        self._extra_args = list(extra_args)
        self._processes: list[subprocess.Popen[str]] = []

    @property
    def num_children(self) -> int:
        """Return the number of children to spawn."""
        return self.config.processes

    @property
    def is_alive(self) -> bool:
        """Return True if any child process is still running."""
        return any(p.poll() is None for p in self._processes)

    def child_command(self, index: int) -> list[str]:
        """Return the command line of child ``index``."""
        child = self.config.for_child(index)
        return [*self._command, "run", *child.child_args(), *self._extra_args]

    def start(self) -> None:
        """Spawn every child process.

        Raises:
            SpawnError: If a child cannot be started or has no stdin pipe.
                Children already started are killed.
        """
        for i in range(self.num_children):
            cmd = self.child_command(i)
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    text=True,
                )
            except OSError as exc:
                self.kill()
                msg = f"cannot start child {i}: {exc}"
                raise SpawnError(msg) from exc

            self._processes.append(process)
            if process.stdin is None:
                self.kill()
                msg = f"child {i} has no stdin pipe"
                raise SpawnError(msg)

            logger.debug("Started child %d: pid=%d, cmd=%s", i, process.pid, cmd)

        logger.info("Started %d child processes", self.num_children)

    def release(self) -> None:
        """Write the start cue to every child, one after another."""
        for i, process in enumerate(self._processes):
            if process.stdin is None:
                logger.warning("Child %d (pid=%d) has no stdin, not released", i, process.pid)
                continue
            try:
                process.stdin.write("\n")
                process.stdin.flush()
            except OSError as exc:
                logger.warning("Could not release child %d (pid=%d): %s", i, process.pid, exc)

        logger.debug("Released %d child processes", len(self._processes))

    def collect(self) -> list[ChildResult]:
        """Wait for every child and parse its output.

        A child that exits non-zero is logged and still collected; whatever
        report it printed is kept.

        Returns:
            One ChildResult per child, in spawn order.
        """
        results: list[ChildResult] = []

        for i, process in enumerate(self._processes):
            try:
                output, _ = process.communicate()
            except (OSError, ValueError) as exc:
                logger.warning("Wait for child %d (pid=%d) failed: %s", i, process.pid, exc)
                process.wait()
                output = ""

            if process.returncode != 0:
                logger.warning(
                    "Child %d (pid=%d) exited with status %d",
                    i,
                    process.pid,
                    process.returncode,
                )

            report = parse_report_output(output or "")
            if report is None:
                logger.warning("Child %d (pid=%d) printed no report line", i, process.pid)

            results.append(
                ChildResult(
                    index=i,
                    pid=process.pid,
                    returncode=process.returncode,
                    output=output or "",
                    report=report,
                )
            )

        return results

    def kill(self) -> None:
        """Kill children that are still running."""
        for process in self._processes:
            if process.poll() is None:
                logger.warning("Killing child pid=%d", process.pid)
                process.kill()
                process.wait()

    def run(self) -> list[ChildResult]:
        """Spawn, release and collect all children.

        Returns:
            One ChildResult per child.

        Raises:
            SpawnError: If any child cannot be started.
        """
        self.start()
        try:
            self.release()
            return self.collect()
        finally:
            self.kill()


def total_report(results: Sequence[ChildResult]) -> RunReport:
    """Sum the reports of all children; a missing report counts as zero."""
    return sum_reports(r.report for r in results if r.report is not None)
