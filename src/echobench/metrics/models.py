"""Counter dataclasses for echobench."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "BenchmarkResult",
    "ChildResult",
    "RunReport",
    "sum_reports",
]


@dataclass(frozen=True)
class RunReport:
    """Four-counter summary for one connection, one process or a fan-out.

    Reports add field by field, so any grouping of connections sums to
    the same total.

    Attributes:
        send_count: Messages sent by the application.
        recv_count: Messages received by the application.
        read_count: Raw stream read calls.
        write_count: Raw stream write calls.
    """

    send_count: int = 0
    recv_count: int = 0
    read_count: int = 0
    write_count: int = 0

    def __add__(self, other: RunReport) -> RunReport:
        if not isinstance(other, RunReport):
            return NotImplemented
        return RunReport(
            send_count=self.send_count + other.send_count,
            recv_count=self.recv_count + other.recv_count,
            read_count=self.read_count + other.read_count,
            write_count=self.write_count + other.write_count,
        )


def sum_reports(reports: Iterable[RunReport]) -> RunReport:
    """Sum reports field by field. An empty iterable sums to zero."""
    total = RunReport()
    for report in reports:
        total += report
    return total


@dataclass
class ChildResult:
    """Outcome of one fan-out child process.

    Attributes:
        index: Zero-based child index.
        pid: OS process id of the child.
        returncode: Exit status; non-zero means the child failed.
        output: Everything the child printed on stdout.
        report: Parsed report, or None if the output held no report line.
    """

    index: int
    pid: int
    returncode: int
    output: str
    report: RunReport | None = None

    @property
    def success(self) -> bool:
        """Return True if the child exited cleanly."""
        return self.returncode == 0


@dataclass
class BenchmarkResult:
    """Complete result of a benchmark run.

    Attributes:
        total: Report summed over every connection of every process.
        duration_seconds: Configured traffic duration, the base for rates.
        elapsed_seconds: Wall-clock time of the whole run, dialing included.
        message_size: Payload size used, for throughput figures.
        children: Per-child outcomes; empty for an in-process run.
    """

    total: RunReport
    duration_seconds: float
    elapsed_seconds: float
    message_size: int
    children: list[ChildResult] = field(default_factory=list)

    @property
    def send_rate(self) -> float:
        """Messages sent per second of traffic."""
        return _rate(self.total.send_count, self.duration_seconds)

    @property
    def recv_rate(self) -> float:
        """Messages received per second of traffic."""
        return _rate(self.total.recv_count, self.duration_seconds)

    @property
    def recv_throughput(self) -> float:
        """Echoed payload bytes received per second."""
        return self.recv_rate * self.message_size


def _rate(count: int, seconds: float) -> float:
    return count / seconds if seconds > 0 else 0.0
