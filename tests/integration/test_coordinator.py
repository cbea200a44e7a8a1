"""Integration tests for the multi-process Coordinator."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import pytest

from echobench._internal.config import BenchmarkConfig
from echobench._internal.errors import SpawnError
from echobench.engine.coordinator import Coordinator, total_report
from echobench.metrics.models import RunReport

if TYPE_CHECKING:
    from pathlib import Path

# Stand-in for ``echobench run``: waits for the release cue, then reports
# counters derived from its --num share. Exits 7 when given exactly 2
# connections, and prints nothing at all when given exactly 1.
_FAKE_CHILD = """\
import sys

args = sys.argv[1:]
assert args[0] == "run" and "--wait" in args
num = int(args[args.index("--num") + 1])

sys.stdin.readline()
if num == 1:
    sys.exit(3)
print(f"Send Count: {num}, Recv Count: {num * 10}, Read Count: {num * 100}, Write Count: {num * 1000}")
sys.exit(7 if num == 2 else 0)
"""


@pytest.fixture
def fake_child(tmp_path: Path) -> list[str]:
    path = tmp_path / "fake_child.py"
    path.write_text(_FAKE_CHILD)
    return [sys.executable, str(path)]


@pytest.mark.timeout(30)
class TestCoordinator:
    def test_sums_all_children(self, fake_child: list[str]):
        config = BenchmarkConfig(connections=9, processes=3, duration=1)
        coordinator = Coordinator(config, command=fake_child)

        results = coordinator.run()

        assert [r.index for r in results] == [0, 1, 2]
        assert all(r.success for r in results)
        assert total_report(results) == RunReport(9, 90, 900, 9000)
        assert not coordinator.is_alive

    def test_failed_child_report_still_counted(self, fake_child: list[str]):
        """Child 1 gets 2 connections, reports, then exits non-zero."""
        config = BenchmarkConfig(connections=5, processes=2, duration=1)
        coordinator = Coordinator(config, command=fake_child)

        results = coordinator.run()

        assert [r.returncode for r in results] == [0, 7]
        assert results[1].report == RunReport(2, 20, 200, 2000)
        assert total_report(results) == RunReport(5, 50, 500, 5000)

    def test_child_without_report_counts_as_zero(
        self, fake_child: list[str], caplog: pytest.LogCaptureFixture
    ):
        # Shares are 2 and 1; the second child prints nothing.
        config = BenchmarkConfig(connections=3, processes=2, duration=1)
        coordinator = Coordinator(config, command=fake_child)

        results = coordinator.run()

        assert results[1].report is None
        assert results[1].output == ""
        assert results[1].returncode == 3
        assert total_report(results) == RunReport(2, 20, 200, 2000)
        assert "printed no report line" in caplog.text
        assert "exited with status 3" in caplog.text

    def test_release_skips_child_without_stdin(
        self, fake_child: list[str], caplog: pytest.LogCaptureFixture
    ):
        config = BenchmarkConfig(connections=6, processes=2, duration=1)
        coordinator = Coordinator(config, command=fake_child)
        coordinator.start()
        try:
            second = coordinator._processes[1]
            pipe = second.stdin
            second.stdin = None
            assert pipe is not None
            # EOF on stdin lets the child go without the release line.
            pipe.close()

            coordinator.release()
            results = coordinator.collect()
        finally:
            coordinator.kill()

        assert "Child 1" in caplog.text
        assert "not released" in caplog.text
        assert [r.report for r in results] == [RunReport(3, 30, 300, 3000)] * 2

    def test_child_command_line(self):
        config = BenchmarkConfig(
            address="10.1.2.3:4000",
            connections=7,
            message_size=256,
            duration=3,
            processes=2,
        )
        coordinator = Coordinator(config, extra_args=["--verbose"])

        cmd = coordinator.child_command(0)

        assert cmd[:4] == [sys.executable, "-m", "echobench", "run"]
        assert cmd[cmd.index("--addr") + 1] == "10.1.2.3:4000"
        assert cmd[cmd.index("--num") + 1] == "4"
        assert cmd[cmd.index("--size") + 1] == "256"
        assert cmd[cmd.index("--time") + 1] == "3"
        assert "--wait" in cmd
        assert cmd[-1] == "--verbose"
        second = coordinator.child_command(1)
        assert second[second.index("--num") + 1] == "3"

    def test_spawn_failure_is_fatal(self, tmp_path: Path):
        config = BenchmarkConfig(connections=2, processes=2, duration=1)
        coordinator = Coordinator(config, command=[str(tmp_path / "no-such-binary")])

        with pytest.raises(SpawnError, match="cannot start child 0"):
            coordinator.run()
