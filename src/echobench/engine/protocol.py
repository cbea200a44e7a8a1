"""Report line format shared by fan-out parents and children.

A child prints exactly one report line on stdout; the parent recovers the
counters from it. ``format_report`` and ``parse_report_line`` are the only
encode/decode pair for that contract.
"""

from __future__ import annotations

import re

from echobench._internal.errors import ReportFormatError
from echobench.metrics.models import RunReport

REPORT_FORMAT = "Send Count: {}, Recv Count: {}, Read Count: {}, Write Count: {}"

SEPARATOR = "-" * 20

_REPORT_RE = re.compile(
    r"Send Count: ([0-9]+), Recv Count: ([0-9]+), Read Count: ([0-9]+), Write Count: ([0-9]+)"
)


def format_report(report: RunReport) -> str:
    """Encode a report as one line, including the trailing newline."""
    return (
        REPORT_FORMAT.format(
            report.send_count,
            report.recv_count,
            report.read_count,
            report.write_count,
        )
        + "\n"
    )


def parse_report_line(line: str) -> RunReport:
    """Decode one report line.

    The whole line must match; only the line terminator is ignored.

    Args:
        line: A line produced by ``format_report``.

    Returns:
        The decoded RunReport.

    Raises:
        ReportFormatError: If the line carries anything besides a report.
    """
    match = _REPORT_RE.fullmatch(line.rstrip("\r\n"))
    if match is None:
        msg = f"not a report line: {line!r}"
        raise ReportFormatError(msg)

    send, recv, read, write = (int(g) for g in match.groups())
    return RunReport(
        send_count=send,
        recv_count=recv,
        read_count=read,
        write_count=write,
    )


def parse_report_output(output: str) -> RunReport | None:
    """Return the report from the first report line in ``output``, if any."""
    for line in output.splitlines():
        try:
            return parse_report_line(line)
        except ReportFormatError:
            continue
    return None
