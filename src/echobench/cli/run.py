"""``echobench run``: drive the echo server and print the report line."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from echobench._internal.config import BenchmarkConfig, load_config
from echobench._internal.errors import EchoBenchError
from echobench._internal.logging import setup_logging
from echobench.engine.protocol import SEPARATOR, format_report
from echobench.engine.runner import BenchmarkRunner

if TYPE_CHECKING:
    from echobench.metrics.models import BenchmarkResult

# stdout carries report lines only; everything for humans goes to stderr.
console = Console(stderr=True)


def _build_config(
    addr: str | None,
    num: int | None,
    size: int | None,
    duration: float | None,
    procs: int | None,
    wait: bool,
) -> BenchmarkConfig:
    """Overlay CLI flags on the environment-derived configuration.

    Raises:
        ConfigError: If the combined configuration is invalid.
    """
    return load_config(
        address=addr,
        connections=num,
        message_size=size,
        duration=duration,
        processes=procs,
        wait=wait,
    )


def _print_summary(config: BenchmarkConfig, result: BenchmarkResult) -> None:
    """Print a final summary table after the run completes."""
    total = result.total
    table = Table(
        title="Benchmark Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Address", config.address)
    table.add_row("Connections", str(config.connections))
    table.add_row("Processes", str(config.processes))
    table.add_row("Message Size", f"{config.message_size} B")
    table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
    table.add_row("Send Count", str(total.send_count))
    table.add_row("Recv Count", str(total.recv_count))
    table.add_row("Read Count", str(total.read_count))
    table.add_row("Write Count", str(total.write_count))
    table.add_row("Sent/sec", f"{result.send_rate:.1f}")
    table.add_row("Received/sec", f"{result.recv_rate:.1f}")
    table.add_row("Echo Throughput", f"{result.recv_throughput / 1024 / 1024:.2f} MiB/s")

    if result.children:
        failed = sum(1 for c in result.children if not c.success)
        table.add_row("Failed Children", str(failed))

    console.print(table)


def run_cmd(
    addr: str | None = typer.Option(
        None,
        "--addr",
        "-a",
        help="Echo server address as host:port [default: 127.0.0.1:10010].",
    ),
    num: int | None = typer.Option(
        None,
        "--num",
        "-n",
        help="Number of concurrent connections [default: 1].",
        min=1,
    ),
    size: int | None = typer.Option(
        None,
        "--size",
        "-s",
        help="Message size in bytes [default: 64].",
        min=1,
    ),
    duration: float | None = typer.Option(
        None,
        "--time",
        "-t",
        help="Run duration in seconds [default: 10].",
        min=0.001,
    ),
    procs: int | None = typer.Option(
        None,
        "--procs",
        "-p",
        help="Number of benchmark processes [default: 1].",
        min=1,
    ),
    wait: bool = typer.Option(
        False,
        "--wait",
        help="Wait for one line on stdin before starting.",
        hidden=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Emit logs as one JSON object per line.",
    ),
) -> None:
    """Benchmark an echo server and print the report line."""
    log_level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=log_level, json_format=log_json)

    try:
        config = _build_config(addr, num, size, duration, procs, wait)
    except EchoBenchError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    # Children share the parent's stderr; keep them quiet.
    interactive = not config.wait

    if interactive:
        console.print(
            Panel(
                f"[bold]Address:[/bold]     {config.address}\n"
                f"[bold]Connections:[/bold] {config.connections}\n"
                f"[bold]Size:[/bold]        {config.message_size} B\n"
                f"[bold]Duration:[/bold]    {config.duration:g}s\n"
                f"[bold]Processes:[/bold]   {config.processes}",
                title="echobench",
                border_style="cyan",
            )
        )

    child_args = [
        *(["--verbose"] if verbose else []),
        *(["--log-json"] if log_json else []),
    ]

    try:
        result = BenchmarkRunner(config, child_args=child_args).run()
    except EchoBenchError as exc:
        console.print(f"[red]Benchmark failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if result.children:
        for child in result.children:
            typer.echo(child.output, nl=False)
        typer.echo(SEPARATOR)
    typer.echo(format_report(result.total), nl=False)

    if interactive:
        _print_summary(config, result)
