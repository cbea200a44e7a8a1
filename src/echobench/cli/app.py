"""Main Typer application and entry point for the ``echobench`` CLI."""

from __future__ import annotations

import typer

from echobench import __version__
from echobench.cli.run import run_cmd

app = typer.Typer(
    name="echobench",
    help="Throughput benchmark for length-prefixed echo servers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Benchmark an echo server.")(run_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"echobench {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """echobench: measure echo server throughput over many connections."""
