"""echobench: throughput benchmark for length-prefixed echo servers."""

from __future__ import annotations

from echobench._internal.config import BenchmarkConfig, load_config
from echobench.engine.connection import CountedConnection, open_connection
from echobench.engine.runner import BenchmarkRunner
from echobench.engine.session import BenchmarkSession
from echobench.metrics.models import BenchmarkResult, RunReport

__version__ = "0.1.0"

__all__ = [
    "BenchmarkConfig",
    "BenchmarkResult",
    "BenchmarkRunner",
    "BenchmarkSession",
    "CountedConnection",
    "RunReport",
    "load_config",
    "open_connection",
]
