"""Logging setup for echobench.

Fan-out children inherit the parent's stderr, so every record carries the
emitting process id to keep interleaved output attributable.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

_TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s[%(process)d]: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One-line JSON log formatter.

    Keys: timestamp, level, logger, pid, message and, when present, exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def _make_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the root ``echobench`` logger.

    Logs always go to stderr: stdout is reserved for report lines, which
    the fan-out parent parses. Repeated calls reconfigure the existing
    handler instead of adding another one.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: Emit one JSON object per line instead of text.

    Returns:
        The configured ``echobench`` logger.
    """
    logger = logging.getLogger("echobench")
    logger.setLevel(level)

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stderr))
        # Prevent propagation to root logger to avoid duplicate output
        logger.propagate = False

    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(_make_formatter(json_format))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``echobench`` namespace.

    Args:
        name: Logger name, appended to the ``echobench.`` prefix, e.g.
            ``get_logger("engine.worker")``.

    Returns:
        The child logger.
    """
    return logging.getLogger(f"echobench.{name}")
