"""Custom exception hierarchy for echobench."""

from __future__ import annotations


class EchoBenchError(Exception):
    """Base exception for all echobench errors.

    All custom exceptions in echobench inherit from this class, making it
    easy to catch any echobench-specific error with a single except clause.
    """


class ConfigError(EchoBenchError):
    """Raised when configuration is invalid or missing.

    Examples:
        - An environment variable has a non-numeric value.
        - The message size does not fit the 2-byte length prefix.
        - More processes than connections were requested.
    """


class SetupError(EchoBenchError):
    """Raised when the benchmark cannot start.

    Setup failures are fatal to the whole run: a connection that cannot be
    dialed within the dial timeout means the benchmark cannot execute.
    """


class SpawnError(SetupError):
    """Raised when a child benchmark process cannot be started.

    Examples:
        - The interpreter executable cannot be launched.
        - The child's stdin pipe is unavailable.
    """


class TransportError(EchoBenchError):
    """Raised when stream I/O on a benchmark connection fails."""


class ConnectionClosedError(TransportError):
    """Raised when the connection was closed locally or by the peer."""


class FramingError(EchoBenchError):
    """Raised when a message cannot be represented by the length prefix."""


class ReportFormatError(EchoBenchError):
    """Raised when a line is not a well-formed report line."""
