"""Configuration loading for echobench."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

from echobench._internal.errors import ConfigError

DEFAULT_ADDRESS = "127.0.0.1:10010"

# Largest payload the 2-byte big-endian length prefix can describe.
MAX_MESSAGE_SIZE = 0xFFFF


@dataclass(frozen=True)
class BenchmarkConfig:
    """Run parameters for one benchmark invocation.

    Attributes:
        address: Echo server address as ``host:port``.
        connections: Number of concurrent connections.
        message_size: Payload size in bytes of every message sent.
        duration: Run duration in seconds.
        processes: Number of benchmark processes to fan out to.
        wait: Block on one line of stdin before starting (child mode).
    """

    address: str = DEFAULT_ADDRESS
    connections: int = 1
    message_size: int = 64
    duration: float = 10.0
    processes: int = 1
    wait: bool = False

    def __post_init__(self) -> None:
        """Validate the configuration.

        Raises:
            ConfigError: If any value is out of range.
        """
        split_address(self.address)

        if self.connections < 1:
            msg = f"connections must be >= 1, got: {self.connections}"
            raise ConfigError(msg)

        if not 1 <= self.message_size <= MAX_MESSAGE_SIZE:
            msg = (
                f"message_size must be between 1 and {MAX_MESSAGE_SIZE}, "
                f"got: {self.message_size}"
            )
            raise ConfigError(msg)

        if self.duration <= 0:
            msg = f"duration must be positive, got: {self.duration}"
            raise ConfigError(msg)

        if self.processes < 1:
            msg = f"processes must be >= 1, got: {self.processes}"
            raise ConfigError(msg)

        if self.processes > self.connections:
            msg = (
                f"processes ({self.processes}) must not exceed "
                f"connections ({self.connections})"
            )
            raise ConfigError(msg)

    @property
    def host(self) -> str:
        """Return the host part of the address."""
        return split_address(self.address)[0]

    @property
    def port(self) -> int:
        """Return the port part of the address."""
        return split_address(self.address)[1]

    def for_child(self, index: int) -> BenchmarkConfig:
        """Derive the configuration of fan-out child ``index``.

        Connections are divided evenly across children. The first child
        receives any remainder so the total is preserved.

        Args:
            index: Zero-based child index.

        Returns:
            A single-process configuration with ``wait`` set.
        """
        base = self.connections // self.processes
        remainder = self.connections % self.processes
        return replace(
            self,
            connections=base + (remainder if index == 0 else 0),
            processes=1,
            wait=True,
        )

    def child_args(self) -> list[str]:
        """Render this configuration as ``echobench run`` arguments."""
        args = [
            "--addr",
            self.address,
            "--num",
            str(self.connections),
            "--size",
            str(self.message_size),
            "--time",
            _format_seconds(self.duration),
            "--procs",
            str(self.processes),
        ]
        if self.wait:
            args.append("--wait")
        return args


def _format_seconds(value: float) -> str:
    """Render seconds so that ``float()`` reads back the exact value."""
    seconds = float(value)
    if seconds.is_integer():
        return str(int(seconds))
    return repr(seconds)


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    Args:
        address: Address string. IPv6 hosts may be bracketed.

    Returns:
        Tuple of (host, port).

    Raises:
        ConfigError: If the address has no valid port.
    """
    host, sep, port_str = address.rpartition(":")
    if not sep or not host:
        msg = f"address must be host:port, got: {address!r}"
        raise ConfigError(msg)

    try:
        port = int(port_str)
    except ValueError:
        msg = f"address port must be an integer, got: {port_str!r}"
        raise ConfigError(msg) from None

    if not 0 < port < 65536:
        msg = f"address port must be between 1 and 65535, got: {port}"
        raise ConfigError(msg)

    return host.strip("[]"), port


def _env_number(name: str, default: str, cast: type[int] | type[float]) -> int | float:
    value = os.environ.get(name, default)
    try:
        return cast(value)
    except ValueError:
        kind = "an integer" if cast is int else "a number"
        msg = f"{name} must be {kind}, got: {value!r}"
        raise ConfigError(msg) from None


def load_config(**overrides: Any) -> BenchmarkConfig:
    """Load configuration from environment variables with defaults.

    Keyword overrides (BenchmarkConfig field names) take precedence over
    the environment; None values are ignored.

    Environment variables:
        ECHOBENCH_ADDR: Echo server address (default: 127.0.0.1:10010).
        ECHOBENCH_NUM: Connection count (default: 1).
        ECHOBENCH_SIZE: Message size in bytes (default: 64).
        ECHOBENCH_TIME: Run duration in seconds (default: 10).
        ECHOBENCH_PROCS: Process count (default: 1).

    Returns:
        Populated BenchmarkConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    values: dict[str, Any] = {
        "address": os.environ.get("ECHOBENCH_ADDR", DEFAULT_ADDRESS),
        "connections": _env_number("ECHOBENCH_NUM", "1", int),
        "message_size": _env_number("ECHOBENCH_SIZE", "64", int),
        "duration": _env_number("ECHOBENCH_TIME", "10", float),
        "processes": _env_number("ECHOBENCH_PROCS", "1", int),
    }
    values.update((k, v) for k, v in overrides.items() if v is not None)
    return BenchmarkConfig(**values)
