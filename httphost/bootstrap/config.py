"""Server configuration and CLI argument parsing."""

import argparse
import math
import os
from dataclasses import dataclass

from httphost.domain.errors import BindError


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


DEFAULT_HOST = os.getenv("HTTPHOST_HOST", "")
DEFAULT_PORT = _env_int("HTTPHOST_PORT", 8080)
DEFAULT_READ_TIMEOUT = _env_float("HTTPHOST_READ_TIMEOUT", 5.0)
DEFAULT_WRITE_TIMEOUT = _env_float("HTTPHOST_WRITE_TIMEOUT", 10.0)
DEFAULT_IDLE_TIMEOUT = _env_float("HTTPHOST_IDLE_TIMEOUT", 120.0)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_float("HTTPHOST_SHUTDOWN_GRACE_SECONDS", 10.0)
MAX_BODY_BYTES = _env_int("HTTPHOST_MAX_BODY_BYTES", 1024 * 1024)
MAX_HEADER_BYTES = _env_int("HTTPHOST_MAX_HEADER_BYTES", 64 * 1024)

HEADER_DELIMITER = b"\r\n\r\n"


@dataclass(frozen=True)
class ServerConfig:
    """Immutable listener settings; timeouts are seconds and 0 disables them."""

    bind_address: str = f"{DEFAULT_HOST}:{DEFAULT_PORT}"
    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    shutdown_grace_period: float = DEFAULT_SHUTDOWN_GRACE_SECONDS

    def __post_init__(self) -> None:
        for name in (
            "read_timeout",
            "write_timeout",
            "idle_timeout",
            "shutdown_grace_period",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number")

    @property
    def keep_alive_timeout(self) -> float:
        """Idle wait between requests; falls back to the read timeout."""
        return self.idle_timeout if self.idle_timeout > 0 else self.read_timeout


def parse_bind_address(address: str) -> tuple[str, int]:
    """Split ``host:port``, ``:port`` or ``[v6]:port`` into host and port."""
    host, separator, port_text = address.rpartition(":")
    if not separator:
        raise BindError(f"Invalid bind address {address!r}: missing port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise BindError(f"Invalid bind address {address!r}: bracket IPv6 hosts")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise BindError(f"Invalid bind address {address!r}: bad port") from exc
    if not 0 <= port <= 65535:
        raise BindError(f"Invalid bind address {address!r}: port out of range")
    return host, port


def format_bind_address(host: str, port: int) -> str:
    """Inverse of ``parse_bind_address``."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="HTTP service host")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Empty for all interfaces")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    default_log_level = os.getenv("HTTPHOST_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("HTTPHOST_LOG_DESTINATION", "stdout")
    default_log_format = os.getenv("HTTPHOST_LOG_FORMAT", "json").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_log_format,
        choices=["json", "text"],
        type=str.lower,
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=DEFAULT_READ_TIMEOUT,
        help="Seconds allowed to read a request (0 disables)",
    )
    parser.add_argument(
        "--write-timeout",
        type=float,
        default=DEFAULT_WRITE_TIMEOUT,
        help="Seconds allowed from end of request read to end of response write",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=DEFAULT_IDLE_TIMEOUT,
        help="Seconds a kept-alive connection may wait for its next request",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=float,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    return parser.parse_args(argv)


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed CLI arguments into a ``ServerConfig``."""
    return ServerConfig(
        bind_address=format_bind_address(args.host, args.port),
        read_timeout=args.read_timeout,
        write_timeout=args.write_timeout,
        idle_timeout=args.idle_timeout,
        shutdown_grace_period=args.shutdown_grace_seconds,
    )
