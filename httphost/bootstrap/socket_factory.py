"""Listening socket creation."""

import socket

from httphost.domain.correlation_id import get_logger
from httphost.domain.errors import BindError

SOCKET_LOGGER = get_logger("socket")
LISTEN_BACKLOG = 128


def create_server_socket(host: str, port: int, poll_interval: float) -> socket.socket:
    """Bind and listen on ``host:port``; accepts time out every ``poll_interval``."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        server_socket = socket.create_server(
            (host, port), family=family, backlog=LISTEN_BACKLOG
        )
    except (OSError, OverflowError) as error:
        raise BindError(f"Cannot bind {host or '*'}:{port}: {error}") from error
    server_socket.settimeout(poll_interval)
    bound_host, bound_port = server_socket.getsockname()[:2]
    SOCKET_LOGGER.debug(
        "Listening socket bound",
        extra={"event": "socket_bound", "host": bound_host, "port": bound_port},
    )
    return server_socket
