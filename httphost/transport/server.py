"""Listening socket ownership, accept loop and graceful shutdown."""

import errno
import logging
import socket
import threading
from typing import Optional

from httphost.bootstrap.config import ServerConfig, parse_bind_address
from httphost.bootstrap.socket_factory import create_server_socket
from httphost.domain.context import ExecutionContext, background, with_cancel
from httphost.domain.correlation_id import ContextLoggerAdapter, get_logger
from httphost.domain.errors import AcceptError, ServerClosed, ShutdownTimeoutError
from httphost.domain.http_types import RequestHandler
from httphost.domain.response_builders import draining_response
from httphost.transport.connections import Connection, ConnectionTracker
from httphost.transport.context import WorkerContext
from httphost.transport.worker import handle_client, reject_client

POLL_INTERVAL = 0.5

# Per-connection failures that say nothing about the listener itself.
_SKIPPABLE_ACCEPT_ERRNOS = {errno.ECONNABORTED, errno.EPROTO, errno.EPERM}


class HttpServer:
    """Owns one listening socket and the connections accepted from it.

    ``serve`` runs the accept loop on the calling thread; ``shutdown`` may be
    called from any other thread and is safe while an accept is in progress.
    """

    def __init__(
        self,
        handler: RequestHandler,
        config: ServerConfig,
        logger: Optional[ContextLoggerAdapter] = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self._config = config
        self._logger = logger or get_logger("transport")
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self._listener: Optional[socket.socket] = None
        self._address: Optional[tuple[str, int]] = None
        self._connections = ConnectionTracker()
        self._closing = threading.Event()
        self._root_context, self._cancel_root = with_cancel(background())
        self._worker_context = WorkerContext(
            handler=handler,
            config=config,
            connections=self._connections,
            closing=self._closing,
            logger=self._logger.child("worker"),
        )

    @property
    def address(self) -> Optional[tuple[str, int]]:
        """Host and port actually bound, once ``bind`` succeeded."""
        return self._address

    def is_closing(self) -> bool:
        return self._closing.is_set()

    def active_connections(self) -> int:
        return len(self._connections)

    def bind(self) -> tuple[str, int]:
        """Bind the listening socket.

        Raises ``BindError`` on failure and ``ServerClosed`` after shutdown.
        """
        with self._lock:
            if self._closing.is_set():
                raise ServerClosed
            if self._listener is not None:
                return self._address
            host, port = parse_bind_address(self._config.bind_address)
            listener = create_server_socket(host, port, self._poll_interval)
            self._listener = listener
            self._address = listener.getsockname()[:2]
            return self._address

    def serve(self) -> None:
        """Accept connections until shutdown; always ends by raising.

        Raises ``ServerClosed`` when the listener was closed on purpose and
        ``AcceptError`` when accepting failed for any other reason.
        """
        self.bind()
        with self._lock:
            listener = self._listener
        if listener is None:
            raise ServerClosed
        try:
            while True:
                if self._closing.is_set():
                    raise ServerClosed
                try:
                    client_socket, client_address = listener.accept()
                except socket.timeout:
                    continue
                except OSError as error:
                    if self._closing.is_set():
                        raise ServerClosed from None
                    if error.errno in _SKIPPABLE_ACCEPT_ERRNOS:
                        self._logger.warning(
                            "Skipped aborted connection",
                            extra={"event": "accept_skipped", "errno": error.errno},
                        )
                        continue
                    raise AcceptError(f"Socket accept failed: {error}") from error
                self._dispatch(client_socket, client_address)
        finally:
            self._close_listener()

    def _dispatch(self, client_socket: socket.socket, client_address: tuple) -> None:
        with self._lock:
            if self._closing.is_set():
                connection = None
            else:
                conn_ctx, cancel = with_cancel(self._root_context)
                connection = Connection(client_socket, client_address, conn_ctx, cancel)
                self._connections.add(connection)

        if connection is None:
            reject_client(client_socket, draining_response())
            self._logger.info(
                "Rejected connection during shutdown",
                extra={
                    "event": "connection_rejected",
                    "client": f"{client_address[0]}:{client_address[1]}",
                },
            )
            return

        if self._logger.logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(
                "Client connection accepted",
                extra={"event": "client_accepted", "client": connection.client},
            )
        thread = threading.Thread(
            target=handle_client,
            args=(connection, self._worker_context),
            name=f"httphost-conn-{connection.client}",
            daemon=True,
        )
        thread.start()

    def _close_listener(self) -> None:
        with self._lock:
            self._closing.set()
            listener, self._listener = self._listener, None
        if listener is None:
            return
        try:
            listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        listener.close()

    def shutdown(self, ctx: ExecutionContext) -> None:
        """Stop accepting, then wait for in-flight connections until ``ctx`` ends.

        Connections still open when ``ctx`` is done are closed and
        ``ShutdownTimeoutError`` is raised.
        """
        self._close_listener()
        self._logger.info(
            "Listener closed, draining connections",
            extra={
                "event": "shutdown_waiting",
                "active_connections": len(self._connections),
            },
        )
        drained = self._connections.drain(ctx, self._poll_interval)
        if drained:
            self._cancel_root()
            return
        abandoned = self._connections.close_all()
        self._cancel_root()
        raise ShutdownTimeoutError(
            f"Shutdown grace period exceeded; terminated {abandoned} connection(s)"
        )

    def close(self) -> None:
        """Close the listener and every connection immediately."""
        self._close_listener()
        self._connections.close_all()
        self._cancel_root()
