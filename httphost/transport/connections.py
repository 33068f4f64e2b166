"""Connection state and tracking of in-flight connections."""

import enum
import socket
import threading

from httphost.domain.context import CancelFunc, ExecutionContext


class ConnectionState(enum.Enum):
    """Lifecycle of one accepted connection."""

    NEW = "new"
    ACTIVE = "active"
    IDLE = "idle"
    CLOSED = "closed"


class Connection:
    """An accepted client socket plus the context its requests run under."""

    def __init__(
        self,
        client_socket: socket.socket,
        client_address: tuple,
        context: ExecutionContext,
        cancel: CancelFunc,
    ) -> None:
        self.socket = client_socket
        self.address = client_address
        self.context = context
        self._cancel = cancel
        self._lock = threading.Lock()
        self._state = ConnectionState.NEW

    @property
    def client(self) -> str:
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    def mark_active(self) -> bool:
        """Flag a request as in progress; False when already closed."""
        return self._move_to(ConnectionState.ACTIVE)

    def mark_idle(self) -> bool:
        """Flag the connection as waiting for its next request."""
        return self._move_to(ConnectionState.IDLE)

    def _move_to(self, state: ConnectionState) -> bool:
        with self._lock:
            if self._state is ConnectionState.CLOSED:
                return False
            self._state = state
            return True

    def close_if_idle(self) -> bool:
        """Close the connection when it sits between requests."""
        with self._lock:
            if self._state is not ConnectionState.IDLE:
                return False
            self._state = ConnectionState.CLOSED
        self._terminate()
        return True

    def close(self) -> None:
        """Close the connection whatever it is doing."""
        with self._lock:
            if self._state is ConnectionState.CLOSED:
                return
            self._state = ConnectionState.CLOSED
        self._terminate()

    def _terminate(self) -> None:
        self._cancel()
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.socket.close()


class ConnectionTracker:
    """Registry of live connections that shutdown can drain or force close."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._connections: set[Connection] = set()

    def add(self, connection: Connection) -> None:
        with self._condition:
            self._connections.add(connection)

    def discard(self, connection: Connection) -> None:
        with self._condition:
            self._connections.discard(connection)
            self._condition.notify_all()

    def __contains__(self, connection: Connection) -> bool:
        with self._condition:
            return connection in self._connections

    def __len__(self) -> int:
        with self._condition:
            return len(self._connections)

    def snapshot(self) -> list[Connection]:
        with self._condition:
            return list(self._connections)

    def close_idle(self) -> int:
        """Close every idle connection and return how many were closed."""
        closed = 0
        for connection in self.snapshot():
            if connection.close_if_idle():
                self.discard(connection)
                closed += 1
        return closed

    def close_all(self) -> int:
        """Force close every tracked connection and forget them."""
        with self._condition:
            connections = list(self._connections)
            self._connections.clear()
            self._condition.notify_all()
        for connection in connections:
            connection.close()
        return len(connections)

    def drain(self, ctx: ExecutionContext, poll_interval: float) -> bool:
        """Wait until no connection remains; False if ``ctx`` ends first.

        Idle connections are closed on every pass so keep-alive clients do
        not hold the drain open.
        """
        while True:
            self.close_idle()
            with self._condition:
                if not self._connections:
                    return True
                remaining = ctx.remaining()
                if ctx.cancelled() or remaining == 0:
                    return False
                if remaining is not None:
                    poll_interval = min(poll_interval, remaining)
                self._condition.wait(poll_interval)
