"""Lifecycle manager: serve until cancelled, then shut down within a grace period."""

import threading
from typing import Optional

from httphost.bootstrap.config import ServerConfig
from httphost.domain.context import ExecutionContext, with_timeout, without_cancel
from httphost.domain.correlation_id import ContextLoggerAdapter
from httphost.domain.errors import BindError, ServerClosed, ShutdownTimeoutError
from httphost.domain.http_types import RequestHandler
from httphost.domain.outcome import Outcome
from httphost.lifecycle.group import TaskGroup
from httphost.lifecycle.state import LifecycleState, LifecycleStateMachine
from httphost.transport.server import POLL_INTERVAL, HttpServer


def resolve_outcome(
    serve_error: Optional[BaseException], shutdown_error: Optional[BaseException]
) -> Outcome:
    """Combine both activity results; a serve failure is always the root cause."""
    if serve_error is not None and not isinstance(serve_error, ServerClosed):
        return Outcome.failure(serve_error)
    if shutdown_error is not None:
        return Outcome.failure(shutdown_error)
    return Outcome.success()


class LifecycleManager:
    """Runs one ``HttpServer`` per ``run`` call and reports a single outcome.

    The logger is supplied by the caller, who owns its configuration.
    """

    def __init__(
        self, logger: ContextLoggerAdapter, poll_interval: float = POLL_INTERVAL
    ) -> None:
        self._logger = logger
        self._poll_interval = poll_interval
        self._run_lock = threading.Lock()
        self._running = False
        self._machine = LifecycleStateMachine(logger)
        self._outcome: Optional[Outcome] = None
        self._server: Optional[HttpServer] = None
        self._serving = threading.Event()

    @property
    def state(self) -> LifecycleState:
        return self._machine.state

    @property
    def history(self) -> list[LifecycleState]:
        return self._machine.history

    @property
    def outcome(self) -> Optional[Outcome]:
        """Outcome of the most recent finished run."""
        return self._outcome

    @property
    def address(self) -> Optional[tuple[str, int]]:
        """Bound address of the current or most recent run."""
        return self._server.address if self._server is not None else None

    def wait_serving(self, timeout: Optional[float] = None) -> bool:
        """Block until the current run has bound its socket."""
        return self._serving.wait(timeout)

    def run(
        self, ctx: ExecutionContext, handler: RequestHandler, config: ServerConfig
    ) -> Outcome:
        """Serve ``handler`` on ``config.bind_address`` until ``ctx`` is cancelled."""
        with self._run_lock:
            if self._running:
                raise RuntimeError("LifecycleManager.run is already in progress")
            self._running = True
            self._machine = LifecycleStateMachine(self._logger)
            self._outcome = None
            self._serving.clear()
        try:
            return self._run(ctx, handler, config)
        finally:
            with self._run_lock:
                self._running = False

    def _run(
        self, ctx: ExecutionContext, handler: RequestHandler, config: ServerConfig
    ) -> Outcome:
        logger = self._logger.with_context(ctx)
        server = HttpServer(
            handler, config, self._logger.child("transport"), self._poll_interval
        )
        self._server = server

        self._machine.transition(LifecycleState.BINDING)
        try:
            host, port = server.bind()
        except BindError as error:
            return self._terminate(logger, Outcome.failure(error))

        self._machine.transition(LifecycleState.SERVING)
        logger.info(
            "Server starting",
            extra={
                "event": "server_starting",
                "bind_address": config.bind_address,
                "host": host,
                "port": port,
                "read_timeout": config.read_timeout,
                "write_timeout": config.write_timeout,
                "idle_timeout": config.idle_timeout,
                "shutdown_grace_seconds": config.shutdown_grace_period,
            },
        )
        self._serving.set()

        group = TaskGroup(ctx)
        serve_task = group.go("httphost-serve", server.serve)
        shutdown_task = group.go(
            "httphost-shutdown", self._watch_shutdown, group, server, config, logger
        )
        group.wait()
        outcome = resolve_outcome(serve_task.error, shutdown_task.error)
        return self._terminate(logger, outcome)

    def _watch_shutdown(
        self,
        group: TaskGroup,
        server: HttpServer,
        config: ServerConfig,
        logger: ContextLoggerAdapter,
    ) -> None:
        group.context.wait()
        first_error = group.first_error()
        serve_failed = first_error is not None and not isinstance(
            first_error, ServerClosed
        )

        if not serve_failed:
            self._machine.transition_from(
                LifecycleState.SERVING, LifecycleState.SHUTTING_DOWN_GRACEFUL
            )
            cause = group.context.error()
            logger.info(
                "Gracefully shutting down server",
                extra={
                    "event": "shutdown_requested",
                    "cause": type(cause).__name__,
                    "grace_seconds": config.shutdown_grace_period,
                    "active_connections": server.active_connections(),
                },
            )

        shutdown_ctx, cancel = with_timeout(
            without_cancel(group.context), config.shutdown_grace_period
        )
        try:
            server.shutdown(shutdown_ctx)
        except ShutdownTimeoutError as error:
            if not serve_failed:
                self._machine.transition_from(
                    LifecycleState.SHUTTING_DOWN_GRACEFUL,
                    LifecycleState.SHUTTING_DOWN_FORCED,
                )
                logger.warning(
                    "Shutdown grace period exceeded, connections terminated",
                    extra={"event": "shutdown_forced", "error": str(error)},
                )
            raise
        finally:
            cancel()

        if not serve_failed:
            logger.info("Server shutdown complete", extra={"event": "shutdown_complete"})

    def _terminate(self, logger: ContextLoggerAdapter, outcome: Outcome) -> Outcome:
        if not outcome.ok:
            logger.error(
                "Server error",
                extra={
                    "event": "server_error",
                    "error_type": type(outcome.cause).__name__,
                    "error": str(outcome.cause),
                },
            )
        self._outcome = outcome
        self._serving.clear()
        self._machine.transition(LifecycleState.TERMINATED)
        return outcome
