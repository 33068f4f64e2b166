"""Demo and health endpoints plus the default application router."""

from httphost.domain.context import ExecutionContext
from httphost.domain.correlation_id import get_logger
from httphost.domain.http_types import HttpRequest, HttpResponse
from httphost.domain.response_builders import empty_response, json_response
from httphost.handlers.middleware import recovery_middleware, request_logging_middleware
from httphost.handlers.router import Router

SYSTEM_LOGGER = get_logger("handlers.system")


def handle_ping(request: HttpRequest, ctx: ExecutionContext) -> HttpResponse:
    """Handle /ping with a fixed JSON payload."""
    SYSTEM_LOGGER.with_context(ctx).info(
        "Ping endpoint called", extra={"event": "ping"}
    )
    return json_response({"message": "pong"}, request)


def handle_healthz(request: HttpRequest, _ctx: ExecutionContext) -> HttpResponse:
    """Handle /healthz with an empty 200."""
    return empty_response(request)


def build_router() -> Router:
    """Return the default application: recovery, access log, demo routes."""
    router = Router()
    router.use(recovery_middleware)
    router.use(request_logging_middleware)
    router.get("/ping", handle_ping)
    router.get("/healthz", handle_healthz)
    return router
