"""Request middleware: crash recovery and access logging."""

import time

from httphost.domain.context import ExecutionContext
from httphost.domain.correlation_id import get_logger
from httphost.domain.http_types import HttpRequest, HttpResponse, RequestHandler
from httphost.domain.response_builders import internal_error_response

ACCESS_LOGGER = get_logger("handlers.access")
RECOVERY_LOGGER = get_logger("handlers.recovery")


def recovery_middleware(handler: RequestHandler) -> RequestHandler:
    """Turn an exception escaping ``handler`` into a 500 response."""

    def wrapped(request: HttpRequest, ctx: ExecutionContext) -> HttpResponse:
        try:
            return handler(request, ctx)
        except Exception as error:  # pylint: disable=broad-except
            RECOVERY_LOGGER.with_context(ctx).error(
                "Recovered from handler failure",
                extra={
                    "event": "handler_recovered",
                    "route": request.path,
                    "method": request.method,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            return internal_error_response()

    return wrapped


def request_logging_middleware(handler: RequestHandler) -> RequestHandler:
    """Emit one access record per request."""

    def wrapped(request: HttpRequest, ctx: ExecutionContext) -> HttpResponse:
        started = time.perf_counter()
        response = handler(request, ctx)
        ACCESS_LOGGER.with_context(ctx).info(
            "Request handled",
            extra={
                "event": "request_complete",
                "method": request.method,
                "route": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            },
        )
        return response

    return wrapped
