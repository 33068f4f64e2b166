"""Request routing logic."""

import logging
from typing import Callable

from httphost.domain.context import ExecutionContext
from httphost.domain.correlation_id import get_logger
from httphost.domain.http_types import HttpRequest, HttpResponse, RequestHandler
from httphost.domain.response_builders import (
    method_not_allowed_response,
    not_found_response,
)

ROUTER_LOGGER = get_logger("handlers.router")

Middleware = Callable[[RequestHandler], RequestHandler]


class Router:
    """Exact-match router usable as a ``RequestHandler``."""

    def __init__(self) -> None:
        self._routes: dict[str, dict[str, RequestHandler]] = {}
        self._middleware: list[Middleware] = []

    def add_route(self, method: str, path: str, handler: RequestHandler) -> None:
        self._routes.setdefault(path, {})[method.upper()] = handler

    def get(self, path: str, handler: RequestHandler) -> None:
        self.add_route("GET", path, handler)

    def use(self, middleware: Middleware) -> None:
        """Wrap every request; the first registered middleware runs outermost."""
        self._middleware.append(middleware)

    def __call__(self, request: HttpRequest, ctx: ExecutionContext) -> HttpResponse:
        handler: RequestHandler = self._dispatch
        for middleware in reversed(self._middleware):
            handler = middleware(handler)
        return handler(request, ctx)

    def _dispatch(self, request: HttpRequest, ctx: ExecutionContext) -> HttpResponse:
        methods = self._routes.get(request.path)
        if methods is None:
            ROUTER_LOGGER.info(
                "No matching route found",
                extra={
                    "event": "route_not_found",
                    "route": request.path,
                    "method": request.method,
                },
            )
            return not_found_response(request)

        handler = methods.get(request.method)
        if handler is None:
            return method_not_allowed_response(request, methods)

        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Route matched", extra={"event": "route_matched", "route": request.path}
            )
        return handler(request, ctx)
