"""Pure HTTP response builders."""

import json
from http import HTTPStatus
from typing import Any, Iterable, Optional

from httphost.domain.http_types import HttpRequest, HttpResponse, should_close


def status_line(status: HTTPStatus) -> str:
    """Format the HTTP/1.1 status line for ``status``."""
    return f"HTTP/1.1 {status.value} {status.phrase}"


def _closes_connection(request: Optional[HttpRequest]) -> bool:
    return should_close(request) if request is not None else True


def empty_response(
    request: Optional[HttpRequest] = None, status: HTTPStatus = HTTPStatus.OK
) -> HttpResponse:
    """Return a response with no body."""
    return HttpResponse(status_line(status), {}, b"", _closes_connection(request))


def text_response(
    message: str,
    request: Optional[HttpRequest] = None,
    status: HTTPStatus = HTTPStatus.OK,
) -> HttpResponse:
    """Return a text/plain response."""
    return HttpResponse(
        status_line(status),
        {"Content-Type": "text/plain; charset=utf-8"},
        message.encode(),
        _closes_connection(request),
    )


def json_response(
    payload: Any,
    request: Optional[HttpRequest] = None,
    status: HTTPStatus = HTTPStatus.OK,
) -> HttpResponse:
    """Return an application/json response serializing ``payload``."""
    return HttpResponse(
        status_line(status),
        {"Content-Type": "application/json; charset=utf-8"},
        json.dumps(payload).encode(),
        _closes_connection(request),
    )


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return empty_response(request, HTTPStatus.NOT_FOUND)


def method_not_allowed_response(
    request: HttpRequest, allowed_methods: Iterable[str]
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    response = empty_response(request, HTTPStatus.METHOD_NOT_ALLOWED)
    response.headers["Allow"] = ", ".join(sorted(allowed_methods))
    return response


def bad_request_response() -> HttpResponse:
    """Produce a 400 response that closes the connection."""
    return empty_response(None, HTTPStatus.BAD_REQUEST)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return empty_response(None, HTTPStatus.REQUEST_ENTITY_TOO_LARGE)


def header_fields_too_large_response() -> HttpResponse:
    """Produce a 431 response that always closes the connection."""
    return empty_response(None, HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE)


def internal_error_response() -> HttpResponse:
    """Produce a 500 response that always closes the connection."""
    return empty_response(None, HTTPStatus.INTERNAL_SERVER_ERROR)


def draining_response() -> HttpResponse:
    """Produce a 503 response indicating the server is shutting down."""
    response = text_response("draining", None, HTTPStatus.SERVICE_UNAVAILABLE)
    response.headers["Retry-After"] = "1"
    return response
