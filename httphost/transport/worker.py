"""Worker thread logic for handling individual client connections."""

import logging
import socket
from typing import Optional

from httphost.bootstrap.config import MAX_BODY_BYTES
from httphost.domain.context import with_cancel, with_value
from httphost.domain.correlation_id import (
    CORRELATION_ID_KEY,
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from httphost.domain.http_types import HttpRequest, HttpResponse, should_close
from httphost.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    header_fields_too_large_response,
    internal_error_response,
)
from httphost.pipeline.io import (
    HeaderFieldsTooLarge,
    RequestEntityTooLarge,
    deadline_after,
    receive_request,
    recv_with_deadline,
    send_response,
    serialize_head,
)
from httphost.transport.connections import Connection, ConnectionState
from httphost.transport.context import WorkerContext

REJECT_SEND_TIMEOUT = 1.0


def _send_error(
    connection: Connection, response: HttpResponse, context: WorkerContext
) -> None:
    try:
        send_response(
            connection.socket, response, deadline_after(context.config.write_timeout)
        )
    except OSError:
        pass


def _await_request_bytes(
    connection: Connection, context: WorkerContext
) -> tuple[bytes, Optional[int]]:
    """Wait for the first bytes of the next request.

    Returns the bytes read and the read deadline for the rest of the request.
    A new connection shares one read deadline between waiting and reading; a
    kept-alive connection waits up to the idle timeout first.
    """
    config = context.config
    if connection.state is ConnectionState.NEW:
        read_deadline = deadline_after(config.read_timeout)
        return recv_with_deadline(connection.socket, read_deadline), read_deadline
    chunk = recv_with_deadline(
        connection.socket, deadline_after(config.keep_alive_timeout)
    )
    return chunk, deadline_after(config.read_timeout)


def _read_request(
    connection: Connection, buffer: bytes, context: WorkerContext
) -> tuple[Optional[HttpRequest], bytes]:
    """Read one request, answering protocol errors and returning None on close."""
    logger = context.logger
    read_deadline = deadline_after(context.config.read_timeout)
    if not buffer:
        try:
            buffer, read_deadline = _await_request_bytes(connection, context)
        except TimeoutError:
            if logger.logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Connection idle timeout",
                    extra={"event": "idle_timeout", "client": connection.client},
                )
            return None, b""
        if not buffer:
            return None, b""
    if not connection.mark_active():
        return None, b""

    try:
        return receive_request(connection.socket, buffer, read_deadline)
    except RequestEntityTooLarge:
        logger.warning(
            "Request body size exceeded limit",
            extra={
                "event": "body_size_exceeded",
                "client": connection.client,
                "limit": MAX_BODY_BYTES,
            },
        )
        _send_error(connection, entity_too_large_response(), context)
    except HeaderFieldsTooLarge:
        logger.warning(
            "Request header size exceeded limit",
            extra={"event": "header_size_exceeded", "client": connection.client},
        )
        _send_error(connection, header_fields_too_large_response(), context)
    except (ValueError, UnicodeDecodeError):
        logger.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": connection.client},
        )
        _send_error(connection, bad_request_response(), context)
    return None, b""


def _invoke_handler(
    request: HttpRequest, connection: Connection, context: WorkerContext
) -> HttpResponse:
    correlation_id = request.headers.get("x-request-id") or generate_correlation_id()
    set_correlation_id(correlation_id)
    # The request scope ends with the handler call.
    scope, release = with_cancel(connection.context)
    request_ctx = with_value(scope, CORRELATION_ID_KEY, correlation_id)
    try:
        return context.handler(request, request_ctx)
    except Exception as error:  # pylint: disable=broad-except
        context.logger.error(
            "Request handler failed",
            extra={
                "event": "handler_error",
                "client": connection.client,
                "route": request.path,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        return internal_error_response()
    finally:
        release()


def _serve_requests(connection: Connection, context: WorkerContext) -> None:
    buffer = b""
    while True:
        request, buffer = _read_request(connection, buffer, context)
        if request is None:
            return

        write_deadline = deadline_after(context.config.write_timeout)
        response = _invoke_handler(request, connection, context)
        if should_close(request) or context.closing.is_set():
            response.close_connection = True
        send_response(connection.socket, response, write_deadline)
        clear_correlation_id()

        if response.close_connection or not connection.mark_idle():
            return


def handle_client(connection: Connection, context: WorkerContext) -> None:
    """Process requests on a client connection until it is closed."""
    logger = context.logger
    if logger.logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Connection opened",
            extra={"event": "connection_opened", "client": connection.client},
        )
    try:
        _serve_requests(connection, context)
    except (ConnectionError, TimeoutError, OSError) as error:
        if connection.state is not ConnectionState.CLOSED:
            logger.warning(
                "Error handling client connection",
                extra={
                    "event": "connection_error",
                    "client": connection.client,
                    "error_type": type(error).__name__,
                },
            )
    finally:
        clear_correlation_id()
        context.connections.discard(connection)
        connection.close()
        if logger.logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Socket closed",
                extra={"event": "socket_closed", "client": connection.client},
            )


def reject_client(client_socket: socket.socket, response: HttpResponse) -> None:
    """Answer a connection the server will not serve, then close it."""
    try:
        client_socket.settimeout(REJECT_SEND_TIMEOUT)
        client_socket.sendall(serialize_head(response) + response.body)
    except OSError:
        pass
    finally:
        client_socket.close()
