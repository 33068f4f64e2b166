"""Unit tests for the per-connection worker loop over socket pairs."""

# pylint: disable=protected-access

import logging
import socket
import threading
import time

import pytest

from httphost.bootstrap.config import MAX_BODY_BYTES, ServerConfig
from httphost.domain.context import background, with_cancel
from httphost.domain.correlation_id import CORRELATION_ID_KEY
from httphost.domain.response_builders import draining_response, text_response
from httphost.transport.connections import Connection, ConnectionState
from httphost.transport.context import WorkerContext
from httphost.transport.worker import handle_client, reject_client
from tests.utils.http import build_request, connection_closed, read_http_response


def _echo_handler(request, ctx):
    return text_response(f"{request.method} {request.path}", request)


class WorkerHarness:
    """Runs ``handle_client`` on one end of a socket pair."""

    def __init__(self, handler=_echo_handler, config=None):
        self.server_side, self.client = socket.socketpair()
        self.client.settimeout(2.0)
        ctx, cancel = with_cancel(background())
        self.connection = Connection(self.server_side, ("127.0.0.1", 4000), ctx, cancel)
        self.context = WorkerContext(
            handler=handler,
            config=config or ServerConfig(read_timeout=1.0, idle_timeout=1.0),
        )
        self.context.connections.add(self.connection)
        self.thread = threading.Thread(
            target=handle_client, args=(self.connection, self.context), daemon=True
        )

    def start(self):
        self.thread.start()
        return self

    def request(self, path, **kwargs):
        self.client.sendall(build_request(path, **kwargs))
        return read_http_response(self.client)

    def wait_for_state(self, state, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.connection.state is state:
                return True
            time.sleep(0.01)
        return False

    def finished(self, timeout=2.0):
        self.thread.join(timeout)
        return not self.thread.is_alive()

    def close(self):
        self.client.close()
        self.finished()


@pytest.fixture(name="harness")
def harness_fixture():
    created = []

    def factory(**kwargs):
        instance = WorkerHarness(**kwargs).start()
        created.append(instance)
        return instance

    yield factory
    for instance in created:
        instance.close()


def test_keep_alive_serves_several_requests(harness):
    """Requests share one connection until the client asks to close."""
    worker = harness()

    first = worker.request("/one")
    second = worker.request("/two")
    assert first.body == b"GET /one"
    assert second.body == b"GET /two"
    assert "connection" not in second.headers
    assert worker.wait_for_state(ConnectionState.IDLE)

    last = worker.request("/three", connection="close")
    assert last.headers["connection"] == "close"
    assert connection_closed(worker.client)
    assert worker.finished()
    assert len(worker.context.connections) == 0
    assert worker.connection.state is ConnectionState.CLOSED


def test_request_id_is_echoed_or_generated(harness):
    worker = harness()
    echoed = worker.request("/", extra_headers={"X-Request-ID": "req-42"})
    generated = worker.request("/")
    assert echoed.headers["x-request-id"] == "req-42"
    assert generated.headers["x-request-id"] not in ("", "req-42")


def test_handler_context_carries_correlation_id(harness):
    seen = {}

    def handler(request, ctx):
        seen["ctx"] = ctx
        return text_response("ok", request)

    worker = harness(handler=handler)
    worker.request("/", extra_headers={"X-Request-ID": "ctx-id"}, connection="close")
    assert worker.finished()
    assert seen["ctx"].value(CORRELATION_ID_KEY) == "ctx-id"
    assert seen["ctx"].cancelled()


def test_malformed_request_gets_400(harness, caplog):
    caplog.set_level(logging.WARNING, logger="httphost")
    worker = harness()
    worker.client.sendall(b"NOT A REQUEST\r\n\r\n")
    response = read_http_response(worker.client)
    assert response.status_code == 400
    assert response.headers["connection"] == "close"
    assert worker.finished()
    assert any(
        getattr(r, "event", None) == "malformed_request" for r in caplog.records
    )


def test_oversized_body_gets_413(harness):
    worker = harness()
    worker.client.sendall(
        b"POST / HTTP/1.1\r\nContent-Length: "
        + str(MAX_BODY_BYTES + 1).encode()
        + b"\r\n\r\n"
    )
    assert read_http_response(worker.client).status_code == 413
    assert worker.finished()


def test_handler_exception_becomes_500(harness, caplog):
    """A crashing handler costs its connection, not the server."""
    caplog.set_level(logging.ERROR, logger="httphost")

    def explode(_request, _ctx):
        raise RuntimeError("handler bug")

    worker = harness(handler=explode)
    response = worker.request("/")
    assert response.status_code == 500
    assert connection_closed(worker.client)
    assert worker.finished()
    record = next(
        r for r in caplog.records if getattr(r, "event", None) == "handler_error"
    )
    assert record.error_type == "RuntimeError"


def test_idle_connection_times_out(harness):
    """A kept-alive connection with no new request closes after the idle timeout."""
    worker = harness(config=ServerConfig(read_timeout=5.0, idle_timeout=0.2))
    worker.request("/")
    assert connection_closed(worker.client, timeout=2.0)
    assert worker.finished()


def test_new_connection_without_request_times_out(harness):
    """A connection that never sends anything is bounded by the read timeout."""
    worker = harness(config=ServerConfig(read_timeout=0.2, idle_timeout=5.0))
    assert connection_closed(worker.client, timeout=2.0)
    assert worker.finished()


def test_closing_server_closes_after_response(harness):
    """During shutdown the in-flight response is the last on the connection."""
    worker = harness()
    worker.context.closing.set()
    response = worker.request("/")
    assert response.status_code == 200
    assert response.headers["connection"] == "close"
    assert worker.finished()


def test_close_while_idle_ends_worker_quietly(harness, caplog):
    """Closing an idle connection from another thread ends its worker."""
    caplog.set_level(logging.WARNING, logger="httphost")
    worker = harness()
    worker.request("/")
    assert worker.wait_for_state(ConnectionState.IDLE)
    assert worker.connection.close_if_idle()
    assert worker.finished()
    assert not any(
        getattr(r, "event", None) == "connection_error" for r in caplog.records
    )


def test_reject_client_answers_and_closes():
    server_side, client = socket.socketpair()
    client.settimeout(2.0)
    try:
        reject_client(server_side, draining_response())
        response = read_http_response(client)
        assert response.status_code == 503
        assert response.body == b"draining"
        assert connection_closed(client)
    finally:
        client.close()


def test_request_contexts_do_not_accumulate_on_keep_alive(harness):
    """Each request scope is released, leaving the connection context flat."""
    worker = harness()
    for _ in range(25):
        assert worker.request("/healthz").status_code == 200
        assert len(worker.connection.context._children) == 0
    assert not worker.connection.context.cancelled()
