"""HTTP Input/Output operations bounded by per-connection deadlines."""

import socket
import time
import urllib.parse
from typing import Optional, Tuple

from httphost.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES, MAX_HEADER_BYTES
from httphost.domain.correlation_id import get_correlation_id, get_logger
from httphost.domain.http_types import HttpRequest, HttpResponse

IO_LOGGER = get_logger("io")
SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


class HeaderFieldsTooLarge(Exception):
    """Raised when the request head exceeds configured limits."""


def deadline_after(timeout: float) -> Optional[int]:
    """Return a monotonic deadline in ns, or None when ``timeout`` disables it."""
    if timeout <= 0:
        return None
    return time.monotonic_ns() + int(timeout * 1_000_000_000)


def _apply_deadline(client_socket: socket.socket, deadline_ns: Optional[int]) -> None:
    if deadline_ns is None:
        client_socket.settimeout(None)
        return
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    client_socket.settimeout(remaining_ns / 1_000_000_000)


def recv_with_deadline(client_socket: socket.socket, deadline_ns: Optional[int]) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    _apply_deadline(client_socket, deadline_ns)
    return client_socket.recv(4096)


def sendall_with_deadline(
    client_socket: socket.socket, data: bytes, deadline_ns: Optional[int]
) -> None:
    """Send all bytes before the deadline, raising TimeoutError if exceeded."""
    _apply_deadline(client_socket, deadline_ns)
    client_socket.sendall(data)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if not line:
            continue
        name, separator, value = line.partition(":")
        if not separator or not name.strip():
            raise ValueError("Malformed header line")
        parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str, str]:
    """Parse the method, path, query and version from the request line."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if version not in SUPPORTED_VERSIONS:
        raise ValueError("Unsupported HTTP version")
    if not method.isalpha() or not method.isupper():
        raise ValueError("Invalid method")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path) or "/"
    return method, path, parsed_target.query, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise ValueError("Transfer-Encoding request bodies are not supported")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket, buffer: bytes, deadline_ns: Optional[int]
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available."""
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderFieldsTooLarge
        chunk = recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    if len(header_block) > MAX_HEADER_BYTES:
        raise HeaderFieldsTooLarge
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, path, query, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])
    content_length = determine_content_length(headers)

    while len(remainder) < content_length:
        chunk = recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        remainder += chunk

    body = remainder[:content_length]
    leftover = remainder[content_length:]
    IO_LOGGER.debug(
        "Parsed request", extra={"event": "request_parsed", "method": method, "route": path}
    )
    return HttpRequest(method, path, headers, body, version, query), leftover


def serialize_head(response: HttpResponse) -> bytes:
    """Build the status line and header block for ``response``."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    if response.use_chunked:
        headers["Transfer-Encoding"] = "chunked"
    else:
        headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    return "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER


def send_response(
    client_socket: socket.socket,
    response: HttpResponse,
    deadline_ns: Optional[int] = None,
) -> None:
    """Serialize and send the HTTP response over the socket."""
    header_block = serialize_head(response)
    if response.use_chunked and response.body_iter is not None:
        sendall_with_deadline(client_socket, header_block, deadline_ns)
        for chunk in response.body_iter:
            if not chunk:
                continue
            size_line = f"{len(chunk):X}\r\n".encode()
            sendall_with_deadline(
                client_socket, size_line + chunk + b"\r\n", deadline_ns
            )
        sendall_with_deadline(client_socket, b"0\r\n\r\n", deadline_ns)
    else:
        sendall_with_deadline(client_socket, header_block + response.body, deadline_ns)
    IO_LOGGER.debug(
        "Sent response",
        extra={
            "event": "response_sent",
            "status": response.status_line,
            "use_chunked": response.use_chunked,
        },
    )
