"""Context object shared across worker threads."""

import threading
from dataclasses import dataclass, field

from httphost.bootstrap.config import ServerConfig
from httphost.domain.correlation_id import ContextLoggerAdapter, get_logger
from httphost.domain.http_types import RequestHandler
from httphost.transport.connections import ConnectionTracker


@dataclass
class WorkerContext:
    """Dependencies shared across connection threads."""

    handler: RequestHandler
    config: ServerConfig
    connections: ConnectionTracker = field(default_factory=ConnectionTracker)
    closing: threading.Event = field(default_factory=threading.Event)
    logger: ContextLoggerAdapter = field(
        default_factory=lambda: get_logger("transport.worker")
    )
