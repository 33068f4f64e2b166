"""Error taxonomy for the server lifecycle and execution contexts."""


class LifecycleError(Exception):
    """Base class for terminal failures of a lifecycle run."""


class BindError(LifecycleError):
    """Raised when the listening socket cannot be bound."""


class AcceptError(LifecycleError):
    """Raised when the accept loop hits an unrecoverable error."""


class ShutdownTimeoutError(LifecycleError):
    """Raised when in-flight connections outlive the shutdown grace period."""


class ServerClosed(Exception):
    """Signals that the listener was closed on purpose by a shutdown request."""

    def __init__(self, message: str = "server closed") -> None:
        super().__init__(message)


class ContextError(Exception):
    """Base class for the causes recorded on a cancelled context."""


class Cancelled(ContextError):
    """The context was cancelled explicitly."""

    def __init__(self, message: str = "context cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextError, TimeoutError):
    """The context deadline passed before the work finished."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)
