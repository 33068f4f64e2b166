"""Cancellable execution contexts shared between threads.

A context is a one-way cancellation token with an optional deadline and an
optional chain of key/value pairs. Cancelling a context cancels every context
derived from it; a derived context never cancels its parent.
"""

import threading
import time
from typing import Any, Callable, Optional

from httphost.domain.errors import Cancelled, ContextError, DeadlineExceeded

CancelFunc = Callable[[], None]


class ExecutionContext:
    """Thread-safe cancellation token with deadline and value propagation."""

    def __init__(
        self,
        parent: Optional["ExecutionContext"] = None,
        deadline: Optional[float] = None,
        values: Optional[dict[Any, Any]] = None,
        inherit_cancellation: bool = True,
    ) -> None:
        self._parent = parent
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._error: Optional[ContextError] = None
        self._children: set["ExecutionContext"] = set()
        self._values = dict(values or {})
        self._timer: Optional[threading.Timer] = None

        parent_deadline = None
        if parent is not None and inherit_cancellation:
            parent_deadline = parent.deadline()
        self._deadline = _earliest(parent_deadline, deadline)

        if parent is not None and inherit_cancellation:
            parent._attach(self)
        if deadline is not None and self._deadline == deadline:
            self._arm_timer(deadline)

    def done(self) -> threading.Event:
        """Return the event that is set once the context is cancelled."""
        return self._done

    def cancelled(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancellation or timeout; return True when cancelled."""
        return self._done.wait(timeout)

    def error(self) -> Optional[ContextError]:
        """Return the cancellation cause, or None while the context is live."""
        with self._lock:
            return self._error

    def deadline(self) -> Optional[float]:
        """Return the effective monotonic deadline, if any."""
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, clamped at zero."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def value(self, key: Any, default: Any = None) -> Any:
        """Look up a value on this context or the nearest ancestor carrying it."""
        ctx: Optional[ExecutionContext] = self
        while ctx is not None:
            if key in ctx._values:
                return ctx._values[key]
            ctx = ctx._parent
        return default

    def _attach(self, child: "ExecutionContext") -> None:
        with self._lock:
            error = self._error
            if error is None:
                self._children.add(child)
                return
        child._cancel(error)

    def _detach(self, child: "ExecutionContext") -> None:
        with self._lock:
            self._children.discard(child)

    def _arm_timer(self, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            self._cancel(DeadlineExceeded())
            return
        timer = threading.Timer(remaining, self._cancel, args=(DeadlineExceeded(),))
        timer.daemon = True
        with self._lock:
            if self._error is not None:
                return
            self._timer = timer
        timer.start()

    def _cancel(self, error: ContextError) -> None:
        with self._lock:
            if self._error is not None:
                return
            self._error = error
            children = list(self._children)
            self._children.clear()
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self._done.set()
        for child in children:
            child._cancel(error)
        if self._parent is not None:
            self._parent._detach(self)

    def __repr__(self) -> str:
        state = "live" if self._error is None else type(self._error).__name__
        return f"<ExecutionContext {state} deadline={self._deadline}>"


def _earliest(first: Optional[float], second: Optional[float]) -> Optional[float]:
    if first is None:
        return second
    if second is None:
        return first
    return min(first, second)


def background() -> ExecutionContext:
    """Return a fresh root context that is never cancelled on its own."""
    return ExecutionContext()


def with_cancel(parent: ExecutionContext) -> tuple[ExecutionContext, CancelFunc]:
    """Derive a child context and the function that cancels it."""
    ctx = ExecutionContext(parent)
    return ctx, lambda: ctx._cancel(Cancelled())  # pylint: disable=protected-access


def with_deadline(
    parent: ExecutionContext, deadline: float
) -> tuple[ExecutionContext, CancelFunc]:
    """Derive a child cancelled at the given ``time.monotonic()`` instant."""
    ctx = ExecutionContext(parent, deadline=deadline)
    return ctx, lambda: ctx._cancel(Cancelled())  # pylint: disable=protected-access


def with_timeout(
    parent: ExecutionContext, timeout: float
) -> tuple[ExecutionContext, CancelFunc]:
    """Derive a child cancelled after ``timeout`` seconds."""
    return with_deadline(parent, time.monotonic() + timeout)


def with_value(parent: ExecutionContext, key: Any, value: Any) -> ExecutionContext:
    """Derive a child carrying one extra key/value pair."""
    return ExecutionContext(parent, values={key: value})


def without_cancel(parent: ExecutionContext) -> ExecutionContext:
    """Derive a child that keeps the parent's values but not its cancellation."""
    return ExecutionContext(parent, inherit_cancellation=False)
