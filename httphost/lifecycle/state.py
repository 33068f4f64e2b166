"""Server lifecycle state management."""

import enum
import threading
from typing import Optional

from httphost.domain.correlation_id import ContextLoggerAdapter, get_logger


class LifecycleState(enum.Enum):
    """Phases of one lifecycle manager run."""

    IDLE = "idle"
    BINDING = "binding"
    SERVING = "serving"
    SHUTTING_DOWN_GRACEFUL = "shutting_down_graceful"
    SHUTTING_DOWN_FORCED = "shutting_down_forced"
    TERMINATED = "terminated"


ALLOWED_TRANSITIONS = {
    LifecycleState.IDLE: {LifecycleState.BINDING},
    LifecycleState.BINDING: {LifecycleState.SERVING, LifecycleState.TERMINATED},
    LifecycleState.SERVING: {
        LifecycleState.SHUTTING_DOWN_GRACEFUL,
        LifecycleState.TERMINATED,
    },
    LifecycleState.SHUTTING_DOWN_GRACEFUL: {
        LifecycleState.SHUTTING_DOWN_FORCED,
        LifecycleState.TERMINATED,
    },
    LifecycleState.SHUTTING_DOWN_FORCED: {LifecycleState.TERMINATED},
    LifecycleState.TERMINATED: set(),
}


class InvalidTransition(RuntimeError):
    """Raised when a transition is not permitted from the current state."""


class LifecycleStateMachine:
    """Thread-safe holder of the current lifecycle state."""

    def __init__(self, logger: Optional[ContextLoggerAdapter] = None) -> None:
        self._lock = threading.Lock()
        self._state = LifecycleState.IDLE
        self._history = [LifecycleState.IDLE]
        self._logger = logger or get_logger("lifecycle")

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def history(self) -> list[LifecycleState]:
        with self._lock:
            return list(self._history)

    def transition(self, target: LifecycleState) -> None:
        """Move to ``target``, raising ``InvalidTransition`` when not allowed."""
        with self._lock:
            current = self._state
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransition(f"{current.value} -> {target.value}")
            self._enter(target)
        self._logger.debug(
            "Lifecycle state changed",
            extra={
                "event": "state_changed",
                "from_state": current.value,
                "to_state": target.value,
            },
        )

    def transition_from(self, expected: LifecycleState, target: LifecycleState) -> bool:
        """Move to ``target`` only when currently in ``expected``."""
        if target not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidTransition(f"{expected.value} -> {target.value}")
        with self._lock:
            if self._state is not expected:
                return False
            self._enter(target)
        self._logger.debug(
            "Lifecycle state changed",
            extra={
                "event": "state_changed",
                "from_state": expected.value,
                "to_state": target.value,
            },
        )
        return True

    def _enter(self, target: LifecycleState) -> None:
        self._state = target
        self._history.append(target)
