"""Run a set of threads that share one cancellable context and join on all."""

import threading
from typing import Any, Callable, Optional

from httphost.domain.context import ExecutionContext, with_cancel


class Task:
    """Handle on one function started by ``TaskGroup.go``."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.result: Any = None
        self.error: Optional[BaseException] = None


class TaskGroup:
    """Threads sharing a derived context; the first failure cancels it.

    ``wait`` returns only after every task has finished, never after the
    first one.
    """

    def __init__(self, parent: ExecutionContext) -> None:
        self.context, self._cancel = with_cancel(parent)
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._first_error: Optional[BaseException] = None

    def go(self, name: str, func: Callable[..., Any], *args: Any) -> Task:
        """Start ``func(*args)`` on its own thread."""
        task = Task(name)
        thread = threading.Thread(
            target=self._run, args=(task, func, args), name=name, daemon=True
        )
        with self._lock:
            self._threads.append(thread)
        thread.start()
        return task

    def _run(self, task: Task, func: Callable[..., Any], args: tuple) -> None:
        try:
            task.result = func(*args)
        except Exception as error:  # pylint: disable=broad-except
            task.error = error
            with self._lock:
                if self._first_error is None:
                    self._first_error = error
            self._cancel()

    def first_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._first_error

    def wait(self) -> Optional[BaseException]:
        """Join every task, cancel the group context, return the first error."""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join()
        self._cancel()
        return self.first_error()
