"""Terminal result of a lifecycle run."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Outcome:
    """Either an orderly shutdown or a failure carrying its root cause."""

    cause: Optional[BaseException] = None

    @classmethod
    def success(cls) -> "Outcome":
        return cls(None)

    @classmethod
    def failure(cls, cause: BaseException) -> "Outcome":
        if cause is None:
            raise ValueError("A failed outcome needs a cause")
        return cls(cause)

    @property
    def ok(self) -> bool:
        return self.cause is None

    @property
    def exit_code(self) -> int:
        """Process exit status conventionally mapped from the outcome."""
        return 0 if self.ok else 1

    def raise_for_failure(self) -> None:
        """Re-raise the failure cause, if any."""
        if self.cause is not None:
            raise self.cause

    def __str__(self) -> str:
        if self.ok:
            return "success"
        return f"failure({type(self.cause).__name__}: {self.cause})"
