"""Tagged results for fallible collaborator calls."""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or an error description, never both."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return True when the call succeeded."""
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        """Wrap a successful value."""
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Outcome[T]":
        """Wrap an error description."""
        return cls(error=error or "unknown error")
