from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Result(Generic[T]):
    """Outcome of a service operation.

    Services return a Result instead of raising, and each caller checks
    ``ok`` before moving on to the next step. ``status_code`` is the HTTP
    status a router should answer with when the operation failed.
    """

    value: T | None = None
    error: str | None = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, status_code: int = 400) -> Result[T]:
        return cls(error=error, status_code=status_code)

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(self.error)
        return self.value  # type: ignore[return-value]
