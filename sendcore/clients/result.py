from __future__ import annotations
from dataclasses import dataclass
from typing import Generic, TypeVar, Any, Callable

T = TypeVar('T')

@dataclass
class Result(Generic[T]):
    ok: bool
    value: T | None = None
    error: str | None = None
    status_code: int | None = None
    detail: str | None = None

    def map(self, fn: Callable[[T], Any]) -> 'Result[Any]':
        if not self.ok or self.value is None:
            return self
        return success(fn(self.value))

    def unwrap(self) -> T:
        if not self.ok or self.value is None:
            raise ValueError(f"unwrap() on failed result: {self.error}")
        return self.value

def success(val: T, *, status_code: int | None = 200) -> Result[T]:
    return Result(ok=True, value=val, status_code=status_code)

def failure(error: str, *, detail: str | None = None, status_code: int | None = None) -> Result[Any]:
    return Result(ok=False, error=error, detail=detail, status_code=status_code)

__all__ = ['Result', 'success', 'failure']
