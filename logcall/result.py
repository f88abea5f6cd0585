"""result.py - A two-variant Result type recognised by logcall.

Any value exposing ``is_ok()``, ``is_err()``, ``.value`` (success payload)
and ``.error`` (failure payload) can be returned from a function annotated
``-> Result[...]``. These classes are the reference implementation::

    @logcall(ok="info", err="error")
    def divide(a: int, b: int) -> Result[int, str]:
        if b == 0:
            return Err("Division by zero")
        return Ok(a // b)

    divide(4, 2)   # INFO  app.divide(a = 4, b = 2) => Ok(2)
    divide(2, 0)   # ERROR app.divide(a = 2, b = 0) => Err('Division by zero')
"""

from dataclasses import dataclass
from typing import Callable, Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")
F = TypeVar("F")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """The success variant, holding ``value``."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> "Ok[U]":
        return Ok(f(self.value))

    def map_err(self, f: Callable[[E], F]) -> "Ok[T]":
        return self

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[E]):
    """The failure variant, holding ``error``."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        """
        Raises:
            RuntimeError: Always, since Err has no success value.
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error!r}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> "Err[E]":
        return self

    def map_err(self, f: Callable[[E], F]) -> "Err[F]":
        return Err(f(self.error))

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[E]]
