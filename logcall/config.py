"""config.py - Options shared by the definition-time and build-time transformers."""

from dataclasses import dataclass
from typing import FrozenSet

# Trailing type names recognised as a two-variant result (``Result[T, E]``).
DEFAULT_RESULT_TYPE_NAMES: FrozenSet[str] = frozenset({"Result"})

# Decorator names the build-time rewriter looks for (``@logcall``, ``@x.logcall``).
DEFAULT_DECORATOR_NAMES: FrozenSet[str] = frozenset({"logcall"})

# f-string conversions: "r" renders values with repr(), "s" with str().
CONVERSIONS = ("r", "s")


@dataclass(frozen=True)
class TransformOptions:
    """Settings that apply to every function a transformer instruments.

    Attributes:
        result_type_names: Names matched against the trailing segment of the
            return annotation. A match selects the ok/err branch of the
            decision table. Matching is purely syntactic: an alias such as
            ``Outcome = Result[int, str]`` is not recognised unless
            ``"Outcome"`` is listed here too.
        decorator_names: Names the build-time rewriter treats as the logcall
            decorator. Unused by the definition-time decorator.
        conversion: ``"r"`` (default) formats parameters and return values
            with ``repr()``. ``"s"`` uses ``str()`` instead.

    Raises:
        ValueError: If ``conversion`` is not one of ``CONVERSIONS`` or a name
            set is empty.

    Example:
        >>> options = TransformOptions(result_type_names=frozenset({"Result", "Outcome"}))
        >>> logcall = Instrumenter(options)
    """

    result_type_names: FrozenSet[str] = DEFAULT_RESULT_TYPE_NAMES
    decorator_names: FrozenSet[str] = DEFAULT_DECORATOR_NAMES
    conversion: str = "r"

    def __post_init__(self) -> None:
        if self.conversion not in CONVERSIONS:
            raise ValueError(
                f"conversion must be one of {CONVERSIONS}, got {self.conversion!r}"
            )
        if not self.result_type_names:
            raise ValueError("result_type_names must not be empty")
        if not self.decorator_names:
            raise ValueError("decorator_names must not be empty")
        # Accept any iterable of names but store frozensets.
        object.__setattr__(self, "result_type_names", frozenset(self.result_type_names))
        object.__setattr__(self, "decorator_names", frozenset(self.decorator_names))


DEFAULT_OPTIONS = TransformOptions()
