"""directive.py - Parse the decorator's argument list into a Directive.

The decorator accepts, in any combination:

    @logcall                         log every call at DEBUG
    @logcall("info")                 bare level: the default severity
    @logcall(ok="info")              log successful Result values only
    @logcall(err="error")            log failed Result values only
    @logcall(input="a = {a!r}, ..")  custom f-string for the input part

Arguments reach the parser from two places. At definition time they are the
Python values handed to ``logcall(...)`` (``arguments_from_call``). In a
build-time rewrite they are the literal nodes of the decorator expression
(``arguments_from_decorator``). Both are normalised to ``DirectiveArgument``
so that the validation rules live in a single function, ``parse_directive``.
"""

import ast
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

DEFAULT_LEVEL = logging.DEBUG

KEYS = ("ok", "err", "input")


@dataclass(frozen=True)
class Directive:
    """Validated configuration of one ``@logcall`` occurrence.

    Attributes:
        default_level: Severity used when the return type is not a recognised
            result type, or when neither ``ok_level`` nor ``err_level`` is set.
        ok_level: Severity for the success variant of a result. ``None``
            means successes are not logged.
        err_level: Severity for the failure variant of a result. ``None``
            means failures are not logged.
        input_format: f-string template for the input part of the message,
            used verbatim. ``None`` selects the synthesized template listing
            every parameter.
    """

    default_level: int = DEFAULT_LEVEL
    ok_level: Optional[int] = None
    err_level: Optional[int] = None
    input_format: Optional[str] = None

    @property
    def logs_result_variants(self) -> bool:
        return self.ok_level is not None or self.err_level is not None


@dataclass(frozen=True)
class DirectiveArgument:
    """One raw argument of the decorator, before validation.

    ``key`` is ``None`` for the bare level. ``position`` is the 1-based index
    in the argument list and is always known. ``lineno``/``col_offset`` are
    only known when the argument comes from parsed source.
    """

    key: Optional[str]
    value: Any
    position: int
    lineno: Optional[int] = None
    col_offset: Optional[int] = None


def _error(msg: str, arg: Optional[DirectiveArgument], filename: Optional[str]) -> ConfigurationError:
    if arg is None:
        return ConfigurationError(msg, filename)
    offset = arg.col_offset + 1 if arg.col_offset is not None else None
    return ConfigurationError(msg, filename, arg.lineno, offset)


def parse_level(name: Any) -> int:
    """Map a severity name such as ``"info"`` or ``"WARN"`` to a logging level.

    Raises:
        ConfigurationError: If ``name`` is not a string or not a known level.
    """
    if not isinstance(name, str) or name.lower() not in LEVELS:
        raise ConfigurationError(
            f"unknown log level {name!r}, expected one of {', '.join(LEVELS)}"
        )
    return LEVELS[name.lower()]


def arguments_from_call(
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
    lineno: Optional[int] = None,
) -> List[DirectiveArgument]:
    """Normalise the values passed to ``logcall(...)`` at definition time."""
    arguments = [
        DirectiveArgument(None, value, position, lineno)
        for position, value in enumerate(args, start=1)
    ]
    for position, (key, value) in enumerate(kwargs.items(), start=len(args) + 1):
        arguments.append(DirectiveArgument(key, value, position, lineno))
    return arguments


def arguments_from_decorator(
    node: ast.expr, filename: Optional[str] = None
) -> List[DirectiveArgument]:
    """Extract the literal arguments of a decorator expression.

    A bare ``@logcall`` or ``@pkg.logcall`` has no arguments. For a call,
    every argument must be a string literal. Anything else (a name, a
    starred argument, ``**options``) is rejected here, because a build-time
    rewrite cannot evaluate it.

    Raises:
        ConfigurationError: On a non-literal argument.
    """
    if not isinstance(node, ast.Call):
        return []

    arguments: List[DirectiveArgument] = []
    position = 0
    for arg in node.args:
        position += 1
        entry = DirectiveArgument(None, None, position, arg.lineno, arg.col_offset)
        if isinstance(arg, ast.Starred):
            raise _error(f"unexpected argument {ast.unparse(arg)} at argument {position}", entry, filename)
        if not isinstance(arg, ast.Constant) or not isinstance(arg.value, str):
            raise _error(
                f"expected a string literal level, got {ast.unparse(arg)} at argument {position}",
                entry,
                filename,
            )
        arguments.append(DirectiveArgument(None, arg.value, position, arg.lineno, arg.col_offset))

    for keyword in node.keywords:
        position += 1
        entry = DirectiveArgument(keyword.arg, None, position, keyword.lineno, keyword.col_offset)
        if keyword.arg is None:
            raise _error(f"unexpected argument {ast.unparse(keyword)} at argument {position}", entry, filename)
        value = keyword.value
        if not isinstance(value, ast.Constant) or not isinstance(value.value, str):
            raise _error(
                f"expected a string literal for {keyword.arg!r}, got {ast.unparse(value)} "
                f"at argument {position}",
                entry,
                filename,
            )
        arguments.append(
            DirectiveArgument(keyword.arg, value.value, position, keyword.lineno, keyword.col_offset)
        )
    return arguments


def parse_directive(
    arguments: Iterable[DirectiveArgument], filename: Optional[str] = None
) -> Directive:
    """Validate raw decorator arguments and build a Directive.

    An empty argument list yields ``Directive()``: log every call at DEBUG
    with all parameters in the input part.

    A bare level may be combined with ``ok``/``err``. The bare level then
    applies to functions whose return type is not a recognised result type.

    Args:
        arguments: Arguments from ``arguments_from_call`` or
            ``arguments_from_decorator``.
        filename: Source file used in diagnostics.

    Returns:
        The validated Directive.

    Raises:
        ConfigurationError: Unknown key, second bare level, repeated key,
            unknown severity, or a non-string value. The message names the
            token and its position.

    Example:
        >>> parse_directive(arguments_from_call(("info",), {"err": "error"}))
        Directive(default_level=20, ok_level=None, err_level=40, input_format=None)
    """
    default_level = DEFAULT_LEVEL
    bare_seen = False
    keyed = {}

    for arg in arguments:
        if arg.key is None:
            if bare_seen:
                raise _error(
                    f"level has already been specified, found {arg.value!r} at argument {arg.position}",
                    arg,
                    filename,
                )
            bare_seen = True
            default_level = _level(arg, filename)
            continue

        if arg.key not in KEYS:
            raise _error(f"unexpected argument {arg.key!r} at argument {arg.position}", arg, filename)
        if arg.key in keyed:
            raise _error(f"argument {arg.key!r} given more than once at argument {arg.position}", arg, filename)
        if not isinstance(arg.value, str):
            raise _error(
                f"expected a string for {arg.key!r}, got {type(arg.value).__name__} at argument {arg.position}",
                arg,
                filename,
            )
        keyed[arg.key] = _level(arg, filename) if arg.key in ("ok", "err") else arg.value

    return Directive(
        default_level=default_level,
        ok_level=keyed.get("ok"),
        err_level=keyed.get("err"),
        input_format=keyed.get("input"),
    )


def _level(arg: DirectiveArgument, filename: Optional[str]) -> int:
    try:
        return parse_level(arg.value)
    except ConfigurationError as exc:
        where = f"{arg.key!r}" if arg.key else "level"
        raise _error(f"{exc.msg} for {where} at argument {arg.position}", arg, filename) from None
