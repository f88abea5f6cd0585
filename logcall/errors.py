"""errors.py - Definition-time diagnostics raised by logcall.

Both error kinds derive from ``SyntaxError`` so that Python reports them the
same way it reports a broken ``def``: with the file name, the line number and
a caret under the offending token. They are raised while a decorated function
is being defined (or while a module's source is being rewritten) and are never
caught inside the package.

    ConfigurationError    The decorator's argument list is malformed: unknown
                          key, unknown severity, duplicate key, non-literal
                          value.
    UnsupportedItemError  The decorator was attached to something that is not
                          an ordinary function definition.
"""

from typing import Optional


class LogCallError(SyntaxError):
    """Base class for every diagnostic raised while instrumenting a function.

    Args:
        msg: Human-readable description of the problem.
        filename: Source file of the offending token, if known.
        lineno: 1-based line number of the offending token, if known.
        offset: 1-based column of the offending token, if known.
        text: The source line, used by tracebacks to draw the caret.
    """

    def __init__(
        self,
        msg: str,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
        offset: Optional[int] = None,
        text: Optional[str] = None,
    ) -> None:
        super().__init__(msg, (filename, lineno, offset, text))


class ConfigurationError(LogCallError):
    """The decorator's arguments cannot be turned into a Directive."""


class UnsupportedItemError(LogCallError):
    """The decorator was applied to something other than a function definition."""
