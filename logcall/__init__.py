"""logcall/__init__.py - Public API for the logcall package.

logcall adds call-level logging to a function with one decorator. The
function's body is rewritten once, when the ``def`` executes. No wrapper
frame is added, the signature is untouched, and each call produces exactly
one log record describing its inputs and its outcome.

Quick start:
    import logging
    from logcall import logcall, Ok, Err, Result

    logging.basicConfig(level=logging.DEBUG)

    # 1. Log every call at DEBUG
    @logcall
    def add(a: int, b: int) -> int:
        return a + b

    add(2, 3)        # DEBUG app.add(a = 2, b = 3) => 5

    # 2. Log Result outcomes at different levels
    @logcall(ok="info", err="error")
    def divide(a: int, b: int) -> Result[int, str]:
        if b == 0:
            return Err("Division by zero")
        return Ok(a // b)

    divide(2, 0)     # ERROR app.divide(a = 2, b = 0) => Err('Division by zero')

    # 3. Choose what the input part shows
    @logcall("info", input="a = {a!r}, ..")
    def subtract(a: int, b: int) -> int:
        return a - b

    subtract(3, 2)   # INFO app.subtract(a = 3, ..) => 1

    # 4. Instrument source ahead of time instead
    from logcall import transform_source
    instrumented = transform_source(source, module="app")

Exported names:
    logcall:            The decorator (an Instrumenter with default options).
    Instrumenter:       Decorator factory with custom TransformOptions.
    transform_source:   Build-time source-to-source rewrite.
    Ok, Err, Result:    The recognised two-variant result type.
    LogBackend, LoggingBackend, RecordingBackend:
                        Destinations for call records.
    get_backend, set_backend, use_backend:
                        Backend selection.
"""

from .backend import (
    LogBackend,
    LoggingBackend,
    RecordingBackend,
    get_backend,
    set_backend,
    use_backend,
)
from .config import TransformOptions
from .directive import TRACE, Directive, parse_directive
from .errors import ConfigurationError, LogCallError, UnsupportedItemError
from .instrument import Instrumenter, logcall
from .result import Err, Ok, Result
from .rewrite import SourceRewriter, transform_source
from .signature import FunctionShape, ReturnKind, analyze
from .synthesize import synthesize

__all__ = [
    "logcall",
    "Instrumenter",
    "TransformOptions",
    "transform_source",
    "SourceRewriter",
    "Directive",
    "parse_directive",
    "FunctionShape",
    "ReturnKind",
    "analyze",
    "synthesize",
    "LogCallError",
    "ConfigurationError",
    "UnsupportedItemError",
    "Ok",
    "Err",
    "Result",
    "TRACE",
    "LogBackend",
    "LoggingBackend",
    "RecordingBackend",
    "get_backend",
    "set_backend",
    "use_backend",
]
__version__ = "0.1.0"
