"""backend.py - Pluggable sink for the records produced by instrumented functions.

Generated code never talks to ``logging`` directly. It calls ``emit(level,
origin, message)``, which hands the record to the active LogBackend:

    LoggingBackend    The default. Forwards to ``logging.getLogger(origin)``,
                      so records obey the application's normal logging
                      configuration.
    RecordingBackend  Keeps records in a bounded in-memory deque. Meant for
                      tests and for inspecting what a code path would log.

Selecting the backend:

    set_backend(b)      Replace the process-wide backend.
    use_backend(b)      Context manager that overrides the backend for the
                        current thread or asyncio Task only, restoring the
                        previous one on exit.

Typical test usage::

    from logcall import RecordingBackend, use_backend

    with use_backend(RecordingBackend()) as backend:
        add(2, 3)
    assert backend.messages() == ["tests.test_math.add(a = 2, b = 3) => 5"]
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, List, Optional


class LogBackend(ABC):
    """Abstract base class for every destination of call records.

    Example:
        >>> class PrintBackend(LogBackend):
        ...     def emit(self, level: int, origin: str, message: str) -> None:
        ...         print(logging.getLevelName(level), origin, message)
    """

    @abstractmethod
    def emit(self, level: int, origin: str, message: str) -> None:
        """Deliver one call record.

        Called from inside the instrumented function, after the body has
        produced its value and before that value is returned. Must not block
        or suspend.

        Args:
            level: A ``logging`` level integer, e.g. ``logging.INFO``.
            origin: Module path of the instrumented function.
            message: The formatted record, e.g. ``"app.add(a = 2, b = 3) => 5"``.
        """


class LoggingBackend(LogBackend):
    """Forward records to the standard ``logging`` module.

    The logger is ``logging.getLogger(origin)``, i.e. named after the module
    that defines the instrumented function. Loggers are cached per origin so
    that the hot path is a dict lookup plus ``Logger.log``.
    """

    def __init__(self) -> None:
        self._loggers: Dict[str, logging.Logger] = {}

    def emit(self, level: int, origin: str, message: str) -> None:
        logger = self._loggers.get(origin)
        if logger is None:
            logger = self._loggers[origin] = logging.getLogger(origin)
        logger.log(level, message)


class CallRecord:
    """One record captured by RecordingBackend.

    Attributes:
        level (int): The ``logging`` level the record was emitted at.
        origin (str): Module path of the instrumented function.
        message (str): The formatted record.
        timestamp (float): ``time.monotonic()`` at the time of capture.
    """

    __slots__ = ("level", "origin", "message", "timestamp")

    def __init__(self, level: int, origin: str, message: str, timestamp: float) -> None:
        self.level = level
        self.origin = origin
        self.message = message
        self.timestamp = timestamp

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)

    def __repr__(self) -> str:  # pragma: no cover
        return f"CallRecord({self.level_name}, {self.origin!r}, {self.message!r})"


class RecordingBackend(LogBackend):
    """Fixed-capacity in-memory backend.

    When full, the oldest record is dropped on the next ``emit``. Each
    instance is independent, so tests typically create one per test and
    activate it with ``use_backend``.

    Example:
        >>> backend = RecordingBackend(capacity=2)
        >>> backend.emit(logging.INFO, "app", "a")
        >>> backend.emit(logging.INFO, "app", "b")
        >>> backend.emit(logging.INFO, "app", "c")
        >>> backend.messages()
        ['b', 'c']
    """

    def __init__(self, capacity: int = 200) -> None:
        """Initialise the backend.

        Args:
            capacity: Maximum number of records kept. Defaults to 200.

        Raises:
            ValueError: If ``capacity`` is less than 1.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._records: deque[CallRecord] = deque(maxlen=capacity)

    def emit(self, level: int, origin: str, message: str) -> None:
        self._records.append(CallRecord(level, origin, message, time.monotonic()))

    def records(self) -> List[CallRecord]:
        """Return the captured records, oldest first, without clearing them."""
        return list(self._records)

    def messages(self) -> List[str]:
        """Return only the message strings of the captured records."""
        return [record.message for record in self._records]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# Backend selection.
#
# The process-wide default is a plain module global. The per-context
# override lives in a ContextVar, scoped to one thread or asyncio Task.
# ---------------------------------------------------------------------------
_default_backend: LogBackend = LoggingBackend()
_override_var: ContextVar[Optional[LogBackend]] = ContextVar("logcall_backend", default=None)


def get_backend() -> LogBackend:
    """Return the backend active in the current context."""
    backend = _override_var.get()
    # RecordingBackend defines __len__, so test against None, not truthiness
    return _default_backend if backend is None else backend


def set_backend(backend: LogBackend) -> LogBackend:
    """Install ``backend`` as the process-wide default and return the previous one."""
    global _default_backend
    if not isinstance(backend, LogBackend):
        raise TypeError(f"expected a LogBackend, got {type(backend).__name__}")
    previous, _default_backend = _default_backend, backend
    return previous


@contextmanager
def use_backend(backend: LogBackend) -> Iterator[LogBackend]:
    """Route records to ``backend`` for the duration of the ``with`` block.

    The override applies to the current thread or asyncio Task. Threads
    started inside the block keep using the process-wide backend.
    """
    if not isinstance(backend, LogBackend):
        raise TypeError(f"expected a LogBackend, got {type(backend).__name__}")
    token = _override_var.set(backend)
    try:
        yield backend
    finally:
        _override_var.reset(token)


def emit(level: int, origin: str, message: str) -> None:
    """Deliver one record to the active backend. Called by generated code."""
    get_backend().emit(level, origin, message)
