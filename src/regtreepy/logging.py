"""Logging helpers for regtreepy.

The package logs through loguru and is disabled by default, as libraries
should be.  ``enable_logging()`` turns it on and adds a stderr sink that only
receives regtreepy records; the returned handle removes that sink again.

Examples:
    >>> with enable_logging(level="DEBUG"):  # doctest: +SKIP
    ...     RegressionTreeLearner().train(rows)
"""

from __future__ import annotations

import contextlib
import sys
import threading
from typing import TYPE_CHECKING, ClassVar, Final, Literal

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)


class LoggingHandle:
    """Owns one loguru sink added by :func:`enable_logging`.

    Disabling the last active handle disables the regtreepy logger again.

    Examples:
        >>> handle = enable_logging(level="DEBUG")  # doctest: +SKIP
        >>> RegressionTreeLearner().train(rows)  # doctest: +SKIP
        >>> handle.disable()  # doctest: +SKIP
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        """Register the handle.

        Args:
            handler_id (int): The loguru handler ID returned by ``logger.add()``.
        """
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove this handle's sink.

        Calling it twice is harmless. Once no handle is active, regtreepy
        records are suppressed again, including for sinks added elsewhere.
        """
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        """Enter the context manager.

        Returns:
            LoggingHandle: This handle.
        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Remove the sink on context exit, whether or not an error was raised."""
        self.disable()

    @classmethod
    def active_count(cls) -> int:
        """Return how many handles still own a sink."""
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(*, level: LogLevel = "INFO", sink=sys.stderr) -> LoggingHandle:
    """Enable regtreepy log output.

    Args:
        level (LogLevel): Minimum level to emit. Use "DEBUG" to see one line
            per training call.
        sink: Any loguru sink; defaults to ``sys.stderr``.

    Returns:
        LoggingHandle: Handle whose ``disable()`` (or context exit) removes
            the sink.
    """
    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(sink, level=level, filter=_is_package_record, format=_FORMAT)
    return LoggingHandle(handler_id)


def _is_package_record(record: Record) -> bool:
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
