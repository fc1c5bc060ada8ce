"""Logging helpers shared by every depsync module.

Modules log through ``logging.getLogger(__name__)`` and attach structured
fields with :func:`extra_context`, so handlers that understand the
``context`` attribute can render them while plain handlers stay readable.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from constants import Constants


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Level name (e.g. "DEBUG") or numeric level.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            numeric = logging.INFO
    else:
        numeric = level

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric)


def extra_context(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """Build an ``extra=`` payload, dropping fields whose value is None."""
    return {"context": {k: v for k, v in fields.items() if v is not None}}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True if DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start: float = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
