"""Exceptions raised by depsync.

Expected failures (a missing npm package, no network) are not exceptions;
they travel as :class:`common.outcome.Outcome` values. Only structural
problems that callers are not expected to recover from are raised.
"""


class DepsyncError(Exception):
    """Base class for depsync errors."""


class CorruptedDependencyRoot(DepsyncError):
    """A dependency root exists but does not have the expected shape."""

    def __init__(self, root: str, reason: str):
        super().__init__(f"Corrupted dependency root -- {reason}: {root}")
        self.root = root
        self.reason = reason
