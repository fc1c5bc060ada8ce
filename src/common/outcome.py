"""Result type for steps that may fail in an expected, recoverable way."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeKind(Enum):
    """Whether a step succeeded or failed recoverably."""

    OK = "ok"
    RECOVERABLE = "recoverable"


@dataclass(frozen=True)
class Outcome:
    """Outcome of an install, probe, or rebuild step.

    A ``RECOVERABLE`` outcome carries a user-facing message; callers abandon
    the current operation and report "no change" instead of raising.
    """

    kind: OutcomeKind
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(OutcomeKind.OK)

    @classmethod
    def recoverable(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.RECOVERABLE, message)

    @property
    def is_ok(self) -> bool:
        return self.kind is OutcomeKind.OK
