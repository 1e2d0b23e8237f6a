"""Bounded retry primitives shared by the page and item loops.

Both loops are written as explicit ``for attempt in range(1, max + 1)`` loops
whose body returns an :class:`Attempt`; the loop decides from its
:class:`AttemptOutcome` whether to stop, give up or go round again.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

JITTER_RANGE: Tuple[float, float] = (1.0, 3.0)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class Attempt(Generic[T]):
    outcome: AttemptOutcome
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Attempt[T]":
        return cls(AttemptOutcome.SUCCESS, value=value)

    @classmethod
    def retry(cls, error: BaseException) -> "Attempt[T]":
        return cls(AttemptOutcome.RETRY, error=error)

    @classmethod
    def fatal(cls, error: BaseException) -> "Attempt[T]":
        return cls(AttemptOutcome.FATAL, error=error)


def backoff_delay(
    attempt: int,
    base: float,
    jitter: Tuple[float, float] = JITTER_RANGE,
    rng: Optional[random.Random] = None,
) -> float:
    """Seconds to wait after failed *attempt*: ``base ** attempt`` plus jitter."""
    source = rng or random
    return base ** attempt + source.uniform(*jitter)
