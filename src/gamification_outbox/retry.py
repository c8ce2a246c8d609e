"""
Retry and backoff policy for failed publishes.

Retry state lives only on the persisted outbox record; this module is pure
decision logic. Given the attempt count after a failure, the error that
caused it and the current time, the policy decides whether the record goes
back to FAILED with a ``next_retry_at`` or is escalated to DEAD_LETTER.

Backoff grows exponentially from the first failure: with the defaults
(base 5, unit one minute) the delays are 1, 5 and 25 minutes.

Example:
    >>> policy = ExponentialBackoffPolicy()
    >>> policy.delay(2)
    datetime.timedelta(seconds=300)
    >>> decision = policy.decide(attempt_count=3, max_attempts=3,
    ...                          error=TimeoutError(), now=now)
    >>> decision.status
    <OutboxStatus.DEAD_LETTER: 'DEAD_LETTER'>
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol, runtime_checkable

from gamification_outbox.exceptions import (
    EventValidationError,
    SerializationError,
    TransientPublishError,
)
from gamification_outbox.models import OutboxStatus

logger = logging.getLogger(__name__)


# Failures that will fail the same way on every attempt
NON_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    SerializationError,
    EventValidationError,
    TypeError,
    ValueError,
)

# Common transient exceptions; anything unclassified is treated the same way
TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    TransientPublishError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
)


class ErrorClass(Enum):
    """Whether a publish failure is worth another attempt."""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


def classify_error(error: BaseException) -> ErrorClass:
    """
    Classify a publish failure by exception type.

    Unknown exception types are classified as retryable so they get bounded
    backoff instead of being dead-lettered on the first occurrence.

    Args:
        error: The exception raised by the broker adapter

    Returns:
        ErrorClass for the error
    """
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return ErrorClass.RETRYABLE
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return ErrorClass.NON_RETRYABLE
    return ErrorClass.RETRYABLE


@dataclass(frozen=True)
class RetryDecision:
    """
    Outcome of a failed publish attempt.

    Attributes:
        status: FAILED or DEAD_LETTER
        next_retry_at: When the record may be claimed again (FAILED only)
        error_class: Classification of the error that caused the failure
    """

    status: OutboxStatus
    next_retry_at: datetime | None
    error_class: ErrorClass

    @property
    def dead_lettered(self) -> bool:
        return self.status == OutboxStatus.DEAD_LETTER


@runtime_checkable
class RetryPolicy(Protocol):
    """Protocol for deciding what happens to a record after a failed publish."""

    def delay(self, attempt_count: int) -> timedelta:
        """Delay before the next attempt, given the attempts made so far."""
        ...

    def decide(
        self,
        attempt_count: int,
        max_attempts: int,
        error: BaseException,
        now: datetime,
    ) -> RetryDecision:
        """Decide the record's next status after its ``attempt_count``-th failure."""
        ...


class ExponentialBackoffPolicy:
    """
    Exponential backoff: ``unit * base ** (attempt_count - 1)``.

    Args:
        base: Exponential base (default 5)
        unit: Delay after the first failure (default one minute)
        max_delay: Optional cap on a single delay
    """

    def __init__(
        self,
        base: int = 5,
        unit: timedelta = timedelta(minutes=1),
        max_delay: timedelta | None = None,
    ) -> None:
        if base < 1:
            raise ValueError(f"base must be >= 1, got {base}")
        if unit <= timedelta(0):
            raise ValueError(f"unit must be positive, got {unit}")
        if max_delay is not None and max_delay < unit:
            raise ValueError(f"max_delay ({max_delay}) must be >= unit ({unit})")
        self._base = base
        self._unit = unit
        self._max_delay = max_delay

    @property
    def base(self) -> int:
        return self._base

    @property
    def unit(self) -> timedelta:
        return self._unit

    def delay(self, attempt_count: int) -> timedelta:
        if attempt_count < 1:
            raise ValueError(f"attempt_count must be >= 1, got {attempt_count}")
        delay = self._unit * (self._base ** (attempt_count - 1))
        if self._max_delay is not None:
            delay = min(delay, self._max_delay)
        return delay

    def next_retry_at(self, attempt_count: int, now: datetime) -> datetime:
        """Earliest time the record may be claimed again; always after ``now``."""
        return now + self.delay(attempt_count)

    @staticmethod
    def is_exhausted(attempt_count: int, max_attempts: int) -> bool:
        return attempt_count >= max_attempts

    def decide(
        self,
        attempt_count: int,
        max_attempts: int,
        error: BaseException,
        now: datetime,
    ) -> RetryDecision:
        error_class = classify_error(error)
        if error_class == ErrorClass.NON_RETRYABLE:
            logger.debug(
                "Non-retryable error %s, dead-lettering",
                type(error).__name__,
            )
            return RetryDecision(OutboxStatus.DEAD_LETTER, None, error_class)
        if self.is_exhausted(attempt_count, max_attempts):
            return RetryDecision(OutboxStatus.DEAD_LETTER, None, error_class)
        return RetryDecision(
            OutboxStatus.FAILED,
            self.next_retry_at(attempt_count, now),
            error_class,
        )

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoffPolicy(base={self._base}, unit={self._unit!r}, "
            f"max_delay={self._max_delay!r})"
        )


__all__ = [
    "NON_RETRYABLE_EXCEPTIONS",
    "TRANSIENT_EXCEPTIONS",
    "ErrorClass",
    "classify_error",
    "RetryDecision",
    "RetryPolicy",
    "ExponentialBackoffPolicy",
]
