"""
Outbox record model.

An outbox record is the durable unit of delivery: one serialized event,
its routing decision, and the retry bookkeeping that drives it through
the status lifecycle::

    PENDING -> PROCESSING -> PUBLISHED
                          -> FAILED -> PROCESSING -> ...
                          -> DEAD_LETTER -> (manual reset) -> PENDING
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

DEFAULT_MAX_ATTEMPTS = 3
MAX_ERROR_MESSAGE_LENGTH = 1000


class OutboxStatus(str, Enum):
    """Lifecycle status of an outbox record."""

    PENDING = "PENDING"
    """Written by the business transaction, not yet picked up."""

    PROCESSING = "PROCESSING"
    """Claimed by a processor; a publish attempt is in flight."""

    PUBLISHED = "PUBLISHED"
    """Acknowledged by the broker. Terminal."""

    FAILED = "FAILED"
    """Last attempt failed; eligible again once next_retry_at passes."""

    DEAD_LETTER = "DEAD_LETTER"
    """Retries exhausted or failure was non-retryable. Needs an operator."""

    @property
    def is_terminal(self) -> bool:
        return self in (OutboxStatus.PUBLISHED, OutboxStatus.DEAD_LETTER)


def truncate_error(message: str | None) -> str | None:
    """Clip an error message to the persisted column width."""
    if message is None:
        return None
    return message[:MAX_ERROR_MESSAGE_LENGTH]


@dataclass
class OutboxRecord:
    """
    A single event awaiting (or done with) broker delivery.

    Attributes:
        id: Store-assigned identifier
        event_id: Identifier of the originating event (consumer dedup key)
        event_type: Event type discriminator
        topic: Destination topic, fixed at creation
        message_key: Partition key, fixed at creation
        payload: Serialized event body (JSON text)
        status: Current lifecycle status
        attempt_count: Publish attempts so far
        max_attempts: Attempts allowed before dead-lettering
        error_message: Last failure reason
        user_id: Subject of the event, if any
        created_at: When the record was written
        updated_at: When the record last changed
        published_at: When the broker acknowledged the record
        next_retry_at: Earliest time a FAILED record may be claimed again
    """

    event_id: str
    event_type: str
    topic: str
    message_key: str
    payload: str
    id: UUID = field(default_factory=uuid4)
    status: OutboxStatus = OutboxStatus.PENDING
    attempt_count: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    error_message: str | None = None
    user_id: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    published_at: datetime | None = None
    next_retry_at: datetime | None = None

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)

    def can_retry(self, now: datetime) -> bool:
        """True if the retry cycle may claim this record at ``now``."""
        return (
            self.status == OutboxStatus.FAILED
            and self.attempt_count < self.max_attempts
            and (self.next_retry_at is None or self.next_retry_at <= now)
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary for monitoring endpoints."""
        return {
            "id": str(self.id),
            "event_id": self.event_id,
            "event_type": self.event_type,
            "topic": self.topic,
            "message_key": self.message_key,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "error_message": self.error_message,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "next_retry_at": self.next_retry_at.isoformat() if self.next_retry_at else None,
        }


@dataclass(frozen=True)
class OutboxStatistics:
    """
    Point-in-time counts of outbox records per status.

    Attributes:
        pending: Records waiting for their first claim
        processing: Records currently claimed
        published: Records acknowledged by the broker
        failed: Records waiting for a retry
        dead_letter: Records that need manual intervention
        oldest_pending: Creation time of the oldest PENDING record
    """

    pending: int = 0
    processing: int = 0
    published: int = 0
    failed: int = 0
    dead_letter: int = 0
    oldest_pending: datetime | None = None

    @classmethod
    def from_counts(
        cls,
        counts: dict[OutboxStatus, int],
        oldest_pending: datetime | None = None,
    ) -> OutboxStatistics:
        return cls(
            pending=counts.get(OutboxStatus.PENDING, 0),
            processing=counts.get(OutboxStatus.PROCESSING, 0),
            published=counts.get(OutboxStatus.PUBLISHED, 0),
            failed=counts.get(OutboxStatus.FAILED, 0),
            dead_letter=counts.get(OutboxStatus.DEAD_LETTER, 0),
            oldest_pending=oldest_pending,
        )

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.published + self.failed + self.dead_letter

    @property
    def success_rate(self) -> float:
        """Percentage of records published, 0.0 for an empty outbox."""
        return self._percent(self.published)

    @property
    def failure_rate(self) -> float:
        """Percentage of records that are FAILED or DEAD_LETTER."""
        return self._percent(self.failed + self.dead_letter)

    @property
    def dead_letter_rate(self) -> float:
        return self._percent(self.dead_letter)

    def _percent(self, count: int) -> float:
        total = self.total
        if total == 0:
            return 0.0
        return min(max(count / total * 100.0, 0.0), 100.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "published": self.published,
            "failed": self.failed,
            "dead_letter": self.dead_letter,
            "total": self.total,
            "success_rate": self.success_rate,
            "oldest_pending": self.oldest_pending.isoformat() if self.oldest_pending else None,
        }


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "MAX_ERROR_MESSAGE_LENGTH",
    "OutboxStatus",
    "OutboxRecord",
    "OutboxStatistics",
    "truncate_error",
]
