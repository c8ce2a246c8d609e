"""
Dead-letter management for the outbox.

Records land in DEAD_LETTER when their retries are exhausted or when the
broker rejected them outright. The processor never picks them up again;
an operator inspects them with ``list_dead_letters`` and, once the cause
is fixed, requeues them with ``retry``.

Example:
    >>> manager = DeadLetterManager(repository)
    >>> for record in await manager.list_dead_letters():
    ...     print(record.event_type, record.error_message)
    >>> await manager.retry(record.id)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from gamification_outbox.exceptions import InvalidRecordStateError, RecordNotFoundError
from gamification_outbox.models import OutboxRecord, OutboxStatus
from gamification_outbox.observability import (
    ATTR_OUTBOX_ID,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from gamification_outbox.repositories.outbox import OutboxRepository

logger = logging.getLogger(__name__)


class DeadLetterManager:
    """
    Inspection and manual requeue of dead-lettered outbox records.

    Requeueing is a conditional update from DEAD_LETTER to PENDING that
    resets the attempt count and clears the error, so the record gets a
    fresh set of attempts on the next fast cycle.
    """

    def __init__(
        self,
        repository: OutboxRepository,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """
        Initialize the manager.

        Args:
            repository: Outbox record store
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing
            clock: Source of the current UTC time
        """
        self._repository = repository
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._clock = clock

    async def list_dead_letters(self, limit: int = 100) -> list[OutboxRecord]:
        """List dead-lettered records, oldest first."""
        return await self._repository.list_by_status(OutboxStatus.DEAD_LETTER, limit)

    async def count(self) -> int:
        stats = await self._repository.get_statistics()
        return stats.dead_letter

    async def retry(self, outbox_id: UUID) -> OutboxRecord:
        """
        Requeue a dead-lettered record.

        Args:
            outbox_id: Record to requeue

        Returns:
            The record after the reset (PENDING, zero attempts, no error)

        Raises:
            RecordNotFoundError: If the record does not exist
            InvalidRecordStateError: If the record is not in DEAD_LETTER;
                it is left untouched
        """
        with self._tracer.span(
            "gamification_outbox.dlq.retry",
            {ATTR_OUTBOX_ID: str(outbox_id)},
        ):
            reset = await self._repository.reset_dead_letter(outbox_id, self._clock())
            record = await self._repository.get_record(outbox_id)
            if record is None:
                raise RecordNotFoundError(outbox_id)
            if not reset:
                raise InvalidRecordStateError(
                    outbox_id, record.status.value, OutboxStatus.DEAD_LETTER.value
                )

        logger.info(
            "Requeued dead-lettered outbox record %s",
            outbox_id,
            extra={
                "outbox_id": str(outbox_id),
                "event_id": record.event_id,
                "event_type": record.event_type,
            },
        )
        return record

    async def retry_all(self, limit: int = 100) -> int:
        """
        Requeue up to ``limit`` dead-lettered records.

        Records that leave DEAD_LETTER concurrently are skipped.

        Returns:
            Number of records requeued
        """
        with self._tracer.span("gamification_outbox.dlq.retry_all") as span:
            requeued = 0
            for record in await self.list_dead_letters(limit):
                if await self._repository.reset_dead_letter(record.id, self._clock()):
                    requeued += 1
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, requeued)

        if requeued:
            logger.info(
                "Requeued %d dead-lettered outbox records",
                requeued,
                extra={"requeued": requeued},
            )
        return requeued


__all__ = ["DeadLetterManager"]
