"""
Outbox processor: delivers stored records to the broker.

Four independent background loops, each sleeping a fixed delay after it
finishes a run:

- pending (fast, default 5 s): PENDING records plus abandoned PROCESSING ones
- retry (slow, default 120 s): FAILED records whose ``next_retry_at`` has passed
- retention (default daily): purges old PUBLISHED records
- statistics (default 10 min): logs outbox counts, warns on dead letters

Per record the processor claims the record with a single conditional
update, publishes it under a timeout, then records the outcome with a
second conditional update. Losing a claim is normal when several
processors run and only results in a debug log line.

Example:
    >>> processor = OutboxProcessor(
    ...     repository=PostgreSQLOutboxRepository(engine),
    ...     publisher=kafka_publisher,
    ...     config=OutboxConfig(batch_size=100),
    ... )
    >>> async with processor:
    ...     await shutdown_event.wait()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from types import TracebackType
from typing import Any

from gamification_outbox.bus.interface import BrokerPublisher
from gamification_outbox.config import OutboxConfig
from gamification_outbox.exceptions import ClaimLostError
from gamification_outbox.models import OutboxRecord, OutboxStatistics
from gamification_outbox.observability import (
    ATTR_ATTEMPT_COUNT,
    ATTR_BATCH_SIZE,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_OUTBOX_ID,
    ATTR_OUTBOX_STATUS,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from gamification_outbox.repositories.outbox import OutboxRepository, claim_or_raise
from gamification_outbox.retention import RetentionSweeper
from gamification_outbox.retry import ExponentialBackoffPolicy, RetryPolicy

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecordOutcome(Enum):
    """What happened to a single record during a cycle."""

    PUBLISHED = "published"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class CycleResult:
    """
    Counts for one processing cycle.

    Attributes:
        selected: Records returned by the selection query
        claimed: Records this processor claimed
        published: Records acknowledged by the broker
        failed: Records moved to FAILED for a later retry
        dead_lettered: Records moved to DEAD_LETTER
        skipped: Records lost to another worker
        errors: Records abandoned because of a store error
    """

    selected: int = 0
    claimed: int = 0
    published: int = 0
    failed: int = 0
    dead_lettered: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: RecordOutcome) -> None:
        if outcome == RecordOutcome.SKIPPED:
            self.skipped += 1
            return
        if outcome == RecordOutcome.ERROR:
            self.errors += 1
            return
        self.claimed += 1
        if outcome == RecordOutcome.PUBLISHED:
            self.published += 1
        elif outcome == RecordOutcome.FAILED:
            self.failed += 1
        else:
            self.dead_lettered += 1

    @property
    def is_empty(self) -> bool:
        return self.selected == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected,
            "claimed": self.claimed,
            "published": self.published,
            "failed": self.failed,
            "dead_lettered": self.dead_lettered,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class OutboxProcessor:
    """
    Background publisher and retry engine for the outbox.

    Cycles may overlap with each other, with writers and with other
    processor instances; all coordination goes through the store's atomic
    claim. Retry state lives only on the records, so a restarted processor
    resumes where the previous one stopped.
    """

    def __init__(
        self,
        repository: OutboxRepository,
        publisher: BrokerPublisher,
        config: OutboxConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the processor.

        Args:
            repository: Outbox record store
            publisher: Broker adapter
            config: Pipeline configuration (defaults if None)
            retry_policy: Failure policy; exponential backoff from ``config``
                if None
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing
            clock: Source of the current UTC time
        """
        self._repository = repository
        self._publisher = publisher
        self._config = config or OutboxConfig()
        self._retry_policy = retry_policy or ExponentialBackoffPolicy(
            base=self._config.backoff_base,
            unit=self._config.backoff_unit,
        )
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._clock = clock
        self._sweeper = RetentionSweeper(
            repository,
            retention=self._config.retention,
            tracer=self._tracer,
            clock=clock,
        )
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def config(self) -> OutboxConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    # =========================================================================
    # Cycles
    # =========================================================================

    async def process_pending(self) -> CycleResult:
        """
        Run one fast cycle over PENDING and abandoned PROCESSING records.

        Returns:
            Counts for the cycle
        """
        now = self._clock()
        stale_before = now - self._config.processing_stale_after
        with self._tracer.span(
            "gamification_outbox.processor.process_pending",
            {ATTR_BATCH_SIZE: self._config.batch_size},
        ) as span:
            records = await self._repository.list_claimable(self._config.batch_size, stale_before)
            result = await self._process_batch(records)
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, result.claimed)
        self._log_cycle("pending", result)
        return result

    async def process_retryable(self) -> CycleResult:
        """
        Run one slow cycle over FAILED records that are due for a retry.

        Returns:
            Counts for the cycle
        """
        now = self._clock()
        with self._tracer.span(
            "gamification_outbox.processor.process_retryable",
            {ATTR_BATCH_SIZE: self._config.batch_size},
        ) as span:
            records = await self._repository.list_retryable(now, self._config.batch_size)
            result = await self._process_batch(records)
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, result.claimed)
        self._log_cycle("retry", result)
        return result

    async def purge_published(self) -> int:
        """Run one retention sweep with the configured window."""
        return await self._sweeper.purge_old_published(self._config.retention)

    async def log_statistics(self) -> OutboxStatistics:
        """
        Log current outbox counts.

        Warns when the number of dead letters exceeds
        ``config.dead_letter_alert_threshold``.
        """
        stats = await self._repository.get_statistics()
        logger.info(
            "Outbox statistics: pending=%d processing=%d published=%d failed=%d "
            "dead_letter=%d success_rate=%.2f%%",
            stats.pending,
            stats.processing,
            stats.published,
            stats.failed,
            stats.dead_letter,
            stats.success_rate,
            extra=stats.to_dict(),
        )
        if stats.dead_letter > self._config.dead_letter_alert_threshold:
            logger.warning(
                "High number of dead letter events: %d",
                stats.dead_letter,
                extra={"dead_letter": stats.dead_letter},
            )
        return stats

    async def _process_batch(self, records: list[OutboxRecord]) -> CycleResult:
        result = CycleResult(selected=len(records))
        for record in records:
            try:
                outcome = await self._process_record(record)
            except Exception:
                logger.exception(
                    "Error processing outbox record %s",
                    record.id,
                    extra={"outbox_id": str(record.id), "event_id": record.event_id},
                )
                outcome = RecordOutcome.ERROR
            result.record(outcome)
        return result

    # =========================================================================
    # Per-record state machine
    # =========================================================================

    async def _process_record(self, record: OutboxRecord) -> RecordOutcome:
        now = self._clock()
        try:
            await claim_or_raise(
                self._repository,
                record,
                now,
                now - self._config.processing_stale_after,
            )
        except ClaimLostError:
            logger.debug(
                "Outbox record %s claimed by another worker, skipping",
                record.id,
                extra={"outbox_id": str(record.id)},
            )
            return RecordOutcome.SKIPPED

        with self._tracer.span(
            "gamification_outbox.processor.publish",
            {
                ATTR_OUTBOX_ID: str(record.id),
                ATTR_EVENT_ID: record.event_id,
                ATTR_EVENT_TYPE: record.event_type,
                ATTR_MESSAGING_DESTINATION: record.topic,
                ATTR_ATTEMPT_COUNT: record.attempt_count,
            },
        ) as span:
            try:
                await asyncio.wait_for(
                    self._publisher.publish(record.topic, record.message_key, record.payload),
                    timeout=self._config.publish_timeout,
                )
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                outcome = await self._handle_failure(record, now, e)
            else:
                outcome = await self._handle_success(record, now)
            if span:
                span.set_attribute(ATTR_OUTBOX_STATUS, outcome.value)
            return outcome

    async def _handle_success(self, record: OutboxRecord, claimed_at: datetime) -> RecordOutcome:
        applied = await self._repository.mark_published(
            record.id, record.attempt_count, claimed_at, self._clock()
        )
        if not applied:
            # Delivered, but a stale reclaim took the record over meanwhile
            logger.warning(
                "Outbox record %s published but no longer owned by this worker",
                record.id,
                extra={"outbox_id": str(record.id), "event_id": record.event_id},
            )
        else:
            logger.debug(
                "Published outbox record %s to %s",
                record.id,
                record.topic,
                extra={
                    "outbox_id": str(record.id),
                    "event_id": record.event_id,
                    "topic": record.topic,
                },
            )
        return RecordOutcome.PUBLISHED

    async def _handle_failure(
        self, record: OutboxRecord, claimed_at: datetime, error: Exception
    ) -> RecordOutcome:
        now = self._clock()
        attempts = record.attempt_count + 1
        if isinstance(error, TimeoutError):
            message = f"Publish timed out after {self._config.publish_timeout}s"
        else:
            message = f"{type(error).__name__}: {error}"

        decision = self._retry_policy.decide(attempts, record.max_attempts, error, now)
        applied = await self._repository.mark_failed(
            record.id,
            record.attempt_count,
            claimed_at,
            decision.status,
            message,
            decision.next_retry_at,
            now,
        )
        log_extra = {
            "outbox_id": str(record.id),
            "event_id": record.event_id,
            "topic": record.topic,
            "attempt_count": attempts,
            "max_attempts": record.max_attempts,
            "error_class": decision.error_class.value,
        }
        if not applied:
            logger.warning(
                "Outbox record %s failed but no longer owned by this worker",
                record.id,
                extra=log_extra,
            )
            return RecordOutcome.SKIPPED

        if decision.dead_lettered:
            logger.error(
                "Outbox record %s moved to dead letter after %d attempt(s): %s",
                record.id,
                attempts,
                message,
                extra=log_extra,
            )
            return RecordOutcome.DEAD_LETTERED

        logger.warning(
            "Failed to publish outbox record %s (attempt %d/%d), retry at %s: %s",
            record.id,
            attempts,
            record.max_attempts,
            decision.next_retry_at.isoformat() if decision.next_retry_at else None,
            message,
            extra=log_extra,
        )
        return RecordOutcome.FAILED

    @staticmethod
    def _log_cycle(name: str, result: CycleResult) -> None:
        if result.is_empty:
            return
        logger.info(
            "Outbox %s cycle: %d selected, %d published, %d failed, %d dead-lettered, "
            "%d skipped",
            name,
            result.selected,
            result.published,
            result.failed,
            result.dead_lettered,
            result.skipped,
            extra={"cycle": name, **result.to_dict()},
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Start the background loops.

        Does nothing when the pipeline is disabled or already running.
        """
        if not self._config.enabled:
            logger.info("Outbox processing disabled, not starting background tasks")
            return
        if self.is_running:
            logger.warning("OutboxProcessor already running")
            return

        self._tasks = [
            asyncio.create_task(
                self._run_loop("pending", self._config.pending_interval, self.process_pending),
                name="outbox_pending",
            ),
            asyncio.create_task(
                self._run_loop("retry", self._config.retry_interval, self.process_retryable),
                name="outbox_retry",
            ),
            asyncio.create_task(
                self._run_loop(
                    "retention",
                    self._config.cleanup_interval,
                    self.purge_published,
                    run_immediately=False,
                ),
                name="outbox_retention",
            ),
            asyncio.create_task(
                self._run_loop(
                    "statistics",
                    self._config.stats_interval,
                    self.log_statistics,
                    run_immediately=False,
                ),
                name="outbox_statistics",
            ),
        ]
        logger.info(
            "OutboxProcessor started",
            extra={
                "pending_interval": self._config.pending_interval,
                "retry_interval": self._config.retry_interval,
                "batch_size": self._config.batch_size,
            },
        )

    async def stop(self) -> None:
        """
        Cancel the background loops.

        In-flight records are abandoned in PROCESSING and picked up again
        once ``processing_timeout`` has passed.
        """
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("OutboxProcessor stopped")

    async def __aenter__(self) -> OutboxProcessor:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _run_loop(
        self,
        name: str,
        interval: float,
        run: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> None:
        if not run_immediately:
            await asyncio.sleep(interval)
        while True:
            try:
                await run()
            except Exception:
                logger.exception("Outbox %s cycle failed", name, extra={"cycle": name})
            await asyncio.sleep(interval)


__all__ = [
    "RecordOutcome",
    "CycleResult",
    "OutboxProcessor",
]
