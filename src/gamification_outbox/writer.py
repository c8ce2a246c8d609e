"""
Writing events into the outbox.

``OutboxWriter.store_for_publishing`` is the only entry point business code
needs: call it inside the transaction that performs the business mutation,
with a repository bound to that transaction's connection. The event is
serialized, routed and inserted as a PENDING record; nothing touches the
network until the processor picks the record up.

``OutboxEventPublisher`` layers validation and duplicate suppression on top
of the writer and offers one entry point per event kind.

Example:
    >>> async with engine.begin() as conn:
    ...     await grant_badge(conn, user_id, badge)
    ...     publisher = OutboxEventPublisher(
    ...         OutboxWriter(PostgreSQLOutboxRepository(conn))
    ...     )
    ...     await publisher.publish_badge_earned(event)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic_core import PydanticSerializationError

from gamification_outbox.config import OutboxConfig
from gamification_outbox.events import (
    BadgeEarned,
    GamificationEvent,
    LeaderboardUpdated,
    LevelUp,
    QuestCompleted,
    StreakUpdated,
)
from gamification_outbox.exceptions import EventValidationError, SerializationError
from gamification_outbox.models import OutboxRecord, OutboxStatus
from gamification_outbox.observability import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_USER_ID,
    Tracer,
    create_tracer,
)
from gamification_outbox.repositories.outbox import OutboxRepository
from gamification_outbox.routing import resolve_topic

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OutboxWriter:
    """
    Turns events into PENDING outbox records.

    The writer holds no state besides its collaborators; bind a new writer
    (or repository) to each transaction.
    """

    def __init__(
        self,
        repository: OutboxRepository,
        config: OutboxConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the writer.

        Args:
            repository: Store bound to the caller's transaction
            config: Pipeline configuration (``enabled``, ``max_attempts``)
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing
            clock: Source of the current UTC time
        """
        self._repository = repository
        self._config = config or OutboxConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def repository(self) -> OutboxRepository:
        return self._repository

    async def store_for_publishing(self, event: GamificationEvent) -> OutboxRecord | None:
        """
        Persist ``event`` as a PENDING outbox record.

        Args:
            event: The event to deliver

        Returns:
            The stored record, or None when the pipeline is disabled

        Raises:
            SerializationError: If the event cannot be serialized. No record
                is written and the caller's transaction should roll back.
        """
        if not self._config.enabled:
            logger.debug(
                "Outbox disabled, dropping event %s",
                event.event_id,
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return None

        with self._tracer.span(
            "gamification_outbox.writer.store",
            {
                ATTR_EVENT_ID: event.event_id,
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_USER_ID: str(event.user_id) if event.user_id is not None else "",
            },
        ):
            payload = self._serialize(event)
            now = self._clock()
            record = OutboxRecord(
                event_id=event.event_id,
                event_type=event.event_type,
                topic=resolve_topic(event.event_type),
                message_key=event.subject_key(),
                payload=payload,
                status=OutboxStatus.PENDING,
                attempt_count=0,
                max_attempts=self._config.max_attempts,
                user_id=event.user_id,
                created_at=now,
                updated_at=now,
            )
            stored = await self._repository.add_record(record)

        logger.debug(
            "Stored event %s for publishing to %s",
            event.event_id,
            stored.topic,
            extra={
                "outbox_id": str(stored.id),
                "event_id": stored.event_id,
                "event_type": stored.event_type,
                "topic": stored.topic,
            },
        )
        return stored

    @staticmethod
    def _serialize(event: GamificationEvent) -> str:
        event_type = getattr(event, "event_type", None) or type(event).__name__
        if not event.event_id or not event.event_id.strip():
            raise SerializationError(event_type, "event_id must not be blank")
        if not event.event_type or not event.event_type.strip():
            raise SerializationError(event_type, "event_type must not be blank")
        try:
            return event.model_dump_json()
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise SerializationError(event_type, str(e)) from e


class OutboxEventPublisher:
    """
    Validating front door for business code.

    Every ``publish_*`` method validates the event, skips it if an outbox
    record with the same ``event_id`` already exists, and stores it through
    the writer. Validation errors propagate so the surrounding transaction
    rolls back.

    Example:
        >>> publisher = OutboxEventPublisher(writer)
        >>> await publisher.publish_level_up(LevelUp(user_id=7, previous_level=2,
        ...                                          new_level=3, total_points=900,
        ...                                          level_up_at=now))
    """

    def __init__(self, writer: OutboxWriter) -> None:
        self._writer = writer

    async def publish(self, event: GamificationEvent) -> OutboxRecord | None:
        """
        Validate and store any gamification event.

        Returns:
            The stored record, or None if the pipeline is disabled or the
            event was already stored

        Raises:
            EventValidationError: If the event fails its validity rules
            SerializationError: If the event cannot be serialized
        """
        if not self._writer.enabled:
            return await self._writer.store_for_publishing(event)

        if not event.is_valid():
            raise EventValidationError(event.event_id, f"{event.event_type} failed validation")

        if await self._writer.repository.event_exists(event.event_id):
            logger.warning(
                "Event %s already in outbox, skipping duplicate",
                event.event_id,
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return None

        record = await self._writer.store_for_publishing(event)
        logger.info(
            "Queued %s for user %s",
            event.event_type,
            event.user_id,
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return record

    async def publish_badge_earned(self, event: BadgeEarned) -> OutboxRecord | None:
        return await self.publish(event)

    async def publish_level_up(self, event: LevelUp) -> OutboxRecord | None:
        return await self.publish(event)

    async def publish_quest_completed(self, event: QuestCompleted) -> OutboxRecord | None:
        return await self.publish(event)

    async def publish_leaderboard_updated(self, event: LeaderboardUpdated) -> OutboxRecord | None:
        return await self.publish(event)

    async def publish_streak_updated(self, event: StreakUpdated) -> OutboxRecord | None:
        return await self.publish(event)


__all__ = [
    "OutboxWriter",
    "OutboxEventPublisher",
]
