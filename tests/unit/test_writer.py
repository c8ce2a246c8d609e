"""
Unit tests for OutboxWriter and OutboxEventPublisher.

Tests cover:
- Storing events as PENDING records with routing applied
- Disabled pipeline behaviour
- Serialization failures
- Validation and duplicate suppression in the publishing facade
- Rolling back with the business transaction
"""

import json
import logging

import pytest

from gamification_outbox.config import OutboxConfig
from gamification_outbox.events import parse_event
from gamification_outbox.exceptions import EventValidationError, SerializationError
from gamification_outbox.models import OutboxStatus
from gamification_outbox.repositories import SQLiteOutboxRepository
from gamification_outbox.writer import OutboxEventPublisher, OutboxWriter
from tests.conftest import skip_if_no_aiosqlite


@pytest.fixture
def writer(repository, outbox_config, frozen_clock) -> OutboxWriter:
    return OutboxWriter(repository, config=outbox_config, clock=frozen_clock)


@pytest.fixture
def event_publisher(writer) -> OutboxEventPublisher:
    return OutboxEventPublisher(writer)


class TestOutboxWriter:
    """Tests for OutboxWriter.store_for_publishing."""

    @pytest.mark.asyncio
    async def test_stores_pending_record(self, writer, repository, level_up_event, frozen_clock):
        event = level_up_event()

        record = await writer.store_for_publishing(event)

        stored = await repository.get_record(record.id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.event_id == event.event_id
        assert stored.event_type == "LEVEL_UP"
        assert stored.topic == "level-up-events"
        assert stored.message_key == "42"
        assert stored.attempt_count == 0
        assert stored.max_attempts == 3
        assert stored.user_id == 42
        assert stored.created_at == frozen_clock()

    @pytest.mark.asyncio
    async def test_payload_is_event_json(self, writer, quest_event):
        event = quest_event()

        record = await writer.store_for_publishing(event)

        assert json.loads(record.payload)["quest_id"] == "quest-10k"
        assert parse_event(record.payload) == event

    @pytest.mark.asyncio
    async def test_max_attempts_from_config(self, repository, badge_event):
        writer = OutboxWriter(repository, config=OutboxConfig(max_attempts=5))

        record = await writer.store_for_publishing(badge_event())

        assert record.max_attempts == 5

    @pytest.mark.asyncio
    async def test_unrouted_events_use_default_topic(self, writer, streak_event):
        record = await writer.store_for_publishing(streak_event())
        assert record.topic == "gamification-events"

    @pytest.mark.asyncio
    async def test_disabled_writer_stores_nothing(self, repository, badge_event):
        """Test a disabled pipeline drops events without touching the store."""
        writer = OutboxWriter(repository, config=OutboxConfig.disabled())

        assert await writer.store_for_publishing(badge_event()) is None
        assert (await repository.get_statistics()).total == 0

    @pytest.mark.asyncio
    async def test_blank_event_id_is_rejected(self, writer, repository, badge_event):
        with pytest.raises(SerializationError):
            await writer.store_for_publishing(badge_event(event_id="  "))

        assert (await repository.get_statistics()).total == 0

    @pytest.mark.asyncio
    async def test_unserializable_event(self, writer, repository, badge_event):
        """Test serialization failures surface as SerializationError."""
        event = badge_event(metadata={"handle": object()})

        with pytest.raises(SerializationError) as exc_info:
            await writer.store_for_publishing(event)

        assert exc_info.value.event_type == "BADGE_EARNED"
        assert (await repository.get_statistics()).total == 0


class TestOutboxEventPublisher:
    """Tests for the validating publishing facade."""

    @pytest.mark.asyncio
    async def test_publish_each_kind(
        self,
        event_publisher,
        repository,
        badge_event,
        level_up_event,
        quest_event,
        leaderboard_event,
        streak_event,
    ):
        await event_publisher.publish_badge_earned(badge_event())
        await event_publisher.publish_level_up(level_up_event())
        await event_publisher.publish_quest_completed(quest_event())
        await event_publisher.publish_leaderboard_updated(leaderboard_event())
        await event_publisher.publish_streak_updated(streak_event())

        pending = await repository.list_by_status(OutboxStatus.PENDING)
        assert sorted(r.topic for r in pending) == [
            "badge-events",
            "gamification-events",
            "leaderboard-events",
            "level-up-events",
            "quest-events",
        ]

    @pytest.mark.asyncio
    async def test_invalid_event_raises(self, event_publisher, repository, level_up_event):
        """Test an event failing its validity rules is not stored."""
        event = level_up_event(new_level=2, previous_level=2)

        with pytest.raises(EventValidationError) as exc_info:
            await event_publisher.publish_level_up(event)

        assert exc_info.value.event_id == event.event_id
        assert (await repository.get_statistics()).total == 0

    @pytest.mark.asyncio
    async def test_event_without_user_is_invalid(self, event_publisher, leaderboard_event):
        with pytest.raises(EventValidationError):
            await event_publisher.publish_leaderboard_updated(leaderboard_event(user_id=None))

    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(
        self, event_publisher, repository, badge_event, caplog
    ):
        """Test storing the same event twice keeps a single record."""
        event = badge_event()
        caplog.set_level(logging.WARNING, logger="gamification_outbox.writer")

        first = await event_publisher.publish_badge_earned(event)
        second = await event_publisher.publish_badge_earned(event)

        assert first is not None
        assert second is None
        assert (await repository.get_statistics()).pending == 1
        assert "already in outbox" in caplog.text

    @pytest.mark.asyncio
    async def test_disabled_publisher_skips_validation(self, repository, level_up_event):
        publisher = OutboxEventPublisher(OutboxWriter(repository, config=OutboxConfig.disabled()))

        assert await publisher.publish_level_up(level_up_event(new_level=1)) is None


@skip_if_no_aiosqlite
class TestTransactionalWrite:
    """Tests for writing inside the caller's transaction."""

    @pytest.mark.asyncio
    async def test_rollback_discards_event(self, sqlite_connection, badge_event, frozen_clock):
        """Test an aborted business transaction leaves no outbox record."""
        repository = SQLiteOutboxRepository(
            sqlite_connection, enable_tracing=False, autocommit=False
        )
        writer = OutboxWriter(repository, clock=frozen_clock)

        await sqlite_connection.execute("CREATE TABLE user_badges (user_id INTEGER, badge TEXT)")
        await sqlite_connection.commit()
        await sqlite_connection.execute("INSERT INTO user_badges VALUES (42, 'First Run')")
        record = await writer.store_for_publishing(badge_event())
        await sqlite_connection.rollback()

        assert await repository.get_record(record.id) is None
        cursor = await sqlite_connection.execute("SELECT COUNT(*) FROM user_badges")
        assert (await cursor.fetchone())[0] == 0

    @pytest.mark.asyncio
    async def test_commit_keeps_event(self, sqlite_connection, badge_event, frozen_clock):
        repository = SQLiteOutboxRepository(
            sqlite_connection, enable_tracing=False, autocommit=False
        )
        writer = OutboxWriter(repository, clock=frozen_clock)

        record = await writer.store_for_publishing(badge_event())
        await sqlite_connection.commit()

        stored = await repository.get_record(record.id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.created_at == frozen_clock()
        assert stored.next_retry_at is None
        assert stored.updated_at == frozen_clock()
