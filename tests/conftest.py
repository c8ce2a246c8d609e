"""
Shared pytest fixtures for the gamification_outbox tests.

This module provides:
- A controllable clock (frozen_clock)
- Outbox configuration, repository and publisher fixtures
- Event factories for every gamification event kind
- SQLite fixtures (sqlite_connection, sqlite_repo)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
import pytest_asyncio

from gamification_outbox.bus import InMemoryBrokerPublisher
from gamification_outbox.config import OutboxConfig
from gamification_outbox.events import (
    BadgeEarned,
    LeaderboardUpdated,
    LevelUp,
    QuestCompleted,
    StreakUpdated,
)
from gamification_outbox.migrations import get_schema
from gamification_outbox.models import OutboxRecord
from gamification_outbox.repositories import InMemoryOutboxRepository, SQLiteOutboxRepository
from gamification_outbox.routing import resolve_topic

if TYPE_CHECKING:
    import aiosqlite

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass

skip_if_no_aiosqlite = pytest.mark.skipif(
    not AIOSQLITE_AVAILABLE,
    reason="aiosqlite not installed",
)


# ============================================================================
# Clock
# ============================================================================


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


@pytest.fixture
def frozen_clock() -> FrozenClock:
    """Provide a clock frozen at 2024-03-01 12:00 UTC."""
    return FrozenClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))


# ============================================================================
# Pipeline Fixtures
# ============================================================================


@pytest.fixture
def outbox_config() -> OutboxConfig:
    """Default configuration with a short publish timeout for tests."""
    return OutboxConfig(publish_timeout=0.5, processing_timeout=300.0)


@pytest.fixture
def repository() -> InMemoryOutboxRepository:
    """Provide a fresh in-memory outbox repository."""
    return InMemoryOutboxRepository()


@pytest.fixture
def publisher() -> InMemoryBrokerPublisher:
    """Provide a fresh in-memory broker publisher."""
    return InMemoryBrokerPublisher()


# ============================================================================
# Event Factories
# ============================================================================


@pytest.fixture
def badge_event() -> Callable[..., BadgeEarned]:
    """Factory for valid BadgeEarned events."""

    def _create(**overrides: Any) -> BadgeEarned:
        fields: dict[str, Any] = {
            "user_id": 42,
            "badge_id": "badge-first-run",
            "badge_name": "First Run",
            "badge_type": "MILESTONE",
            "points_awarded": 50,
            "earned_at": datetime(2024, 3, 1, 11, 59, tzinfo=UTC),
            "total_badge_count": 1,
            "new_total_points": 50,
        }
        fields.update(overrides)
        return BadgeEarned(**fields)

    return _create


@pytest.fixture
def level_up_event() -> Callable[..., LevelUp]:
    """Factory for valid LevelUp events."""

    def _create(**overrides: Any) -> LevelUp:
        fields: dict[str, Any] = {
            "user_id": 42,
            "previous_level": 2,
            "new_level": 3,
            "total_points": 1200,
            "level_up_at": datetime(2024, 3, 1, 11, 59, tzinfo=UTC),
        }
        fields.update(overrides)
        return LevelUp(**fields)

    return _create


@pytest.fixture
def quest_event() -> Callable[..., QuestCompleted]:
    """Factory for valid QuestCompleted events."""

    def _create(**overrides: Any) -> QuestCompleted:
        fields: dict[str, Any] = {
            "user_id": 42,
            "quest_id": "quest-10k",
            "quest_name": "Run 10k",
            "quest_type": "WEEKLY",
            "points_rewarded": 200,
            "quest_started_at": datetime(2024, 2, 26, 8, 0, tzinfo=UTC),
            "completed_at": datetime(2024, 3, 1, 11, 0, tzinfo=UTC),
        }
        fields.update(overrides)
        return QuestCompleted(**fields)

    return _create


@pytest.fixture
def leaderboard_event() -> Callable[..., LeaderboardUpdated]:
    """Factory for valid LeaderboardUpdated events."""

    def _create(**overrides: Any) -> LeaderboardUpdated:
        fields: dict[str, Any] = {
            "user_id": 42,
            "leaderboard_type": "WEEKLY_DISTANCE",
            "previous_rank": 5,
            "new_rank": 3,
            "current_value": 41.2,
            "change_type": "RANK_UP",
        }
        fields.update(overrides)
        return LeaderboardUpdated(**fields)

    return _create


@pytest.fixture
def streak_event() -> Callable[..., StreakUpdated]:
    """Factory for valid StreakUpdated events."""

    def _create(**overrides: Any) -> StreakUpdated:
        fields: dict[str, Any] = {
            "user_id": 42,
            "streak_type": "DAILY_WORKOUT",
            "current_streak": 6,
            "longest_streak": 10,
            "streak_action": "INCREASED",
        }
        fields.update(overrides)
        return StreakUpdated(**fields)

    return _create


@pytest.fixture
def make_record(frozen_clock: FrozenClock) -> Callable[..., OutboxRecord]:
    """Factory for PENDING outbox records stamped with the frozen clock."""

    def _create(event_type: str = "BADGE_EARNED", **overrides: Any) -> OutboxRecord:
        now = frozen_clock()
        fields: dict[str, Any] = {
            "event_id": f"evt-{uuid4()}",
            "event_type": event_type,
            "topic": resolve_topic(event_type),
            "message_key": "42",
            "payload": '{"event_type": "%s"}' % event_type,
            "user_id": 42,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return OutboxRecord(**fields)

    return _create


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """
    Provide an in-memory SQLite connection with the outbox schema.

    Skips the test when aiosqlite is not installed.
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    import aiosqlite

    async with aiosqlite.connect(":memory:") as db:
        await db.executescript(get_schema("sqlite"))
        await db.commit()
        yield db


@pytest_asyncio.fixture
async def sqlite_repo(sqlite_connection: aiosqlite.Connection) -> SQLiteOutboxRepository:
    """Provide a SQLite outbox repository with tracing disabled."""
    return SQLiteOutboxRepository(sqlite_connection, enable_tracing=False)
