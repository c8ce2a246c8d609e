"""
Gamification events carried through the outbox.

Example:
    >>> from gamification_outbox.events import BadgeEarned
    >>> event = BadgeEarned(user_id=42, badge_id="b-1", badge_name="First Run",
    ...                     badge_type="MILESTONE", earned_at=datetime.now(UTC))
    >>> event.is_valid()
    True
"""

from gamification_outbox.events.base import EVENT_SOURCE, EVENT_VERSION, GamificationEvent
from gamification_outbox.events.parsing import AnyGamificationEvent, parse_event
from gamification_outbox.events.types import (
    STREAK_ACTIONS,
    BadgeEarned,
    LeaderboardUpdated,
    LevelUp,
    QuestCompleted,
    StreakUpdated,
)

__all__ = [
    "EVENT_SOURCE",
    "EVENT_VERSION",
    "GamificationEvent",
    "AnyGamificationEvent",
    "parse_event",
    "STREAK_ACTIONS",
    "BadgeEarned",
    "LevelUp",
    "QuestCompleted",
    "LeaderboardUpdated",
    "StreakUpdated",
]
