"""
Concrete gamification events.

Each event carries its own ``is_valid`` rule set. Validity is checked by the
publishing facade before the event is written to the outbox; models are
deliberately permissive at construction so invalid events can be reported
instead of failing inside pydantic.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from gamification_outbox.events.base import GamificationEvent, _not_blank

STREAK_ACTIONS = frozenset({"INCREASED", "DECREASED", "RESET", "MAINTAINED"})


class BadgeEarned(GamificationEvent):
    """A user earned a badge."""

    event_type: Literal["BADGE_EARNED"] = "BADGE_EARNED"

    badge_id: str | None = None
    badge_name: str | None = None
    badge_description: str | None = None
    badge_type: str | None = None
    points_awarded: int = 0
    earned_at: datetime | None = None
    total_badge_count: int = 0
    new_total_points: int = 0
    trigger_reason: str | None = None

    def is_valid(self) -> bool:
        return (
            super().is_valid()
            and self.user_id is not None
            and _not_blank(self.badge_id)
            and _not_blank(self.badge_name)
            and _not_blank(self.badge_type)
            and self.points_awarded >= 0
            and self.earned_at is not None
            and self.total_badge_count >= 0
            and self.new_total_points >= 0
        )


class LevelUp(GamificationEvent):
    """A user reached a new level."""

    event_type: Literal["LEVEL_UP"] = "LEVEL_UP"

    previous_level: int = 0
    new_level: int = 0
    total_points: int = 0
    points_for_next_level: int | None = None
    level_up_at: datetime | None = None
    new_level_title: str | None = None
    unlocked_features: list[str] = Field(default_factory=list)

    def is_valid(self) -> bool:
        return (
            super().is_valid()
            and self.user_id is not None
            and self.previous_level >= 1
            and self.new_level >= 1
            and self.new_level > self.previous_level
            and self.total_points >= 0
            and self.level_up_at is not None
        )

    @property
    def levels_gained(self) -> int:
        return self.new_level - self.previous_level


class QuestCompleted(GamificationEvent):
    """A user completed a quest."""

    event_type: Literal["QUEST_COMPLETED"] = "QUEST_COMPLETED"

    quest_id: str | None = None
    quest_name: str | None = None
    quest_type: str | None = None
    points_rewarded: int = 0
    quest_started_at: datetime | None = None
    completed_at: datetime | None = None
    new_total_points: int = 0
    difficulty: str | None = None

    def is_valid(self) -> bool:
        return (
            super().is_valid()
            and self.user_id is not None
            and _not_blank(self.quest_id)
            and _not_blank(self.quest_name)
            and _not_blank(self.quest_type)
            and self.points_rewarded >= 0
            and self.quest_started_at is not None
            and self.completed_at is not None
            and self.completed_at > self.quest_started_at
        )


class LeaderboardUpdated(GamificationEvent):
    """A user's position on a leaderboard changed."""

    event_type: Literal["LEADERBOARD_UPDATED"] = "LEADERBOARD_UPDATED"

    leaderboard_type: str | None = None
    previous_rank: int | None = None
    new_rank: int = 0
    current_value: float = 0
    change_type: str | None = None
    period: str | None = None

    def is_valid(self) -> bool:
        return (
            super().is_valid()
            and self.user_id is not None
            and _not_blank(self.leaderboard_type)
            and self.new_rank >= 1
            and self.current_value >= 0
            and _not_blank(self.change_type)
        )

    @property
    def rank_change(self) -> int:
        """Positions gained (positive) or lost (negative) since the previous rank."""
        if self.previous_rank is None:
            return 0
        return self.previous_rank - self.new_rank


class StreakUpdated(GamificationEvent):
    """A user's activity streak changed."""

    event_type: Literal["STREAK_UPDATED"] = "STREAK_UPDATED"

    streak_type: str | None = None
    current_streak: int = 0
    longest_streak: int = 0
    previous_streak: int | None = None
    streak_action: str | None = None

    def is_valid(self) -> bool:
        return (
            super().is_valid()
            and self.user_id is not None
            and _not_blank(self.streak_type)
            and self.current_streak >= 0
            and self.longest_streak >= 0
            and self.streak_action in STREAK_ACTIONS
        )


__all__ = [
    "STREAK_ACTIONS",
    "BadgeEarned",
    "LevelUp",
    "QuestCompleted",
    "LeaderboardUpdated",
    "StreakUpdated",
]
