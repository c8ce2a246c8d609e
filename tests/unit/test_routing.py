"""Unit tests for topic routing."""

import pytest

from gamification_outbox.routing import DEFAULT_TOPIC, TOPIC_ROUTES, resolve_topic


class TestResolveTopic:
    """Tests for resolve_topic."""

    @pytest.mark.parametrize(
        ("event_type", "topic"),
        [
            ("BADGE_EARNED", "badge-events"),
            ("LEVEL_UP", "level-up-events"),
            ("QUEST_COMPLETED", "quest-events"),
            ("LEADERBOARD_UPDATED", "leaderboard-events"),
            ("STREAK_UPDATED", "gamification-events"),
        ],
    )
    def test_known_event_types(self, event_type: str, topic: str):
        """Test each known event type maps to its topic."""
        assert resolve_topic(event_type) == topic

    def test_unknown_event_type_uses_default(self):
        """Test unrecognized types fall back to the default topic."""
        assert resolve_topic("CHALLENGE_JOINED") == DEFAULT_TOPIC
        assert DEFAULT_TOPIC == "gamification-events"

    def test_routes_are_read_only(self):
        """Test the routing table cannot be modified at runtime."""
        with pytest.raises(TypeError):
            TOPIC_ROUTES["BADGE_EARNED"] = "other"  # type: ignore[index]
