"""
Topic routing for gamification events.

Each event type is published to a fixed topic. The topic is resolved once,
when the outbox record is written, and never changes afterwards.
"""

from types import MappingProxyType

DEFAULT_TOPIC = "gamification-events"

TOPIC_ROUTES = MappingProxyType(
    {
        "BADGE_EARNED": "badge-events",
        "LEVEL_UP": "level-up-events",
        "QUEST_COMPLETED": "quest-events",
        "LEADERBOARD_UPDATED": "leaderboard-events",
        "STREAK_UPDATED": "gamification-events",
    }
)


def resolve_topic(event_type: str) -> str:
    """
    Resolve the destination topic for an event type.

    Args:
        event_type: Event type discriminator (e.g. "BADGE_EARNED")

    Returns:
        The mapped topic, or DEFAULT_TOPIC for unrecognized types
    """
    return TOPIC_ROUTES.get(event_type, DEFAULT_TOPIC)


__all__ = [
    "DEFAULT_TOPIC",
    "TOPIC_ROUTES",
    "resolve_topic",
]
