"""
Decoding of outbox payloads back into typed events.

The produced event kinds form a closed, tagged union keyed by
``event_type``; pydantic selects the concrete model from the discriminator.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from gamification_outbox.events.types import (
    BadgeEarned,
    LeaderboardUpdated,
    LevelUp,
    QuestCompleted,
    StreakUpdated,
)
from gamification_outbox.exceptions import SerializationError

AnyGamificationEvent = Annotated[
    BadgeEarned | LevelUp | QuestCompleted | LeaderboardUpdated | StreakUpdated,
    Field(discriminator="event_type"),
]

_adapter: TypeAdapter[AnyGamificationEvent] = TypeAdapter(AnyGamificationEvent)


def parse_event(payload: str | bytes) -> AnyGamificationEvent:
    """
    Decode a JSON payload into the matching event class.

    Args:
        payload: JSON text as written by the outbox writer

    Returns:
        The concrete event instance

    Raises:
        SerializationError: If the payload is not valid JSON, names an
            unknown event type, or does not match the event's schema
    """
    try:
        return _adapter.validate_json(payload)
    except PydanticValidationError as e:
        raise SerializationError("unknown", str(e)) from e


__all__ = [
    "AnyGamificationEvent",
    "parse_event",
]
