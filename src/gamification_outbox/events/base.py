"""
Base class for gamification events.

Events are immutable facts raised by the gamification service. They are
serialized to JSON and carried opaquely through the outbox to the broker,
where consumers deduplicate them by ``event_id``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

EVENT_SOURCE = "gamification-service"
EVENT_VERSION = "1.0"


class GamificationEvent(BaseModel):
    """
    Envelope shared by every gamification event.

    Concrete events narrow ``event_type`` to a literal so the closed set of
    kinds forms a discriminated union (see ``gamification_outbox.events.parsing``).

    Attributes:
        event_id: Unique identifier, used by consumers for deduplication
        event_type: Discriminator used for topic routing
        timestamp: When the event was raised (UTC)
        user_id: Subject of the event, used as the partition key
        source: Producing service
        version: Envelope schema version
        metadata: Free-form metadata
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique event identifier",
    )
    event_type: str = Field(
        default="",
        description="Event type discriminator",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event was raised (UTC)",
    )
    user_id: int | None = Field(
        default=None,
        description="User the event is about",
    )
    source: str = Field(
        default=EVENT_SOURCE,
        description="Service that produced the event",
    )
    version: str = Field(
        default=EVENT_VERSION,
        description="Envelope schema version",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event metadata",
    )

    def is_valid(self) -> bool:
        """Check the envelope fields every event needs before it can be stored."""
        return _not_blank(self.event_id) and _not_blank(self.event_type)

    def subject_key(self) -> str:
        """
        Partition key for the broker.

        Events about the same user share a key so they land on the same
        partition; events without a subject fall back to their own id.
        """
        if self.user_id is not None:
            return str(self.user_id)
        return self.event_id

    def __str__(self) -> str:
        return f"{self.event_type}(event_id={self.event_id}, user_id={self.user_id})"


def _not_blank(value: str | None) -> bool:
    return value is not None and bool(value.strip())


__all__ = [
    "EVENT_SOURCE",
    "EVENT_VERSION",
    "GamificationEvent",
]
