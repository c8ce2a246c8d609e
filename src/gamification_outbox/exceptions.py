"""Library exceptions for the gamification_outbox package."""

from uuid import UUID


class OutboxError(Exception):
    """Base exception for the outbox pipeline."""

    pass


class SerializationError(OutboxError):
    """Raised when an event cannot be serialized into an outbox payload."""

    def __init__(self, event_type: str, message: str) -> None:
        self.event_type = event_type
        super().__init__(f"Serialization error for {event_type}: {message}")


class EventValidationError(OutboxError):
    """
    Raised when an event is structurally invalid.

    At write time this aborts the caller's transaction. At publish time the
    broker rejected the message as malformed, so the record is dead-lettered
    without further retries.
    """

    def __init__(self, event_id: str | None, message: str) -> None:
        self.event_id = event_id
        super().__init__(f"Invalid event {event_id}: {message}")


class TransientPublishError(OutboxError):
    """Raised when the broker is temporarily unable to accept a message."""

    def __init__(self, topic: str, message: str) -> None:
        self.topic = topic
        super().__init__(f"Publish to {topic} failed: {message}")


class ClaimLostError(OutboxError):
    """Raised when another worker won the claim on an outbox record."""

    def __init__(self, outbox_id: UUID) -> None:
        self.outbox_id = outbox_id
        super().__init__(f"Claim lost for outbox record {outbox_id}")


class RecordNotFoundError(OutboxError):
    """Raised when an outbox record cannot be found."""

    def __init__(self, outbox_id: UUID) -> None:
        self.outbox_id = outbox_id
        super().__init__(f"Outbox record not found: {outbox_id}")


class InvalidRecordStateError(OutboxError):
    """Raised when an operation requires a record to be in a different status."""

    def __init__(self, outbox_id: UUID, status: str, expected: str) -> None:
        self.outbox_id = outbox_id
        self.status = status
        self.expected = expected
        super().__init__(
            f"Outbox record {outbox_id} is {status}, expected {expected}"
        )


__all__ = [
    "OutboxError",
    "SerializationError",
    "EventValidationError",
    "TransientPublishError",
    "ClaimLostError",
    "RecordNotFoundError",
    "InvalidRecordStateError",
]
