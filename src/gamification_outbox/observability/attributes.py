"""
Standard span attributes for the outbox pipeline.

Attribute names follow OpenTelemetry semantic conventions where one exists
(``db.*``, ``messaging.*``) and use the ``gamification_outbox.`` prefix
otherwise.

Example:
    >>> with tracer.span(
    ...     "gamification_outbox.processor.publish",
    ...     {ATTR_OUTBOX_ID: str(record.id), ATTR_TOPIC: record.topic},
    ... ):
    ...     pass
"""

# =============================================================================
# Event Attributes
# =============================================================================

ATTR_EVENT_ID = "gamification_outbox.event.id"
"""Identifier of the originating domain event (string)."""

ATTR_EVENT_TYPE = "gamification_outbox.event.type"
"""Event type discriminator, e.g. 'BADGE_EARNED' (string)."""

ATTR_USER_ID = "gamification_outbox.user.id"
"""Subject user of the event (string)."""

# =============================================================================
# Outbox Attributes
# =============================================================================

ATTR_OUTBOX_ID = "gamification_outbox.outbox.id"
"""Identifier of the outbox record (UUID string)."""

ATTR_OUTBOX_STATUS = "gamification_outbox.outbox.status"
"""Status of the outbox record after the operation (string)."""

ATTR_ATTEMPT_COUNT = "gamification_outbox.outbox.attempt_count"
"""Publish attempts recorded for the outbox record (integer)."""

ATTR_BATCH_SIZE = "gamification_outbox.batch.size"
"""Maximum number of records selected per cycle (integer)."""

ATTR_RECORD_COUNT = "gamification_outbox.record.count"
"""Number of records affected by an operation (integer)."""

ATTR_CLAIMED = "gamification_outbox.claim.acquired"
"""Whether an atomic claim succeeded (boolean)."""

ATTR_RETENTION_DAYS = "gamification_outbox.retention.days"
"""Retention window used by a purge (float)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for a failed operation (string)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier, e.g. 'postgresql', 'sqlite' (string)."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name, e.g. 'UPDATE' (string)."""

# =============================================================================
# Messaging Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_MESSAGING_SYSTEM = "messaging.system"
"""Messaging system identifier, e.g. 'kafka' (string)."""

ATTR_MESSAGING_DESTINATION = "messaging.destination.name"
"""Destination topic name (string)."""

ATTR_MESSAGING_KAFKA_KEY = "messaging.kafka.message.key"
"""Partition key of the published message (string)."""

ATTR_MESSAGING_KAFKA_PARTITION = "messaging.kafka.destination.partition"
"""Partition the broker assigned to the message (integer)."""

ATTR_MESSAGING_KAFKA_OFFSET = "messaging.kafka.message.offset"
"""Offset the broker assigned to the message (integer)."""


__all__ = [
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_USER_ID",
    "ATTR_OUTBOX_ID",
    "ATTR_OUTBOX_STATUS",
    "ATTR_ATTEMPT_COUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_RECORD_COUNT",
    "ATTR_CLAIMED",
    "ATTR_RETENTION_DAYS",
    "ATTR_ERROR_TYPE",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_KAFKA_KEY",
    "ATTR_MESSAGING_KAFKA_PARTITION",
    "ATTR_MESSAGING_KAFKA_OFFSET",
]
