"""
Tracing support for the outbox pipeline.

OpenTelemetry is optional; without it every component falls back to a
``NullTracer``.
"""

from gamification_outbox.observability.attributes import (
    ATTR_ATTEMPT_COUNT,
    ATTR_BATCH_SIZE,
    ATTR_CLAIMED,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_KAFKA_KEY,
    ATTR_MESSAGING_KAFKA_OFFSET,
    ATTR_MESSAGING_KAFKA_PARTITION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_OUTBOX_ID,
    ATTR_OUTBOX_STATUS,
    ATTR_RECORD_COUNT,
    ATTR_RETENTION_DAYS,
    ATTR_USER_ID,
)
from gamification_outbox.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from gamification_outbox.observability.tracing import OTEL_AVAILABLE

__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanKindEnum",
    "create_tracer",
    "ATTR_ATTEMPT_COUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_CLAIMED",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_TYPE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_KAFKA_KEY",
    "ATTR_MESSAGING_KAFKA_OFFSET",
    "ATTR_MESSAGING_KAFKA_PARTITION",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_OUTBOX_ID",
    "ATTR_OUTBOX_STATUS",
    "ATTR_RECORD_COUNT",
    "ATTR_RETENTION_DAYS",
    "ATTR_USER_ID",
]
