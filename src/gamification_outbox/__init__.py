"""
gamification_outbox - transactional outbox delivery for gamification events.

Events are stored in the same transaction as the business change that
raised them and delivered to the message broker in the background with
at-least-once semantics.

Example:
    >>> from gamification_outbox import (
    ...     OutboxConfig, OutboxProcessor, OutboxWriter, InMemoryOutboxRepository,
    ...     InMemoryBrokerPublisher, BadgeEarned,
    ... )
    >>> repository = InMemoryOutboxRepository()
    >>> writer = OutboxWriter(repository)
    >>> await writer.store_for_publishing(BadgeEarned(user_id=1, ...))
    >>> processor = OutboxProcessor(repository, InMemoryBrokerPublisher())
    >>> await processor.process_pending()
"""

from importlib.metadata import PackageNotFoundError, version

from gamification_outbox.bus import BrokerPublisher, InMemoryBrokerPublisher, PublishedMessage
from gamification_outbox.config import OutboxConfig
from gamification_outbox.dlq_manager import DeadLetterManager
from gamification_outbox.events import (
    AnyGamificationEvent,
    BadgeEarned,
    GamificationEvent,
    LeaderboardUpdated,
    LevelUp,
    QuestCompleted,
    StreakUpdated,
    parse_event,
)
from gamification_outbox.exceptions import (
    ClaimLostError,
    EventValidationError,
    InvalidRecordStateError,
    OutboxError,
    RecordNotFoundError,
    SerializationError,
    TransientPublishError,
)
from gamification_outbox.health import (
    HealthCheckResult,
    HealthIndicator,
    HealthStatus,
    HealthThresholds,
    OutboxHealthReporter,
)
from gamification_outbox.models import OutboxRecord, OutboxStatistics, OutboxStatus
from gamification_outbox.processor import CycleResult, OutboxProcessor, RecordOutcome
from gamification_outbox.repositories import (
    InMemoryOutboxRepository,
    OutboxRepository,
    PostgreSQLOutboxRepository,
    SQLiteOutboxRepository,
)
from gamification_outbox.retention import RetentionSweeper
from gamification_outbox.retry import (
    ErrorClass,
    ExponentialBackoffPolicy,
    RetryDecision,
    RetryPolicy,
    classify_error,
)
from gamification_outbox.routing import DEFAULT_TOPIC, TOPIC_ROUTES, resolve_topic
from gamification_outbox.writer import OutboxEventPublisher, OutboxWriter

try:
    __version__ = version("gamification-outbox")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    # Configuration
    "OutboxConfig",
    # Events
    "GamificationEvent",
    "AnyGamificationEvent",
    "BadgeEarned",
    "LevelUp",
    "QuestCompleted",
    "LeaderboardUpdated",
    "StreakUpdated",
    "parse_event",
    # Routing
    "DEFAULT_TOPIC",
    "TOPIC_ROUTES",
    "resolve_topic",
    # Records
    "OutboxRecord",
    "OutboxStatistics",
    "OutboxStatus",
    # Store
    "OutboxRepository",
    "InMemoryOutboxRepository",
    "PostgreSQLOutboxRepository",
    "SQLiteOutboxRepository",
    # Write path
    "OutboxWriter",
    "OutboxEventPublisher",
    # Delivery
    "BrokerPublisher",
    "InMemoryBrokerPublisher",
    "PublishedMessage",
    "OutboxProcessor",
    "CycleResult",
    "RecordOutcome",
    "ErrorClass",
    "ExponentialBackoffPolicy",
    "RetryDecision",
    "RetryPolicy",
    "classify_error",
    # Operations
    "DeadLetterManager",
    "RetentionSweeper",
    "OutboxHealthReporter",
    "HealthCheckResult",
    "HealthIndicator",
    "HealthStatus",
    "HealthThresholds",
    # Errors
    "OutboxError",
    "SerializationError",
    "EventValidationError",
    "TransientPublishError",
    "ClaimLostError",
    "RecordNotFoundError",
    "InvalidRecordStateError",
]
