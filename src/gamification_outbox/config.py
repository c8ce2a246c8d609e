"""
Configuration for the outbox pipeline.

Broker connection settings live with the broker adapter
(see ``gamification_outbox.bus.kafka.KafkaPublisherConfig``); everything
that governs how records move through the outbox lives here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from gamification_outbox.models import DEFAULT_MAX_ATTEMPTS


@dataclass
class OutboxConfig:
    """
    Settings for the writer, processor, retention and health reporting.

    Attributes:
        enabled: Master switch. When False the writer stores nothing and
            the processor starts no background tasks.
        batch_size: Maximum records selected per cycle
        pending_interval: Seconds between fast cycles (new records)
        retry_interval: Seconds between slow cycles (FAILED records)
        cleanup_interval: Seconds between retention sweeps
        stats_interval: Seconds between statistics log lines
        publish_timeout: Seconds to wait for a broker acknowledgement
        processing_timeout: Seconds after which a PROCESSING record is
            considered abandoned and may be claimed again
        max_attempts: Publish attempts before a record is dead-lettered
        retention: Age after which PUBLISHED records are purged
        backoff_base: Exponential base for retry delays
        backoff_unit: Delay after the first failed attempt
        dead_letter_alert_threshold: Dead-letter count above which the
            statistics cycle logs a warning

    Example:
        >>> config = OutboxConfig(batch_size=100, retention=timedelta(days=3))
    """

    enabled: bool = True
    batch_size: int = 50
    pending_interval: float = 5.0
    retry_interval: float = 120.0
    cleanup_interval: float = 86400.0
    stats_interval: float = 600.0
    publish_timeout: float = 10.0
    processing_timeout: float = 300.0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retention: timedelta = timedelta(days=7)
    backoff_base: int = 5
    backoff_unit: timedelta = timedelta(minutes=1)
    dead_letter_alert_threshold: int = 10

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

        for name in (
            "pending_interval",
            "retry_interval",
            "cleanup_interval",
            "stats_interval",
            "publish_timeout",
            "processing_timeout",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if self.processing_timeout <= self.publish_timeout:
            raise ValueError(
                f"processing_timeout ({self.processing_timeout}) must be greater than "
                f"publish_timeout ({self.publish_timeout})"
            )

        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

        if self.retention < timedelta(0):
            raise ValueError(f"retention must not be negative, got {self.retention}")

        if self.backoff_base < 1:
            raise ValueError(f"backoff_base must be >= 1, got {self.backoff_base}")

        if self.backoff_unit <= timedelta(0):
            raise ValueError(f"backoff_unit must be positive, got {self.backoff_unit}")

        if self.dead_letter_alert_threshold < 0:
            raise ValueError(
                f"dead_letter_alert_threshold must be >= 0, got {self.dead_letter_alert_threshold}"
            )

    @property
    def processing_stale_after(self) -> timedelta:
        return timedelta(seconds=self.processing_timeout)

    @classmethod
    def disabled(cls) -> OutboxConfig:
        """Configuration with the pipeline switched off."""
        return cls(enabled=False)


__all__ = ["OutboxConfig"]
