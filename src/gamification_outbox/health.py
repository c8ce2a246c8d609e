"""
Health and statistics reporting for the outbox.

Everything here is computed from a fresh statistics query on every call;
nothing is cached between calls.

Two health predicates are reported:

- processor: the share of FAILED and DEAD_LETTER records is below 5 %
- publisher: at least 95 % of records are PUBLISHED and fewer than 10 %
  are dead-lettered

An empty outbox is healthy for both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from gamification_outbox.models import OutboxStatistics, OutboxStatus
from gamification_outbox.repositories.outbox import OutboxRepository

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health of a component."""

    UP = "UP"
    """Operating within thresholds."""

    DOWN = "DOWN"
    """Outside thresholds, or the outbox could not be queried."""


@dataclass
class HealthIndicator:
    """Health of a single component."""

    name: str
    status: HealthStatus
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_up(self) -> bool:
        return self.status == HealthStatus.UP

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class HealthCheckResult:
    """
    Combined health of the pipeline.

    ``overall_status`` is UP only if every indicator is UP.
    """

    overall_status: HealthStatus
    indicators: list[HealthIndicator] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_healthy(self) -> bool:
        return self.overall_status == HealthStatus.UP

    def get_indicator(self, name: str) -> HealthIndicator | None:
        for indicator in self.indicators:
            if indicator.name == name:
                return indicator
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "status": self.overall_status.value,
            "timestamp": self.timestamp.isoformat(),
        }
        for indicator in self.indicators:
            result[indicator.name] = indicator.status.value
        result["indicators"] = [i.to_dict() for i in self.indicators]
        return result


@dataclass
class HealthThresholds:
    """
    Thresholds for the health predicates, in percent.

    Attributes:
        max_failure_rate: Processor is DOWN at or above this share of
            FAILED plus DEAD_LETTER records
        min_success_rate: Publisher is DOWN below this share of PUBLISHED
            records
        max_dead_letter_rate: Publisher is DOWN at or above this share of
            DEAD_LETTER records
    """

    max_failure_rate: float = 5.0
    min_success_rate: float = 95.0
    max_dead_letter_rate: float = 10.0

    def __post_init__(self) -> None:
        for name in ("max_failure_rate", "min_success_rate", "max_dead_letter_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")


def _determine_overall_status(indicators: list[HealthIndicator]) -> HealthStatus:
    if indicators and all(i.is_up for i in indicators):
        return HealthStatus.UP
    return HealthStatus.DOWN


class OutboxHealthReporter:
    """
    Statistics, health checks and flat metrics for monitoring endpoints.

    Example:
        >>> reporter = OutboxHealthReporter(repository)
        >>> result = await reporter.check()
        >>> status_code = 200 if result.is_healthy else 503
        >>> body = result.to_dict()
    """

    def __init__(
        self,
        repository: OutboxRepository,
        thresholds: HealthThresholds | None = None,
    ) -> None:
        self._repository = repository
        self._thresholds = thresholds or HealthThresholds()

    async def statistics(self) -> OutboxStatistics:
        """Query current outbox counts."""
        return await self._repository.get_statistics()

    async def success_rate(self) -> float:
        """Percentage of records that are PUBLISHED; 0.0 for an empty outbox."""
        return (await self.statistics()).success_rate

    def processor_healthy(self, stats: OutboxStatistics) -> bool:
        if stats.total == 0:
            return True
        return stats.failure_rate < self._thresholds.max_failure_rate

    def publisher_healthy(self, stats: OutboxStatistics) -> bool:
        if stats.total == 0:
            return True
        return (
            stats.success_rate >= self._thresholds.min_success_rate
            and stats.dead_letter_rate < self._thresholds.max_dead_letter_rate
        )

    async def is_processor_healthy(self) -> bool:
        return self.processor_healthy(await self.statistics())

    async def is_publisher_healthy(self) -> bool:
        return self.publisher_healthy(await self.statistics())

    async def check(self) -> HealthCheckResult:
        """
        Evaluate both components.

        A store error does not propagate; both components are reported DOWN
        with the error as their message.
        """
        try:
            stats = await self.statistics()
        except Exception as e:
            logger.error("Outbox health check failed: %s", e, exc_info=True)
            indicators = [
                HealthIndicator(name, HealthStatus.DOWN, f"Statistics unavailable: {e}")
                for name in ("publisher", "processor")
            ]
            return HealthCheckResult(HealthStatus.DOWN, indicators)

        publisher_up = self.publisher_healthy(stats)
        processor_up = self.processor_healthy(stats)
        indicators = [
            HealthIndicator(
                name="publisher",
                status=HealthStatus.UP if publisher_up else HealthStatus.DOWN,
                message=(
                    f"success rate {stats.success_rate:.2f}%, "
                    f"dead letter rate {stats.dead_letter_rate:.2f}%"
                ),
                details={
                    "success_rate": stats.success_rate,
                    "dead_letter_rate": stats.dead_letter_rate,
                },
            ),
            HealthIndicator(
                name="processor",
                status=HealthStatus.UP if processor_up else HealthStatus.DOWN,
                message=f"failure rate {stats.failure_rate:.2f}%",
                details={
                    "failure_rate": stats.failure_rate,
                    "pending": stats.pending,
                    "failed": stats.failed,
                    "dead_letter": stats.dead_letter,
                },
            ),
        ]
        overall = _determine_overall_status(indicators)
        if overall == HealthStatus.DOWN:
            logger.warning(
                "Outbox health is DOWN",
                extra={"publisher_up": publisher_up, "processor_up": processor_up},
            )
        return HealthCheckResult(overall, indicators)

    async def metrics(self) -> dict[str, float | int]:
        """Flat metrics suitable for scraping."""
        stats = await self.statistics()
        return {
            "events_pending": stats.pending,
            "events_processing": stats.processing,
            "events_published": stats.published,
            "events_failed": stats.failed,
            "events_dead_letter": stats.dead_letter,
            "events_success_rate": stats.success_rate,
            "publisher_healthy": 1 if self.publisher_healthy(stats) else 0,
            "processor_healthy": 1 if self.processor_healthy(stats) else 0,
        }

    async def dashboard(self) -> dict[str, Any]:
        stats = await self.statistics()
        return {
            "outbox": stats.to_dict(),
            "success_rate": stats.success_rate,
            "failure_rate": stats.failure_rate,
            "dead_letter_rate": stats.dead_letter_rate,
            "publisher_healthy": self.publisher_healthy(stats),
            "processor_healthy": self.processor_healthy(stats),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def dead_letters(self, limit: int = 100) -> dict[str, Any]:
        """Dead-lettered records as plain dictionaries."""
        stats = await self.statistics()
        records = await self._repository.list_by_status(OutboxStatus.DEAD_LETTER, limit)
        return {
            "count": stats.dead_letter,
            "events": [record.to_dict() for record in records],
        }


__all__ = [
    "HealthStatus",
    "HealthIndicator",
    "HealthCheckResult",
    "HealthThresholds",
    "OutboxHealthReporter",
]
