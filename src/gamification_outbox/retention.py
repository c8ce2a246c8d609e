"""Retention sweeping for published outbox records."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from gamification_outbox.observability import (
    ATTR_RECORD_COUNT,
    ATTR_RETENTION_DAYS,
    Tracer,
    create_tracer,
)
from gamification_outbox.repositories.outbox import OutboxRepository

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=7)


class RetentionSweeper:
    """
    Deletes PUBLISHED records once they are older than the retention window.

    Records in any other status are never touched, so failed and
    dead-lettered events stay available for investigation.
    """

    def __init__(
        self,
        repository: OutboxRepository,
        retention: timedelta = DEFAULT_RETENTION,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if retention < timedelta(0):
            raise ValueError(f"retention must not be negative, got {retention}")
        self._repository = repository
        self._retention = retention
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._clock = clock

    async def purge_old_published(self, retention: timedelta | None = None) -> int:
        """
        Delete PUBLISHED records whose ``published_at`` is older than ``now - retention``.

        Args:
            retention: Override for the configured retention window

        Returns:
            Number of records deleted

        Raises:
            ValueError: If ``retention`` is negative
        """
        window = self._retention if retention is None else retention
        if window < timedelta(0):
            raise ValueError(f"retention must not be negative, got {window}")

        with self._tracer.span(
            "gamification_outbox.retention.purge",
            {ATTR_RETENTION_DAYS: window.total_seconds() / 86400},
        ) as span:
            cutoff = self._clock() - window
            deleted = await self._repository.delete_published_before(cutoff)
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, deleted)

        if deleted:
            logger.info(
                "Purged %d published outbox records older than %s",
                deleted,
                cutoff.isoformat(),
                extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
            )
        return deleted


__all__ = [
    "DEFAULT_RETENTION",
    "RetentionSweeper",
]
