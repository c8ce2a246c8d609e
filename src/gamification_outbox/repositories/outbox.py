"""
Outbox record store.

The store is the only shared state of the pipeline. Writers insert PENDING
records inside the caller's transaction; processors, the dead-letter
manager and the retention sweeper move records through their lifecycle
with single conditional updates, so concurrent workers coordinate through
the store alone.

Every state transition is a compare-and-swap: the UPDATE names the status
(and, where it matters, the attempt count) it expects to find, and the
caller learns from the affected row count whether it won. A claim stamps
``updated_at`` with the claim time; completing a record requires that stamp
unchanged, so a worker whose claim was taken over cannot complete it.

Implementations:
- PostgreSQLOutboxRepository: SQLAlchemy async connection or engine
- SQLiteOutboxRepository: aiosqlite connection
- InMemoryOutboxRepository: process-local, for tests and development
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from gamification_outbox.exceptions import ClaimLostError
from gamification_outbox.models import (
    OutboxRecord,
    OutboxStatistics,
    OutboxStatus,
    truncate_error,
)
from gamification_outbox.observability import (
    ATTR_ATTEMPT_COUNT,
    ATTR_BATCH_SIZE,
    ATTR_CLAIMED,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_OUTBOX_ID,
    ATTR_OUTBOX_STATUS,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from gamification_outbox.repositories._connection import execute_with_connection

if TYPE_CHECKING:
    import aiosqlite

_COLUMNS = (
    "id, event_id, event_type, topic, message_key, payload, status, "
    "attempt_count, max_attempts, error_message, user_id, "
    "created_at, updated_at, published_at, next_retry_at"
)


@runtime_checkable
class OutboxRepository(Protocol):
    """
    Protocol for outbox record stores.

    Timestamps are always supplied by the caller so the processor's clock
    is the single source of "now" for a cycle.
    """

    async def add_record(self, record: OutboxRecord) -> OutboxRecord:
        """
        Insert a new record.

        Must run inside the same transaction as the business mutation that
        produced the event.

        Args:
            record: The PENDING record to insert

        Returns:
            The stored record
        """
        ...

    async def get_record(self, outbox_id: UUID) -> OutboxRecord | None:
        """Fetch a record by id, or None if it does not exist."""
        ...

    async def event_exists(self, event_id: str) -> bool:
        """True if any record carries ``event_id``."""
        ...

    async def list_claimable(self, limit: int, stale_before: datetime) -> list[OutboxRecord]:
        """
        List records the fast cycle should try to claim, oldest first.

        Includes PENDING records and PROCESSING records whose ``updated_at``
        is older than ``stale_before`` (abandoned by a crashed worker).
        """
        ...

    async def list_retryable(self, now: datetime, limit: int) -> list[OutboxRecord]:
        """List FAILED records with attempts left whose retry time has come."""
        ...

    async def list_by_status(self, status: OutboxStatus, limit: int = 100) -> list[OutboxRecord]:
        """List records in ``status``, oldest first."""
        ...

    async def try_claim(
        self,
        outbox_id: UUID,
        attempt_count: int,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        """
        Atomically move a record to PROCESSING.

        Succeeds only if the record still has ``attempt_count`` attempts and
        is PENDING or FAILED, or is PROCESSING with ``updated_at`` older than
        ``stale_before``. At most one concurrent caller wins.

        A successful claim sets ``updated_at`` to ``now`` and clears
        ``next_retry_at``. ``now`` is the ownership token the caller passes
        back as ``claimed_at`` when completing the record.

        Returns:
            True if this caller owns the record
        """
        ...

    async def mark_published(
        self, outbox_id: UUID, attempt_count: int, claimed_at: datetime, now: datetime
    ) -> bool:
        """
        Record a successful publish.

        Applies only if the record is still PROCESSING with the claimed
        ``attempt_count`` and ``updated_at == claimed_at``, i.e. no other
        worker has reclaimed it since.
        """
        ...

    async def mark_failed(
        self,
        outbox_id: UUID,
        attempt_count: int,
        claimed_at: datetime,
        status: OutboxStatus,
        error_message: str | None,
        next_retry_at: datetime | None,
        now: datetime,
    ) -> bool:
        """
        Record a failed publish, incrementing the attempt count.

        Args:
            outbox_id: Record id
            attempt_count: Attempt count observed when the record was claimed
            claimed_at: Time passed to the ``try_claim`` call that won the record
            status: FAILED or DEAD_LETTER, as decided by the retry policy
            error_message: Failure reason (truncated on write)
            next_retry_at: Retry time for FAILED, None for DEAD_LETTER
            now: Time of the failure

        Returns:
            True if the update applied
        """
        ...

    async def reset_dead_letter(self, outbox_id: UUID, now: datetime) -> bool:
        """Move a DEAD_LETTER record back to PENDING with zero attempts."""
        ...

    async def delete_published_before(self, cutoff: datetime) -> int:
        """Delete PUBLISHED records published before ``cutoff``; returns the count."""
        ...

    async def get_statistics(self) -> OutboxStatistics:
        """Count records per status."""
        ...


async def claim_or_raise(
    repository: OutboxRepository,
    record: OutboxRecord,
    now: datetime,
    stale_before: datetime,
) -> None:
    """
    Claim ``record`` or raise.

    Raises:
        ClaimLostError: If another worker claimed the record first
    """
    claimed = await repository.try_claim(record.id, record.attempt_count, now, stale_before)
    if not claimed:
        raise ClaimLostError(record.id)


class PostgreSQLOutboxRepository:
    """
    PostgreSQL implementation of the outbox record store.

    Pass the ``AsyncConnection`` of the business transaction to make
    ``add_record`` part of that transaction; the repository never commits
    a connection it was given. Pass an ``AsyncEngine`` for the background
    components, which then run each operation in its own transaction.

    Example:
        >>> async with engine.begin() as conn:
        ...     await award_badge(conn, user_id)
        ...     writer = OutboxWriter(PostgreSQLOutboxRepository(conn))
        ...     await writer.store_for_publishing(event)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the repository.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.conn = conn

    @staticmethod
    def _row_to_record(row: Any) -> OutboxRecord:
        return OutboxRecord(
            id=UUID(str(row[0])),
            event_id=row[1],
            event_type=row[2],
            topic=row[3],
            message_key=row[4],
            payload=row[5],
            status=OutboxStatus(row[6]),
            attempt_count=row[7],
            max_attempts=row[8],
            error_message=row[9],
            user_id=row[10],
            created_at=row[11],
            updated_at=row[12],
            published_at=row[13],
            next_retry_at=row[14],
        )

    async def add_record(self, record: OutboxRecord) -> OutboxRecord:
        with self._tracer.span(
            "gamification_outbox.outbox.add",
            {
                ATTR_OUTBOX_ID: str(record.id),
                ATTR_EVENT_ID: record.event_id,
                ATTR_EVENT_TYPE: record.event_type,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            query = text(f"""
                INSERT INTO event_outbox ({_COLUMNS})
                VALUES (:id, :event_id, :event_type, :topic, :message_key, :payload,
                        :status, :attempt_count, :max_attempts, :error_message, :user_id,
                        :created_at, :updated_at, :published_at, :next_retry_at)
            """)
            params = {
                "id": record.id,
                "event_id": record.event_id,
                "event_type": record.event_type,
                "topic": record.topic,
                "message_key": record.message_key,
                "payload": record.payload,
                "status": record.status.value,
                "attempt_count": record.attempt_count,
                "max_attempts": record.max_attempts,
                "error_message": truncate_error(record.error_message),
                "user_id": record.user_id,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
                "published_at": record.published_at,
                "next_retry_at": record.next_retry_at,
            }
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(query, params)
            return record

    async def get_record(self, outbox_id: UUID) -> OutboxRecord | None:
        with self._tracer.span(
            "gamification_outbox.outbox.get",
            {ATTR_OUTBOX_ID: str(outbox_id), ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"SELECT {_COLUMNS} FROM event_outbox WHERE id = :id")
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query, {"id": outbox_id})
                row = result.fetchone()
            return self._row_to_record(row) if row else None

    async def event_exists(self, event_id: str) -> bool:
        with self._tracer.span(
            "gamification_outbox.outbox.event_exists",
            {ATTR_EVENT_ID: event_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text("SELECT 1 FROM event_outbox WHERE event_id = :event_id LIMIT 1")
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query, {"event_id": event_id})
                return result.fetchone() is not None

    async def _select(
        self, span_name: str, where: str, params: dict[str, Any]
    ) -> list[OutboxRecord]:
        with self._tracer.span(
            span_name,
            {ATTR_BATCH_SIZE: params["limit"], ATTR_DB_SYSTEM: "postgresql"},
        ) as span:
            query = text(f"""
                SELECT {_COLUMNS}
                FROM event_outbox
                WHERE {where}
                ORDER BY created_at ASC
                LIMIT :limit
            """)
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query, params)
                rows = result.fetchall()
            records = [self._row_to_record(row) for row in rows]
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, len(records))
            return records

    async def list_claimable(self, limit: int, stale_before: datetime) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_claimable",
            "status = 'PENDING' OR (status = 'PROCESSING' AND updated_at < :stale_before)",
            {"limit": limit, "stale_before": stale_before},
        )

    async def list_retryable(self, now: datetime, limit: int) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_retryable",
            "status = 'FAILED' AND attempt_count < max_attempts "
            "AND (next_retry_at IS NULL OR next_retry_at <= :now)",
            {"limit": limit, "now": now},
        )

    async def list_by_status(self, status: OutboxStatus, limit: int = 100) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_by_status",
            "status = :status",
            {"limit": limit, "status": status.value},
        )

    async def _update(
        self, span_name: str, outbox_id: UUID, sql: str, params: dict[str, Any]
    ) -> int:
        with self._tracer.span(
            span_name,
            {
                ATTR_OUTBOX_ID: str(outbox_id),
                ATTR_DB_OPERATION: "UPDATE",
                ATTR_DB_SYSTEM: "postgresql",
            },
        ) as span:
            async with execute_with_connection(self.conn, transactional=True) as conn:
                result = await conn.execute(text(sql), {"id": outbox_id, **params})
            updated = result.rowcount or 0
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, updated)
            return updated

    async def try_claim(
        self,
        outbox_id: UUID,
        attempt_count: int,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        updated = await self._update(
            "gamification_outbox.outbox.try_claim",
            outbox_id,
            """
            UPDATE event_outbox
            SET status = 'PROCESSING',
                next_retry_at = NULL,
                updated_at = :now
            WHERE id = :id
              AND attempt_count = :attempt_count
              AND (status IN ('PENDING', 'FAILED')
                   OR (status = 'PROCESSING' AND updated_at < :stale_before))
            """,
            {"attempt_count": attempt_count, "now": now, "stale_before": stale_before},
        )
        return updated == 1

    async def mark_published(
        self, outbox_id: UUID, attempt_count: int, claimed_at: datetime, now: datetime
    ) -> bool:
        updated = await self._update(
            "gamification_outbox.outbox.mark_published",
            outbox_id,
            """
            UPDATE event_outbox
            SET status = 'PUBLISHED',
                published_at = :now,
                updated_at = :now,
                error_message = NULL,
                next_retry_at = NULL
            WHERE id = :id
              AND status = 'PROCESSING'
              AND attempt_count = :attempt_count
              AND updated_at = :claimed_at
            """,
            {"attempt_count": attempt_count, "claimed_at": claimed_at, "now": now},
        )
        return updated == 1

    async def mark_failed(
        self,
        outbox_id: UUID,
        attempt_count: int,
        claimed_at: datetime,
        status: OutboxStatus,
        error_message: str | None,
        next_retry_at: datetime | None,
        now: datetime,
    ) -> bool:
        updated = await self._update(
            "gamification_outbox.outbox.mark_failed",
            outbox_id,
            """
            UPDATE event_outbox
            SET status = :status,
                attempt_count = attempt_count + 1,
                error_message = :error_message,
                next_retry_at = :next_retry_at,
                updated_at = :now
            WHERE id = :id
              AND status = 'PROCESSING'
              AND attempt_count = :attempt_count
              AND updated_at = :claimed_at
            """,
            {
                "status": status.value,
                "attempt_count": attempt_count,
                "claimed_at": claimed_at,
                "error_message": truncate_error(error_message),
                "next_retry_at": next_retry_at,
                "now": now,
            },
        )
        return updated == 1

    async def reset_dead_letter(self, outbox_id: UUID, now: datetime) -> bool:
        updated = await self._update(
            "gamification_outbox.outbox.reset_dead_letter",
            outbox_id,
            """
            UPDATE event_outbox
            SET status = 'PENDING',
                attempt_count = 0,
                error_message = NULL,
                next_retry_at = NULL,
                updated_at = :now
            WHERE id = :id
              AND status = 'DEAD_LETTER'
            """,
            {"now": now},
        )
        return updated == 1

    async def delete_published_before(self, cutoff: datetime) -> int:
        with self._tracer.span(
            "gamification_outbox.outbox.delete_published",
            {ATTR_DB_OPERATION: "DELETE", ATTR_DB_SYSTEM: "postgresql"},
        ) as span:
            query = text("""
                DELETE FROM event_outbox
                WHERE status = 'PUBLISHED'
                  AND published_at < :cutoff
            """)
            async with execute_with_connection(self.conn, transactional=True) as conn:
                result = await conn.execute(query, {"cutoff": cutoff})
            deleted = result.rowcount or 0
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, deleted)
            return deleted

    async def get_statistics(self) -> OutboxStatistics:
        with self._tracer.span(
            "gamification_outbox.outbox.get_statistics",
            {ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text("""
                SELECT
                    COUNT(*) FILTER (WHERE status = 'PENDING') AS pending,
                    COUNT(*) FILTER (WHERE status = 'PROCESSING') AS processing,
                    COUNT(*) FILTER (WHERE status = 'PUBLISHED') AS published,
                    COUNT(*) FILTER (WHERE status = 'FAILED') AS failed,
                    COUNT(*) FILTER (WHERE status = 'DEAD_LETTER') AS dead_letter,
                    MIN(created_at) FILTER (WHERE status = 'PENDING') AS oldest_pending
                FROM event_outbox
            """)
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query)
                row = result.fetchone()
            if row is None:
                return OutboxStatistics()
            return OutboxStatistics(
                pending=row[0] or 0,
                processing=row[1] or 0,
                published=row[2] or 0,
                failed=row[3] or 0,
                dead_letter=row[4] or 0,
                oldest_pending=row[5],
            )


class InMemoryOutboxRepository:
    """
    In-memory implementation of the outbox record store.

    Every operation holds a single ``asyncio.Lock``, which makes each
    conditional transition atomic within the process. Records are copied on
    the way in and out so callers never share state with the store.

    Example:
        >>> repo = InMemoryOutboxRepository()
        >>> await repo.add_record(record)
        >>> await repo.try_claim(record.id, 0, now, stale_before)
        True
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = False,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._records: dict[UUID, OutboxRecord] = {}
        self._lock = asyncio.Lock()

    def _sorted(self, predicate: Any, limit: int) -> list[OutboxRecord]:
        matches = sorted(
            (r for r in self._records.values() if predicate(r)),
            key=lambda r: r.created_at,
        )
        return [replace(r) for r in matches[:limit]]

    @staticmethod
    def _owned(record: OutboxRecord | None, attempt_count: int, claimed_at: datetime) -> bool:
        return (
            record is not None
            and record.status == OutboxStatus.PROCESSING
            and record.attempt_count == attempt_count
            and record.updated_at == claimed_at
        )

    async def add_record(self, record: OutboxRecord) -> OutboxRecord:
        with self._tracer.span(
            "gamification_outbox.outbox.add",
            {
                ATTR_OUTBOX_ID: str(record.id),
                ATTR_EVENT_ID: record.event_id,
                ATTR_EVENT_TYPE: record.event_type,
                ATTR_DB_SYSTEM: "memory",
            },
        ):
            async with self._lock:
                stored = replace(record, error_message=truncate_error(record.error_message))
                self._records[record.id] = stored
                return replace(stored)

    async def get_record(self, outbox_id: UUID) -> OutboxRecord | None:
        async with self._lock:
            record = self._records.get(outbox_id)
            return replace(record) if record else None

    async def event_exists(self, event_id: str) -> bool:
        async with self._lock:
            return any(r.event_id == event_id for r in self._records.values())

    async def list_claimable(self, limit: int, stale_before: datetime) -> list[OutboxRecord]:
        async with self._lock:
            return self._sorted(
                lambda r: r.status == OutboxStatus.PENDING
                or (r.status == OutboxStatus.PROCESSING and r.updated_at < stale_before),
                limit,
            )

    async def list_retryable(self, now: datetime, limit: int) -> list[OutboxRecord]:
        async with self._lock:
            return self._sorted(lambda r: r.can_retry(now), limit)

    async def list_by_status(self, status: OutboxStatus, limit: int = 100) -> list[OutboxRecord]:
        async with self._lock:
            return self._sorted(lambda r: r.status == status, limit)

    async def try_claim(
        self,
        outbox_id: UUID,
        attempt_count: int,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        with self._tracer.span(
            "gamification_outbox.outbox.try_claim",
            {ATTR_OUTBOX_ID: str(outbox_id), ATTR_DB_SYSTEM: "memory"},
        ) as span:
            async with self._lock:
                record = self._records.get(outbox_id)
                claimable = record is not None and record.attempt_count == attempt_count and (
                    record.status in (OutboxStatus.PENDING, OutboxStatus.FAILED)
                    or (
                        record.status == OutboxStatus.PROCESSING
                        and record.updated_at < stale_before
                    )
                )
                if claimable:
                    record.status = OutboxStatus.PROCESSING
                    record.next_retry_at = None
                    record.updated_at = now
            if span:
                span.set_attribute(ATTR_CLAIMED, claimable)
            return claimable

    async def mark_published(
        self, outbox_id: UUID, attempt_count: int, claimed_at: datetime, now: datetime
    ) -> bool:
        async with self._lock:
            record = self._records.get(outbox_id)
            if not self._owned(record, attempt_count, claimed_at):
                return False
            record.status = OutboxStatus.PUBLISHED
            record.published_at = now
            record.updated_at = now
            record.error_message = None
            record.next_retry_at = None
            return True

    async def mark_failed(
        self,
        outbox_id: UUID,
        attempt_count: int,
        claimed_at: datetime,
        status: OutboxStatus,
        error_message: str | None,
        next_retry_at: datetime | None,
        now: datetime,
    ) -> bool:
        with self._tracer.span(
            "gamification_outbox.outbox.mark_failed",
            {
                ATTR_OUTBOX_ID: str(outbox_id),
                ATTR_OUTBOX_STATUS: status.value,
                ATTR_ATTEMPT_COUNT: attempt_count + 1,
                ATTR_DB_SYSTEM: "memory",
            },
        ):
            async with self._lock:
                record = self._records.get(outbox_id)
                if not self._owned(record, attempt_count, claimed_at):
                    return False
                record.status = status
                record.attempt_count += 1
                record.error_message = truncate_error(error_message)
                record.next_retry_at = next_retry_at
                record.updated_at = now
                return True

    async def reset_dead_letter(self, outbox_id: UUID, now: datetime) -> bool:
        async with self._lock:
            record = self._records.get(outbox_id)
            if record is None or record.status != OutboxStatus.DEAD_LETTER:
                return False
            record.status = OutboxStatus.PENDING
            record.attempt_count = 0
            record.error_message = None
            record.next_retry_at = None
            record.updated_at = now
            return True

    async def delete_published_before(self, cutoff: datetime) -> int:
        async with self._lock:
            expired = [
                r.id
                for r in self._records.values()
                if r.status == OutboxStatus.PUBLISHED
                and r.published_at is not None
                and r.published_at < cutoff
            ]
            for outbox_id in expired:
                del self._records[outbox_id]
            return len(expired)

    async def get_statistics(self) -> OutboxStatistics:
        async with self._lock:
            counts: dict[OutboxStatus, int] = {}
            for record in self._records.values():
                counts[record.status] = counts.get(record.status, 0) + 1
            pending = [
                r.created_at for r in self._records.values() if r.status == OutboxStatus.PENDING
            ]
            return OutboxStatistics.from_counts(counts, min(pending) if pending else None)

    async def clear(self) -> None:
        """Clear all records. Useful for test setup/teardown."""
        async with self._lock:
            self._records.clear()


class SQLiteOutboxRepository:
    """
    SQLite implementation of the outbox record store.

    SQLite-specific adaptations:
    - UUIDs stored as TEXT (36 characters, hyphenated format)
    - Timestamps stored as fixed-width UTC ISO 8601 TEXT so that string
      comparison orders them chronologically
    - Uses ``?`` positional parameters

    By default every write commits. Pass ``autocommit=False`` when the
    connection is shared with business writes and the caller commits.

    Example:
        >>> async with aiosqlite.connect("gamification.db") as db:
        ...     repo = SQLiteOutboxRepository(db)
        ...     processor = OutboxProcessor(repo, publisher)
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        autocommit: bool = True,
    ) -> None:
        """
        Initialize the repository.

        Args:
            connection: aiosqlite database connection
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
            autocommit: Commit after each write (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._connection = connection
        self._autocommit = autocommit

    @staticmethod
    def _format_datetime(value: datetime | None) -> str | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")

    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        if value is None:
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    def _row_to_record(self, row: Any) -> OutboxRecord:
        return OutboxRecord(
            id=UUID(row[0]),
            event_id=row[1],
            event_type=row[2],
            topic=row[3],
            message_key=row[4],
            payload=row[5],
            status=OutboxStatus(row[6]),
            attempt_count=row[7],
            max_attempts=row[8],
            error_message=row[9],
            user_id=row[10],
            created_at=self._parse_datetime(row[11]) or datetime.now(UTC),
            updated_at=self._parse_datetime(row[12]) or datetime.now(UTC),
            published_at=self._parse_datetime(row[13]),
            next_retry_at=self._parse_datetime(row[14]),
        )

    async def _write(self, sql: str, params: tuple[Any, ...]) -> int:
        cursor = await self._connection.execute(sql, params)
        if self._autocommit:
            await self._connection.commit()
        return cursor.rowcount if cursor.rowcount is not None else 0

    async def add_record(self, record: OutboxRecord) -> OutboxRecord:
        with self._tracer.span(
            "gamification_outbox.outbox.add",
            {
                ATTR_OUTBOX_ID: str(record.id),
                ATTR_EVENT_ID: record.event_id,
                ATTR_EVENT_TYPE: record.event_type,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            await self._write(
                f"""
                INSERT INTO event_outbox ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(record.id),
                    record.event_id,
                    record.event_type,
                    record.topic,
                    record.message_key,
                    record.payload,
                    record.status.value,
                    record.attempt_count,
                    record.max_attempts,
                    truncate_error(record.error_message),
                    record.user_id,
                    self._format_datetime(record.created_at),
                    self._format_datetime(record.updated_at),
                    self._format_datetime(record.published_at),
                    self._format_datetime(record.next_retry_at),
                ),
            )
            return record

    async def get_record(self, outbox_id: UUID) -> OutboxRecord | None:
        cursor = await self._connection.execute(
            f"SELECT {_COLUMNS} FROM event_outbox WHERE id = ?",
            (str(outbox_id),),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def event_exists(self, event_id: str) -> bool:
        cursor = await self._connection.execute(
            "SELECT 1 FROM event_outbox WHERE event_id = ? LIMIT 1",
            (event_id,),
        )
        return await cursor.fetchone() is not None

    async def _select(
        self, span_name: str, where: str, params: tuple[Any, ...], limit: int
    ) -> list[OutboxRecord]:
        with self._tracer.span(
            span_name,
            {ATTR_BATCH_SIZE: limit, ATTR_DB_SYSTEM: "sqlite"},
        ) as span:
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS}
                FROM event_outbox
                WHERE {where}
                ORDER BY created_at ASC
                LIMIT ?
                """,
                (*params, limit),
            )
            rows = await cursor.fetchall()
            records = [self._row_to_record(row) for row in rows]
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, len(records))
            return records

    async def list_claimable(self, limit: int, stale_before: datetime) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_claimable",
            "status = 'PENDING' OR (status = 'PROCESSING' AND updated_at < ?)",
            (self._format_datetime(stale_before),),
            limit,
        )

    async def list_retryable(self, now: datetime, limit: int) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_retryable",
            "status = 'FAILED' AND attempt_count < max_attempts "
            "AND (next_retry_at IS NULL OR next_retry_at <= ?)",
            (self._format_datetime(now),),
            limit,
        )

    async def list_by_status(self, status: OutboxStatus, limit: int = 100) -> list[OutboxRecord]:
        return await self._select(
            "gamification_outbox.outbox.list_by_status",
            "status = ?",
            (status.value,),
            limit,
        )

    async def try_claim(
        self,
        outbox_id: UUID,
        attempt_count: int,
        now: datetime,
        stale_before: datetime,
    ) -> bool:
        with self._tracer.span(
            "gamification_outbox.outbox.try_claim",
            {ATTR_OUTBOX_ID: str(outbox_id), ATTR_DB_SYSTEM: "sqlite"},
        ) as span:
            updated = await self._write(
                """
                UPDATE event_outbox
                SET status = 'PROCESSING',
                    next_retry_at = NULL,
                    updated_at = ?
                WHERE id = ?
                  AND attempt_count = ?
                  AND (status IN ('PENDING', 'FAILED')
                       OR (status = 'PROCESSING' AND updated_at < ?))
                """,
                (
                    self._format_datetime(now),
                    str(outbox_id),
                    attempt_count,
                    self._format_datetime(stale_before),
                ),
            )
            if span:
                span.set_attribute(ATTR_CLAIMED, updated == 1)
            return updated == 1

    async def mark_published(
        self, outbox_id: UUID, attempt_count: int, claimed_at: datetime, now: datetime
    ) -> bool:
        stamp = self._format_datetime(now)
        updated = await self._write(
            """
            UPDATE event_outbox
            SET status = 'PUBLISHED',
                published_at = ?,
                updated_at = ?,
                error_message = NULL,
                next_retry_at = NULL
            WHERE id = ?
              AND status = 'PROCESSING'
              AND attempt_count = ?
              AND updated_at = ?
            """,
            (stamp, stamp, str(outbox_id), attempt_count, self._format_datetime(claimed_at)),
        )
        return updated == 1

    async def mark_failed(
        self,
        outbox_id: UUID,
        attempt_count: int,
        claimed_at: datetime,
        status: OutboxStatus,
        error_message: str | None,
        next_retry_at: datetime | None,
        now: datetime,
    ) -> bool:
        with self._tracer.span(
            "gamification_outbox.outbox.mark_failed",
            {
                ATTR_OUTBOX_ID: str(outbox_id),
                ATTR_OUTBOX_STATUS: status.value,
                ATTR_ATTEMPT_COUNT: attempt_count + 1,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            updated = await self._write(
                """
                UPDATE event_outbox
                SET status = ?,
                    attempt_count = attempt_count + 1,
                    error_message = ?,
                    next_retry_at = ?,
                    updated_at = ?
                WHERE id = ?
                  AND status = 'PROCESSING'
                  AND attempt_count = ?
                  AND updated_at = ?
                """,
                (
                    status.value,
                    truncate_error(error_message),
                    self._format_datetime(next_retry_at),
                    self._format_datetime(now),
                    str(outbox_id),
                    attempt_count,
                    self._format_datetime(claimed_at),
                ),
            )
            return updated == 1

    async def reset_dead_letter(self, outbox_id: UUID, now: datetime) -> bool:
        updated = await self._write(
            """
            UPDATE event_outbox
            SET status = 'PENDING',
                attempt_count = 0,
                error_message = NULL,
                next_retry_at = NULL,
                updated_at = ?
            WHERE id = ?
              AND status = 'DEAD_LETTER'
            """,
            (self._format_datetime(now), str(outbox_id)),
        )
        return updated == 1

    async def delete_published_before(self, cutoff: datetime) -> int:
        with self._tracer.span(
            "gamification_outbox.outbox.delete_published",
            {ATTR_DB_OPERATION: "DELETE", ATTR_DB_SYSTEM: "sqlite"},
        ) as span:
            deleted = await self._write(
                """
                DELETE FROM event_outbox
                WHERE status = 'PUBLISHED'
                  AND published_at < ?
                """,
                (self._format_datetime(cutoff),),
            )
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, deleted)
            return deleted

    async def get_statistics(self) -> OutboxStatistics:
        with self._tracer.span(
            "gamification_outbox.outbox.get_statistics",
            {ATTR_DB_SYSTEM: "sqlite"},
        ):
            # SQLite doesn't support FILTER on older versions, use CASE WHEN instead
            cursor = await self._connection.execute(
                """
                SELECT
                    SUM(CASE WHEN status = 'PENDING' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'PROCESSING' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'PUBLISHED' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'FAILED' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'DEAD_LETTER' THEN 1 ELSE 0 END),
                    MIN(CASE WHEN status = 'PENDING' THEN created_at END)
                FROM event_outbox
                """
            )
            row = await cursor.fetchone()
            if row is None:
                return OutboxStatistics()
            return OutboxStatistics(
                pending=row[0] or 0,
                processing=row[1] or 0,
                published=row[2] or 0,
                failed=row[3] or 0,
                dead_letter=row[4] or 0,
                oldest_pending=self._parse_datetime(row[5]),
            )


__all__ = [
    "OutboxRepository",
    "claim_or_raise",
    "PostgreSQLOutboxRepository",
    "InMemoryOutboxRepository",
    "SQLiteOutboxRepository",
]
