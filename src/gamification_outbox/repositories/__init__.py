"""Outbox record store implementations."""

from gamification_outbox.repositories.outbox import (
    InMemoryOutboxRepository,
    OutboxRepository,
    PostgreSQLOutboxRepository,
    SQLiteOutboxRepository,
    claim_or_raise,
)

__all__ = [
    "OutboxRepository",
    "claim_or_raise",
    "InMemoryOutboxRepository",
    "PostgreSQLOutboxRepository",
    "SQLiteOutboxRepository",
]
