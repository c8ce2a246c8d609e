"""
Schema for the ``event_outbox`` table.

Supported backends:
    - postgresql (default)
    - sqlite

Usage:
    from gamification_outbox.migrations import get_schema

    async with engine.begin() as conn:
        for statement in split_statements(get_schema()):
            await conn.execute(text(statement))

    # SQLite
    await db.executescript(get_schema("sqlite"))
"""

from pathlib import Path
from typing import Literal

BackendName = Literal["postgresql", "sqlite"]

_SCHEMAS_DIR = Path(__file__).parent / "schemas"


def get_schema(backend: BackendName = "postgresql") -> str:
    """
    Load the outbox DDL for a backend.

    Args:
        backend: The database backend

    Returns:
        SQL script creating the table and its indexes

    Raises:
        ValueError: If the backend is not supported
    """
    path = _SCHEMAS_DIR / f"{backend}.sql"
    if not path.exists():
        raise ValueError(f"Unsupported backend: {backend!r}. Use 'postgresql' or 'sqlite'.")
    return path.read_text()


def split_statements(sql: str) -> list[str]:
    """
    Split a schema script into individual statements.

    Drivers such as asyncpg execute one statement per call. Comment lines
    are dropped; the schemas contain no semicolons inside literals.
    """
    lines = [line for line in sql.splitlines() if not line.lstrip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


__all__ = [
    "BackendName",
    "get_schema",
    "split_statements",
]
