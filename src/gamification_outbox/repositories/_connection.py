"""
Connection handling for the SQLAlchemy-backed store.

``execute_with_connection`` is what lets the outbox write share the
business transaction: an ``AsyncConnection`` is used as-is (its owner
commits or rolls back), while an ``AsyncEngine`` gets a fresh connection
or transaction per operation.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection ready for ``execute()``.

    Args:
        conn: Database connection or engine
        transactional: For an engine, run inside ``begin()`` (commit on
            success) rather than a bare ``connect()``. Ignored for a
            connection.

    Yields:
        AsyncConnection
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        # Caller owns the transaction
        yield conn
