"""
Shared pytest fixtures for integration tests.

Provides a PostgreSQL container via testcontainers and a fresh engine with
the outbox schema for each test. If testcontainers or Docker is not
available, the tests are skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from gamification_outbox.migrations import get_schema, split_statements

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    import subprocess

    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()

skip_if_no_postgres_infra = pytest.mark.skipif(
    not (TESTCONTAINERS_AVAILABLE and DOCKER_AVAILABLE),
    reason="PostgreSQL test infrastructure not available",
)


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Provide a PostgreSQL container shared by the whole session.
    """
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("PostgreSQL testcontainer not available")

    container = PostgresContainer("postgres:15")
    container.start()

    yield container

    container.stop()


@pytest.fixture(scope="session")
def postgres_connection_url(postgres_container: Any) -> str:
    """Get PostgreSQL connection URL from container."""
    # testcontainers returns psycopg2 URL, convert to asyncpg
    url = postgres_container.get_connection_url()
    return url.replace("postgresql://", "postgresql+asyncpg://").replace("psycopg2", "asyncpg")


@pytest_asyncio.fixture
async def postgres_engine(postgres_connection_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """
    Provide an engine with an empty ``event_outbox`` table.

    The engine is created per test so it is bound to the test's event loop.
    """
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(postgres_connection_url, echo=False, pool_size=5)

    # One statement per execute for asyncpg
    async with engine.begin() as conn:
        for statement in split_statements(get_schema("postgresql")):
            await conn.execute(text(statement))
        await conn.execute(text("TRUNCATE TABLE event_outbox"))

    yield engine

    await engine.dispose()
