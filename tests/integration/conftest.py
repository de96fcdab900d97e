"""
Database fixtures for integration tests.

SQLite (aiosqlite, in memory) runs by default. Set FUEL_TEST_POSTGRES=1 to
run the same tests against PostgreSQL in a testcontainers container.
"""

from __future__ import annotations

import os
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio

from fuelpoints.core.database import Base, DatabaseService
from fuelpoints.modules.ledger import SqlCompletionStore

USE_POSTGRES = os.getenv("FUEL_TEST_POSTGRES", "0") == "1"
SQLITE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def database_url() -> Generator[str, None, None]:
    """
    Async SQLAlchemy URL for the test database.

    Scope: session (one container per run)
    """
    if not USE_POSTGRES:
        yield SQLITE_URL
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(image="postgres:17-alpine", driver="asyncpg") as postgres:
        yield postgres.get_connection_url()


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialized DatabaseService with a fresh schema.

    Scope: function
    Cleanup: drops every table and disposes of the engine
    """
    await DatabaseService.initialize(database_url, echo=False, max_retries=1)
    await DatabaseService.create_all(Base.metadata)
    yield DatabaseService
    await DatabaseService.drop_all(Base.metadata)
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def sql_store(database, clock) -> SqlCompletionStore:
    return SqlCompletionStore(clock, database=database)
