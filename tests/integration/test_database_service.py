"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test the async engine and session factory against a real database
(SQLite by default, PostgreSQL with FUEL_TEST_POSTGRES=1).

Test Coverage
-------------
- Connection and health check
- Transaction commit and rollback
- Metrics bookkeeping
- Error handling before initialization

Testing Strategy
----------------
- Integration tests (real database, no mocks)
- Each test gets a freshly created schema
"""

import pytest
from sqlalchemy import func, select, text

from fuelpoints.core.database import DatabaseService
from fuelpoints.core.exceptions import DatabaseInitializationError, DatabaseNotInitializedError
from fuelpoints.modules.ledger.models import PlayerRow


# ============================================================================
# CONNECTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    async def test_database_connection(self, database):
        # Act
        async with database.get_session() as session:
            result = await session.execute(text("SELECT 1 AS value"))
            row = result.fetchone()

        # Assert
        assert row is not None
        assert row.value == 1

    async def test_health_check(self, database):
        assert await database.health_check() is True
        assert database.is_healthy()
        assert database.is_initialized()

    async def test_second_initialize_is_noop(self, database, database_url):
        await database.initialize(database_url)

        assert database.is_initialized()

    async def test_fuel_tables_created(self, database):
        async with database.get_session() as session:
            count = await session.scalar(select(func.count()).select_from(PlayerRow))

        assert count == 0


# ============================================================================
# TRANSACTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestTransactions:
    async def test_transaction_commits(self, database):
        # Arrange / Act
        async with database.get_transaction() as session:
            session.add(PlayerRow(player_id="p1"))

        # Assert
        async with database.get_session() as session:
            row = await session.scalar(select(PlayerRow).where(PlayerRow.player_id == "p1"))
        assert row is not None
        assert row.fuel_points == 0
        assert row.level == 1

    async def test_transaction_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            async with database.get_transaction() as session:
                session.add(PlayerRow(player_id="p1"))
                await session.flush()
                raise RuntimeError("abort")

        async with database.get_session() as session:
            row = await session.scalar(select(PlayerRow).where(PlayerRow.player_id == "p1"))
        assert row is None

    async def test_metrics_track_commits_and_rollbacks(self, database):
        async with database.get_transaction() as session:
            session.add(PlayerRow(player_id="p1"))
        with pytest.raises(RuntimeError):
            async with database.get_transaction():
                raise RuntimeError("abort")

        summary = database.get_metrics_summary()

        assert summary["total_commits"] >= 1
        assert summary["total_rollbacks"] >= 1
        assert summary["active_sessions"] == 0


# ============================================================================
# ERROR HANDLING TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestUninitialized:
    async def test_session_before_initialize_raises(self):
        await DatabaseService.shutdown()

        with pytest.raises(DatabaseNotInitializedError):
            async with DatabaseService.get_session():
                pass

    async def test_health_check_without_engine(self):
        await DatabaseService.shutdown()

        assert await DatabaseService.health_check() is False

    async def test_unreachable_database_fails_after_retries(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path}/missing/dir/fuel.db"

        with pytest.raises(DatabaseInitializationError):
            await DatabaseService.initialize(url, max_retries=2, retry_delay=0)

        assert not DatabaseService.is_initialized()
