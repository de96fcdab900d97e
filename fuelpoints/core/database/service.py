"""
Centralized database connection and session management.

Production Features:
- Connection and transaction metrics
- Transaction context manager with automatic commit and rollback
- Connection pooling with pre-ping (StaticPool for in-memory SQLite)
- Retry logic on initialization
- Slow session logging
- Graceful shutdown with metrics summary
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy import MetaData, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from fuelpoints.core.config import Config
from fuelpoints.core.exceptions import DatabaseInitializationError, DatabaseNotInitializedError
from fuelpoints.core.logging import get_logger

logger = get_logger(__name__)

SLOW_SESSION_SECONDS = 5.0


@dataclass
class ConnectionMetrics:
    """Metrics for database connection monitoring."""

    total_sessions_created: int = 0
    active_sessions: int = 0
    total_transactions: int = 0
    total_rollbacks: int = 0
    total_commits: int = 0
    failed_connections: int = 0
    slow_sessions: int = 0
    session_times: List[float] = field(default_factory=list)
    last_health_check: Optional[datetime] = None
    health_check_failures: int = 0

    def record_session_start(self) -> None:
        self.total_sessions_created += 1
        self.active_sessions += 1

    def record_session_end(self, duration: float) -> None:
        self.active_sessions = max(0, self.active_sessions - 1)
        self.session_times.append(duration)
        if duration > SLOW_SESSION_SECONDS:
            self.slow_sessions += 1
        if len(self.session_times) > 1000:
            self.session_times = self.session_times[-1000:]

    def record_health_check(self, success: bool) -> None:
        self.last_health_check = datetime.now(timezone.utc)
        if not success:
            self.health_check_failures += 1

    def get_summary(self) -> Dict[str, Any]:
        average = (
            sum(self.session_times) / len(self.session_times) if self.session_times else 0.0
        )
        return {
            "total_sessions": self.total_sessions_created,
            "active_sessions": self.active_sessions,
            "total_commits": self.total_commits,
            "total_rollbacks": self.total_rollbacks,
            "rollback_rate": self.total_rollbacks / max(1, self.total_transactions),
            "failed_connections": self.failed_connections,
            "slow_sessions": self.slow_sessions,
            "avg_session_time_ms": average * 1000,
            "last_health_check": (
                self.last_health_check.isoformat() if self.last_health_check else None
            ),
            "health_check_failures": self.health_check_failures,
        }


class DatabaseService:
    """
    Async engine and session factory shared by the SQL completion store.

    Usage:
        >>> await DatabaseService.initialize("sqlite+aiosqlite:///:memory:")
        >>> await DatabaseService.create_all(Base.metadata)
        >>> async with DatabaseService.get_transaction() as session:
        ...     session.add(row)
        ...     # Auto-commits here
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker] = None
    _metrics: Optional[ConnectionMetrics] = None
    _is_healthy: bool = False
    _url: Optional[str] = None

    _health_check_query: str = "SELECT 1"
    _statement_timeout_ms: int = 30000
    _enable_metrics: bool = True

    @classmethod
    async def initialize(
        cls,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        """
        Create the engine and session factory.

        Args:
            url: SQLAlchemy async URL (default: Config.DATABASE_URL)
            echo: Echo SQL statements (default: Config.DATABASE_ECHO)
            max_retries: Number of connection attempts before failing
            retry_delay: Seconds to wait between attempts

        Raises:
            DatabaseInitializationError: If every attempt fails
        """
        if cls._engine is not None:
            logger.warning("DatabaseService already initialized")
            return

        url = url or Config.DATABASE_URL
        echo = Config.DATABASE_ECHO if echo is None else echo
        safe_url = make_url(url).render_as_string(hide_password=True)

        if cls._enable_metrics:
            cls._metrics = ConnectionMetrics()

        last_error: Optional[Exception] = None
        for attempt in range(1, max_retries + 1):
            try:
                cls._engine = cls._create_engine(url, echo)
                cls._session_factory = async_sessionmaker(
                    cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )
                cls._url = url

                if not await cls.health_check():
                    raise RuntimeError("initial health check failed")

                logger.info(
                    "DatabaseService initialized",
                    extra={"url": safe_url, "attempt": attempt},
                )
                return

            except Exception as e:
                last_error = e
                if cls._metrics:
                    cls._metrics.failed_connections += 1
                if cls._engine is not None:
                    await cls._engine.dispose()
                cls._engine = None
                cls._session_factory = None

                logger.error(
                    f"Failed to initialize DatabaseService (attempt {attempt}/{max_retries}): {e}",
                    extra={"url": safe_url},
                )
                if attempt < max_retries:
                    await asyncio.sleep(retry_delay)

        logger.critical("DatabaseService initialization failed after all retries")
        raise DatabaseInitializationError(safe_url, last_error)

    @staticmethod
    def _create_engine(url: str, echo: bool) -> AsyncEngine:
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            # One shared connection keeps an in-memory database alive across sessions
            return create_async_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
        )

    @classmethod
    async def shutdown(cls) -> None:
        """Close all database connections and dispose of the engine."""
        if cls._engine is None:
            return

        await cls._engine.dispose()
        cls._engine = None
        cls._session_factory = None
        cls._is_healthy = False
        cls._url = None

        logger.info("DatabaseService shutdown successfully")
        if cls._metrics:
            logger.info("Final database metrics", extra=cls._metrics.get_summary())
            cls._metrics = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    def is_healthy(cls) -> bool:
        return cls._is_healthy

    @classmethod
    async def health_check(cls) -> bool:
        """
        Verify database connectivity with a simple query.

        Returns:
            True if database is accessible, False otherwise
        """
        if cls._engine is None:
            return False

        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text(cls._health_check_query))
        except (OperationalError, DBAPIError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            if cls._metrics:
                cls._metrics.record_health_check(success=False)
            cls._is_healthy = False
            return False

        if cls._metrics:
            cls._metrics.record_health_check(success=True)
        cls._is_healthy = True
        return True

    @classmethod
    def _is_postgres(cls) -> bool:
        return bool(cls._url) and make_url(cls._url).get_backend_name() == "postgresql"

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session without automatic commit.

        Use for read-only queries.

        Raises:
            DatabaseNotInitializedError: If DatabaseService not initialized
        """
        if cls._session_factory is None:
            raise DatabaseNotInitializedError()

        if cls._metrics:
            cls._metrics.record_session_start()

        start_time = time.monotonic()
        async with cls._session_factory() as session:
            try:
                yield session
            except OperationalError:
                await session.rollback()
                cls._is_healthy = False
                raise
            except Exception:
                await session.rollback()
                raise
            finally:
                cls._finish_session("read", start_time)

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session that commits on clean exit and rolls back on
        any exception.

        Raises:
            DatabaseNotInitializedError: If DatabaseService not initialized
        """
        if cls._session_factory is None:
            raise DatabaseNotInitializedError()

        if cls._metrics:
            cls._metrics.record_session_start()
            cls._metrics.total_transactions += 1

        start_time = time.monotonic()
        committed = False
        async with cls._session_factory() as session:
            try:
                if cls._is_postgres():
                    await session.execute(
                        text(f"SET LOCAL statement_timeout = {cls._statement_timeout_ms}")
                    )
                yield session
                await session.commit()
                committed = True
                if cls._metrics:
                    cls._metrics.total_commits += 1

            except OperationalError as e:
                await session.rollback()
                if cls._metrics:
                    cls._metrics.total_rollbacks += 1
                cls._is_healthy = False
                logger.error(
                    f"Database operational error in transaction: {e}",
                    extra={"error_type": "OperationalError", "operation": "transaction"},
                )
                raise

            except Exception:
                await session.rollback()
                if cls._metrics:
                    cls._metrics.total_rollbacks += 1
                raise

            finally:
                cls._finish_session("transaction", start_time, committed=committed)

    @classmethod
    def _finish_session(cls, operation: str, start_time: float, **extra: Any) -> None:
        duration = time.monotonic() - start_time
        if cls._metrics:
            cls._metrics.record_session_end(duration)
        if duration > SLOW_SESSION_SECONDS:
            logger.warning(
                f"Slow {operation} session: {duration:.2f}s",
                extra={"duration_seconds": duration, "db_operation": operation, **extra},
            )

    @classmethod
    def get_metrics_summary(cls) -> Dict[str, Any]:
        if cls._metrics:
            return cls._metrics.get_summary()
        return {}

    @classmethod
    async def create_all(cls, metadata: MetaData) -> None:
        """Create every table in `metadata`. Idempotent."""
        if cls._engine is None:
            raise DatabaseNotInitializedError()
        async with cls._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database tables created", extra={"tables": sorted(metadata.tables)})

    @classmethod
    async def drop_all(cls, metadata: MetaData) -> None:
        """
        Drop every table in `metadata`.

        Raises:
            RuntimeError: If called in production environment
        """
        if cls._engine is None:
            raise DatabaseNotInitializedError()
        if Config.is_production():
            raise RuntimeError("Cannot drop tables in production environment")
        async with cls._engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)
        logger.warning("Database tables dropped")
