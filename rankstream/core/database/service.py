"""
PostgreSQL access for Rankstream.

One ``AsyncEngine`` per process, handed out as two kinds of scope:

``get_session()``
    Reads. Nothing is committed; the session closes on exit.
``get_transaction()``
    Writes. Commits when the block exits normally and rolls back on any
    exception, which is then re-raised.

Every scope sets ``SET LOCAL statement_timeout`` from
DATABASE_STATEMENT_TIMEOUT_MS. A circuit breaker sits in front of
transactions and counts only connection-level failures; a row that fails
validation still proves the database is up. ``storage_errors`` turns the
"database unavailable" family into ``TransientStorageError`` for services.

>>> async with DatabaseService.get_transaction() as session:
...     record = await repo.lock_for_update(session, participant_id)
...     record.score += increment
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Dict, Iterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from rankstream.core.config.config import Config
from rankstream.core.database.circuit_breaker import CircuitBreaker
from rankstream.core.database.metrics import DatabaseMetrics
from rankstream.core.exceptions import CircuitBreakerError, TransientStorageError
from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)

# "Cannot reach the database", as opposed to "this statement is wrong".
CONNECTION_FAILURES = (OperationalError, InterfaceError, OSError, asyncio.TimeoutError)


def is_connection_failure(exc: BaseException) -> bool:
    if isinstance(exc, CONNECTION_FAILURES):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class DatabaseInitializationError(RuntimeError):
    pass


class DatabaseNotInitializedError(RuntimeError):
    pass


class DatabaseService:
    _engine: Optional[AsyncEngine] = None
    _sessions: Optional[async_sessionmaker[AsyncSession]] = None
    _circuit_breaker: Optional[CircuitBreaker] = None
    _pooled: bool = False
    _postgres: bool = False
    _lock: Optional[asyncio.Lock] = None

    @classmethod
    async def initialize(
        cls,
        database_url: Optional[str] = None,
        use_null_pool: Optional[bool] = None,
    ) -> None:
        """
        Build the engine. A second call is a no-op.

        ``database_url`` overrides DATABASE_URL (integration tests pass the
        container URL). Connection pooling is off while testing unless
        ``use_null_pool=False`` is given.

        Raises:
            DatabaseInitializationError: No URL, or the engine could not be built.
        """
        cls._lock = cls._lock or asyncio.Lock()
        async with cls._lock:
            if cls._engine is not None:
                return

            url = database_url or Config.DATABASE_URL
            if not url:
                DatabaseMetrics.record_engine_initialization_failed(config_error=True)
                raise DatabaseInitializationError("DATABASE_URL is not configured")

            pooled = not (Config.is_testing() if use_null_pool is None else use_null_pool)
            options: Dict[str, Any] = {"echo": Config.DATABASE_ECHO}
            if pooled:
                options.update(
                    pool_size=Config.DATABASE_POOL_SIZE,
                    max_overflow=Config.DATABASE_MAX_OVERFLOW,
                    pool_recycle=Config.DATABASE_POOL_RECYCLE,
                    pool_timeout=Config.DATABASE_POOL_TIMEOUT,
                    pool_pre_ping=True,
                )
            else:
                options["poolclass"] = NullPool

            scheme = url.partition(":")[0]
            try:
                engine = create_async_engine(url, **options)
            except (ValueError, ImportError, DBAPIError) as exc:
                DatabaseMetrics.record_engine_initialization_failed(config_error=False)
                logger.error("Cannot build database engine", extra={"scheme": scheme}, exc_info=True)
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            cls._engine = engine
            cls._sessions = async_sessionmaker(engine, expire_on_commit=False)
            cls._circuit_breaker = CircuitBreaker("database")
            cls._pooled = pooled
            cls._postgres = scheme.startswith("postgresql")
            DatabaseMetrics.record_engine_initialized(
                url_scheme=scheme, pool_class="queue" if pooled else "null"
            )
            logger.info(
                "Database engine ready",
                extra={"scheme": scheme, "pooled": pooled},
            )

    @classmethod
    async def shutdown(cls) -> None:
        cls._lock = cls._lock or asyncio.Lock()
        async with cls._lock:
            engine, cls._engine = cls._engine, None
            cls._sessions = None
            cls._circuit_breaker = None
            if engine is None:
                return
            await engine.dispose()
            DatabaseMetrics.record_engine_shutdown()
            logger.info("Database engine disposed")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        if cls._engine is None:
            raise DatabaseNotInitializedError("DatabaseService.initialize() has not run")
        return cls._engine

    @classmethod
    def _session_factory(cls) -> async_sessionmaker[AsyncSession]:
        if cls._sessions is None:
            raise DatabaseNotInitializedError("DatabaseService.initialize() has not run")
        return cls._sessions

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1``; False on any connection failure."""
        if cls._engine is None:
            DatabaseMetrics.record_health_check(success=False, duration_ms=0.0)
            return False

        started = time.perf_counter()
        ok = False
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            ok = True
        except (DBAPIError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Database health check failed", extra={"error_type": type(exc).__name__})
        DatabaseMetrics.record_health_check(
            success=ok, duration_ms=(time.perf_counter() - started) * 1000
        )
        return ok

    @classmethod
    def get_pool_metrics(cls) -> Dict[str, int]:
        if cls._engine is None or not cls._pooled:
            return {"pool_size": 0, "checked_out": 0, "overflow": 0}
        pool = cls._engine.pool
        return {
            "pool_size": pool.size(),  # type: ignore[attr-defined]
            "checked_out": pool.checkedout(),  # type: ignore[attr-defined]
            "overflow": pool.overflow(),  # type: ignore[attr-defined]
        }

    @classmethod
    def get_circuit_breaker_metrics(cls) -> Dict[str, Any]:
        if cls._circuit_breaker is None:
            return {"name": "database", "state": "not_initialized"}
        return cls._circuit_breaker.snapshot()

    # ------------------------------------------------------------------ #
    # Scopes
    # ------------------------------------------------------------------ #

    @classmethod
    async def _set_statement_timeout(cls, session: AsyncSession) -> None:
        if cls._postgres:
            timeout_ms = int(Config.DATABASE_STATEMENT_TIMEOUT_MS)
            await session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        async with cls._session_factory()() as session:
            await cls._set_statement_timeout(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Raises:
            CircuitBreakerError: The breaker is open; no connection is tried.
        """
        factory = cls._session_factory()
        breaker = cls._circuit_breaker
        assert breaker is not None

        if not await breaker.allow_request():
            raise CircuitBreakerError("database", breaker.consecutive_failures, breaker.retry_after())

        started = time.perf_counter()
        async with factory() as session:
            DatabaseMetrics.record_transaction_started()
            try:
                await cls._set_statement_timeout(session)
                yield session
                await session.commit()
            except (Exception, asyncio.CancelledError) as exc:
                await session.rollback()
                elapsed_ms = (time.perf_counter() - started) * 1000
                # A cancelled transaction is the caller's storage timeout firing.
                unreachable = isinstance(exc, asyncio.CancelledError) or is_connection_failure(exc)
                if unreachable:
                    await breaker.record_failure()
                    logger.warning(
                        "Transaction rolled back, database unreachable",
                        extra={"error_type": type(exc).__name__, "elapsed_ms": round(elapsed_ms, 2)},
                    )
                else:
                    await breaker.record_success()
                DatabaseMetrics.record_transaction_rolled_back(
                    duration_ms=elapsed_ms, error_type=type(exc).__name__
                )
                raise

            await breaker.record_success()
            DatabaseMetrics.record_transaction_committed(
                duration_ms=(time.perf_counter() - started) * 1000
            )


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """
    Re-raise "database unavailable" failures as ``TransientStorageError``.

    Statement errors and domain exceptions pass through untouched.
    """
    try:
        yield
    except CircuitBreakerError as exc:
        raise TransientStorageError(operation, "circuit_open", exc, exc.retry_after) from exc
    except asyncio.TimeoutError as exc:
        raise TransientStorageError(operation, "timeout", exc) from exc
    except DatabaseNotInitializedError as exc:
        raise TransientStorageError(operation, "not_initialized", exc) from exc
    except (DBAPIError, OSError) as exc:
        if not is_connection_failure(exc):
            raise
        raise TransientStorageError(operation, "connection", exc) from exc
