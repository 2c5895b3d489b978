"""
Unit tests for the database circuit breaker, transaction scope and
storage error mapping.
"""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rankstream.core.database.circuit_breaker import CircuitBreaker, CircuitState
from rankstream.core.database.metrics import DatabaseMetrics
from rankstream.core.database.service import (
    DatabaseNotInitializedError,
    DatabaseService,
    storage_errors,
)
from rankstream.core.exceptions import CircuitBreakerError, TransientStorageError

pytestmark = pytest.mark.unit


def connection_lost() -> OperationalError:
    return OperationalError("SELECT 1", {}, ConnectionResetError("reset by peer"))


class FakeSession:
    def __init__(self, mocker):
        self.commit = mocker.AsyncMock()
        self.rollback = mocker.AsyncMock()
        self.execute = mocker.AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


@pytest.fixture
def breaker():
    return CircuitBreaker("test", failure_threshold=2, recovery_timeout=0.05)


@pytest.fixture
def wired_database(mocker, breaker):
    """DatabaseService with an in-memory session factory and a fresh breaker."""
    session = FakeSession(mocker)
    mocker.patch.object(DatabaseService, "_sessions", lambda: session)
    mocker.patch.object(DatabaseService, "_circuit_breaker", breaker)
    mocker.patch.object(DatabaseService, "_postgres", False)
    DatabaseMetrics.reset()
    yield session
    DatabaseMetrics.reset()


class TestCircuitBreaker:
    """Test state transitions."""

    async def test_opens_after_threshold(self, breaker):
        await breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED

        await breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        assert await breaker.allow_request() is False
        assert breaker.retry_after() > 0

    async def test_half_open_allows_single_probe(self, breaker):
        await breaker.record_failure()
        await breaker.record_failure()
        await asyncio.sleep(0.06)

        assert await breaker.allow_request() is True
        assert breaker.state is CircuitState.HALF_OPEN
        assert await breaker.allow_request() is False

        await breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    async def test_failed_probe_reopens(self, breaker):
        await breaker.record_failure()
        await breaker.record_failure()
        await asyncio.sleep(0.06)
        await breaker.allow_request()

        await breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        assert breaker.snapshot()["times_opened"] == 2

    async def test_reset_closes(self, breaker):
        await breaker.record_failure()
        await breaker.record_failure()

        await breaker.reset()

        assert breaker.state is CircuitState.CLOSED
        assert breaker.consecutive_failures == 0


class TestTransactionScope:
    """Test commit, rollback and breaker accounting."""

    async def test_commits_on_success(self, wired_database):
        async with DatabaseService.get_transaction():
            pass

        wired_database.commit.assert_awaited_once()
        wired_database.rollback.assert_not_awaited()
        assert DatabaseMetrics.snapshot()["transactions_committed"] == 1

    async def test_connection_failure_counts_against_breaker(self, wired_database, breaker):
        with pytest.raises(OperationalError):
            async with DatabaseService.get_transaction():
                raise connection_lost()

        wired_database.rollback.assert_awaited_once()
        wired_database.commit.assert_not_awaited()
        assert breaker.consecutive_failures == 1

    async def test_statement_error_does_not_trip_breaker(self, wired_database, breaker):
        await breaker.record_failure()

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction():
                raise IntegrityError("INSERT", {}, ValueError("duplicate"))

        assert breaker.consecutive_failures == 0
        assert DatabaseMetrics.snapshot()["rollback_errors"] == {"IntegrityError": 1}

    async def test_open_breaker_refuses_before_connecting(self, wired_database, breaker):
        await breaker.record_failure()
        await breaker.record_failure()

        with pytest.raises(CircuitBreakerError):
            async with DatabaseService.get_transaction():
                pytest.fail("scope should not open")

        assert DatabaseMetrics.snapshot()["transactions_started"] == 0


class TestStorageErrors:
    """Test mapping onto TransientStorageError."""

    def test_connection_failure_is_transient(self):
        with pytest.raises(TransientStorageError) as exc_info:
            with storage_errors("apply_delta"):
                raise connection_lost()

        assert exc_info.value.reason == "connection"
        assert exc_info.value.is_retryable is True
        assert exc_info.value.error_code == "STORAGE_UNAVAILABLE"

    def test_timeout_is_transient(self):
        with pytest.raises(TransientStorageError) as exc_info:
            with storage_errors("apply_delta"):
                raise asyncio.TimeoutError()

        assert exc_info.value.reason == "timeout"

    def test_open_circuit_carries_retry_after(self):
        with pytest.raises(TransientStorageError) as exc_info:
            with storage_errors("get_rank"):
                raise CircuitBreakerError("database", 5, 12.5)

        assert exc_info.value.reason == "circuit_open"
        assert exc_info.value.retry_after == 12.5

    def test_uninitialized_engine_is_transient(self):
        with pytest.raises(TransientStorageError):
            with storage_errors("get_rank"):
                raise DatabaseNotInitializedError("not yet")

    def test_statement_errors_pass_through(self):
        with pytest.raises(IntegrityError):
            with storage_errors("apply_delta"):
                raise IntegrityError("INSERT", {}, ValueError("duplicate"))
