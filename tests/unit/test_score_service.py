"""
Unit tests for ScoreService.

Storage is replaced by an in-memory session and mocked repositories; the
real-database behaviour (row locking, rollback) is covered by the
integration suite.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from rankstream.core.database.service import DatabaseService
from rankstream.core.exceptions import ConsistencyViolation, TransientStorageError
from rankstream.core.logging.logger import get_logger
from rankstream.database.models import ScoreRecord
from rankstream.modules.scores.service import DELTA_APPLIED_EVENT, Origin, ScoreService
from rankstream.modules.shared.exceptions import NotFoundError, ValidationError

pytestmark = pytest.mark.unit


@pytest.fixture
def session(mocker):
    return mocker.MagicMock(name="session")


@pytest.fixture
def patched_storage(mocker, session):
    @asynccontextmanager
    async def fake_scope():
        yield session

    transaction = mocker.patch.object(DatabaseService, "get_transaction", side_effect=fake_scope)
    read = mocker.patch.object(DatabaseService, "get_session", side_effect=fake_scope)
    return transaction, read


@pytest.fixture
def caches(mocker):
    rank_cache = mocker.MagicMock()
    rank_cache.invalidate = mocker.AsyncMock(return_value=True)
    score_cache = mocker.MagicMock()
    score_cache.get = mocker.AsyncMock(return_value=None)
    score_cache.store = mocker.AsyncMock()
    score_cache.invalidate = mocker.AsyncMock(return_value=True)
    return rank_cache, score_cache


@pytest.fixture
def record():
    return ScoreRecord(participant_id="p-1", score=10)


@pytest.fixture
def service(mocker, fake_config, mock_event_bus, caches, record, patched_storage):
    rank_cache, score_cache = caches
    svc = ScoreService(
        fake_config,
        mock_event_bus,
        get_logger("tests.score_service"),
        rank_cache=rank_cache,
        score_cache=score_cache,
    )

    svc._participant_repo = mocker.MagicMock()
    svc._participant_repo.exists = mocker.AsyncMock(return_value=True)

    svc._record_repo = mocker.MagicMock()
    svc._record_repo.lock_for_update = mocker.AsyncMock(return_value=record)
    svc._record_repo.current_score = mocker.AsyncMock(return_value=None)

    def add(session, delta):
        delta.id = 1
        return delta

    svc._delta_repo = mocker.MagicMock()
    svc._delta_repo.add = mocker.MagicMock(side_effect=add)
    svc._delta_repo.flush = mocker.AsyncMock()
    return svc


class TestApplyDelta:
    """Test the mutation path."""

    async def test_adds_increment_and_returns_scores(self, service, record):
        result = await service.apply_delta("p-1", 5, action_id="a-1")

        assert result.previous_score == 10
        assert result.new_score == 15
        assert result.increment == 5
        assert record.score == 15

    async def test_writes_audit_row_in_same_transaction(self, service, session, patched_storage):
        await service.apply_delta("p-1", 5, origin=Origin(address="10.0.0.1", agent="curl"))

        transaction, _ = patched_storage
        transaction.assert_called_once()
        _, delta = service._delta_repo.add.call_args.args
        assert delta.previous_score == 10
        assert delta.new_score == 15
        assert delta.origin_address == "10.0.0.1"
        assert delta.origin_agent == "curl"

    async def test_invalidates_caches_and_emits_event(self, service, caches, mock_event_bus):
        rank_cache, score_cache = caches

        await service.apply_delta("p-1", 5, action_id="a-1")

        rank_cache.invalidate.assert_awaited_once()
        score_cache.invalidate.assert_awaited_once_with("p-1")
        event_name, payload = mock_event_bus.publish.call_args.args
        assert event_name == DELTA_APPLIED_EVENT
        assert payload["participant_id"] == "p-1"
        assert payload["new_score"] == 15
        assert payload["action_id"] == "a-1"

    @pytest.mark.parametrize("increment", [0, 1001, -3, 2.5, "7"])
    async def test_invalid_increment_touches_nothing(
        self, service, patched_storage, caches, mock_event_bus, increment
    ):
        """Validation happens before any storage access."""
        with pytest.raises(ValidationError):
            await service.apply_delta("p-1", increment)

        transaction, _ = patched_storage
        transaction.assert_not_called()
        caches[0].invalidate.assert_not_awaited()
        mock_event_bus.publish.assert_not_awaited()

    async def test_stale_timestamp_rejected(self, service, patched_storage):
        with pytest.raises(ValidationError):
            await service.apply_delta("p-1", 5, timestamp_ms=1)

        patched_storage[0].assert_not_called()

    async def test_unknown_participant(self, service, mock_event_bus):
        service._participant_repo.exists.return_value = False

        with pytest.raises(NotFoundError):
            await service.apply_delta("ghost", 5)

        service._record_repo.lock_for_update.assert_not_awaited()
        mock_event_bus.publish.assert_not_awaited()

    async def test_missing_audit_id_is_a_consistency_violation(self, service, caches):
        service._delta_repo.add.side_effect = lambda session, delta: delta

        with pytest.raises(ConsistencyViolation):
            await service.apply_delta("p-1", 5)

        caches[0].invalidate.assert_not_awaited()

    async def test_timeout_surfaces_as_transient(self, service, fake_config):
        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        fake_config.values["scores.storage_timeout_seconds"] = 0.01
        service._record_repo.lock_for_update.side_effect = hang

        with pytest.raises(TransientStorageError):
            await service.apply_delta("p-1", 5)


class TestCurrentScore:
    """Test score reads."""

    async def test_served_from_cache(self, service, caches, patched_storage):
        caches[1].get.return_value = 99

        assert await service.get_current_score("p-1") == 99
        patched_storage[1].assert_not_called()

    async def test_miss_reads_store_and_populates(self, service, caches):
        service._record_repo.current_score.return_value = 40

        assert await service.get_current_score("p-1") == 40
        caches[1].store.assert_awaited_once_with("p-1", 40)

    async def test_registered_without_row_is_zero(self, service):
        assert await service.get_current_score("p-1") == 0

    async def test_unknown_participant(self, service):
        service._participant_repo.exists.return_value = False

        with pytest.raises(NotFoundError):
            await service.get_current_score("ghost")
