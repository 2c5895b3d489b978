"""
Integration tests for the Rank Query Engine and the Rank Cache.
"""

import pytest

from rankstream.core.config.manager import ConfigManager
from rankstream.core.database.service import DatabaseService
from rankstream.core.event.bus import EventBus
from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.service import RedisService
from rankstream.database.models import Participant
from rankstream.modules.identity.repository import ParticipantRepository
from rankstream.modules.ranking.cache import ParticipantScoreCache, RankCache
from rankstream.modules.ranking.service import RankingService
from rankstream.modules.scores.service import ScoreService
from rankstream.modules.shared.exceptions import NotFoundError

pytestmark = [
    pytest.mark.integration,
    pytest.mark.database,
    pytest.mark.redis,
    pytest.mark.asyncio(loop_scope="session"),
]

logger = get_logger(__name__)


@pytest.fixture
def services(clean_state):
    bus = EventBus()
    rank_cache = RankCache(ConfigManager)
    ranking = RankingService(
        ConfigManager, bus, get_logger("tests.integration.ranking"), rank_cache=rank_cache
    )
    scores = ScoreService(
        ConfigManager,
        bus,
        get_logger("tests.integration.scores"),
        rank_cache=rank_cache,
        score_cache=ParticipantScoreCache(ConfigManager),
    )
    return ranking, scores, rank_cache


async def seed(scores, table):
    """Register participants and bring each to the given score."""
    repo = ParticipantRepository(model_class=Participant, logger=logger)
    async with DatabaseService.get_transaction() as session:
        for participant_id, _ in table:
            await repo.register(session, participant_id, f"name-{participant_id}")

    for participant_id, score in table:
        remaining = score
        while remaining > 0:
            step = min(remaining, 1000)
            await scores.apply_delta(participant_id, step)
            remaining -= step


class TestRanks:
    """Test competition ranking."""

    async def test_ordered_listing(self, services):
        ranking, scores, _ = services
        await seed(scores, [("a", 100), ("b", 500), ("c", 150), ("d", 450)])

        page = await ranking.get_top_n(limit=10)

        assert [(e["participant_id"], e["score"], e["rank"]) for e in page["entries"]] == [
            ("b", 500, 1),
            ("d", 450, 2),
            ("c", 150, 3),
            ("a", 100, 4),
        ]
        assert page["total_participants"] == 4
        assert page["entries"][0]["display_name"] == "name-b"

        assert [await ranking.get_rank(pid) for pid in ("b", "d", "c", "a")] == [1, 2, 3, 4]

    async def test_ties_share_a_rank(self, services):
        ranking, scores, _ = services
        await seed(scores, [("a", 300), ("b", 200), ("c", 200), ("d", 100)])

        page = await ranking.get_top_n(limit=10)

        assert [e["rank"] for e in page["entries"]] == [1, 2, 2, 4]
        # Earlier arrival at the tied score lists first.
        assert [e["participant_id"] for e in page["entries"][1:3]] == ["b", "c"]
        assert await ranking.get_rank("c") == 2
        assert await ranking.get_rank("d") == 4

    async def test_registered_without_score_ranks_last(self, services):
        ranking, scores, _ = services
        await seed(scores, [("a", 10), ("b", 20)])
        repo = ParticipantRepository(model_class=Participant, logger=logger)
        async with DatabaseService.get_transaction() as session:
            await repo.register(session, "quiet", "quiet")

        assert await ranking.get_rank("quiet") == 3
        assert (await ranking.get_top_n())["total_participants"] == 2

    async def test_unknown_participant(self, services):
        ranking, _, _ = services

        with pytest.raises(NotFoundError):
            await ranking.get_rank("ghost")

    async def test_offset_pages_keep_global_ranks(self, services):
        ranking, scores, rank_cache = services
        await seed(scores, [("a", 100), ("b", 500), ("c", 150), ("d", 450)])

        page = await ranking.get_top_n(limit=2, offset=2)

        assert [(e["participant_id"], e["rank"]) for e in page["entries"]] == [("c", 3), ("a", 4)]
        assert await RedisService.get_json(rank_cache.key) is None

    async def test_is_in_top_n(self, services):
        ranking, scores, _ = services
        await seed(scores, [("a", 100), ("b", 500), ("c", 150)])

        assert await ranking.is_in_top_n("b", n=1) is True
        assert await ranking.is_in_top_n("c", n=1) is False
        assert await ranking.is_in_top_n("c", n=2) is True


class TestRankCache:
    """Test cache population and invalidation through real Redis."""

    async def test_invalidation_cycle(self, services):
        ranking, scores, rank_cache = services
        await seed(scores, [("a", 100), ("b", 200)])

        first = await ranking.get_top_n()
        assert await RedisService.get_json(rank_cache.key) is not None
        assert first["entries"][0]["participant_id"] == "b"

        await scores.apply_delta("a", 500)
        assert await RedisService.get_json(rank_cache.key) is None

        second = await ranking.get_top_n()
        assert second["entries"][0] == {
            "participant_id": "a",
            "display_name": "name-a",
            "score": 600,
            "rank": 1,
        }

    async def test_cached_listings_identical(self, services):
        """Two reads inside the TTL with no writes return the same snapshot."""
        ranking, scores, _ = services
        await seed(scores, [("a", 100), ("b", 200), ("c", 300)])

        first = await ranking.get_leaderboard(limit=3)
        second = await ranking.get_leaderboard(limit=3)

        assert first == second

    async def test_snapshot_ttl(self, services):
        ranking, scores, rank_cache = services
        await seed(scores, [("a", 100)])

        await ranking.get_top_n()

        ttl = await RedisService.client().ttl(rank_cache.key)
        assert 0 < ttl <= 30

    async def test_caller_rank_in_listing(self, services):
        ranking, scores, _ = services
        await seed(scores, [("a", 100), ("b", 200), ("c", 300)])

        listing = await ranking.get_leaderboard(limit=1, caller_id="a")

        assert listing["caller_rank"] == 3
        assert len(listing["leaderboard"]) == 1
        assert listing["total_participants"] == 3
