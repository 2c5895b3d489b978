"""
Shared fixtures.

Unit tests run on mocks and in-memory fakes. Integration tests run against
session-scoped PostgreSQL and Redis testcontainers; tables and keys are
wiped before each test so every case starts from an empty leaderboard.
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("IDENTITY_SECRET", "test-identity-secret")

from typing import Any, AsyncGenerator, Dict, Generator, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import text  # noqa: E402
from testcontainers.postgres import PostgresContainer  # noqa: E402
from testcontainers.redis import RedisContainer  # noqa: E402

from rankstream.core.config.manager import ConfigManager  # noqa: E402
from rankstream.core.database.service import DatabaseService  # noqa: E402
from rankstream.core.event.bus import EventBus  # noqa: E402
from rankstream.core.logging.logger import get_logger  # noqa: E402
from rankstream.core.redis.service import RedisService  # noqa: E402
from rankstream.database.models import Base  # noqa: E402
from rankstream.modules.identity.tokens import Identity, IdentityVerifier  # noqa: E402

logger = get_logger(__name__)

TEST_SECRET = "test-identity-secret"


# Config


@pytest.fixture(scope="session", autouse=True)
def config_manager() -> Generator[type[ConfigManager], None, None]:
    """Load ``config/*.yaml`` once for the whole run."""
    ConfigManager.initialize()
    yield ConfigManager


# Containers


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()
    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


# Services against the containers


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def database(postgres_container: PostgresContainer) -> AsyncGenerator[None, None]:
    """
    DatabaseService bound to the testcontainer with a real connection pool
    (the concurrency tests need more than one connection).
    """
    await DatabaseService.initialize(
        database_url=postgres_container.get_connection_url(),
        use_null_pool=False,
    )
    async with DatabaseService.get_engine().begin() as conn:
        logger.info("Creating database schema...")
        await conn.run_sync(Base.metadata.create_all)

    yield

    await DatabaseService.shutdown()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def redis(redis_url: str) -> AsyncGenerator[type[RedisService], None]:
    await RedisService.initialize(url=redis_url)
    yield RedisService
    await RedisService.shutdown()


@pytest_asyncio.fixture(loop_scope="session")
async def clean_state(database, redis) -> AsyncGenerator[None, None]:
    """Empty tables and Redis before each integration test."""
    async with DatabaseService.get_transaction() as session:
        await session.execute(
            text("TRUNCATE score_deltas, score_records, participants RESTART IDENTITY CASCADE")
        )
    await RedisService.client().flushdb()
    yield


# Fakes


class FakeConfig:
    """Dot-notation config backed by a dict; stands in for ConfigManager."""

    def __init__(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        self.values: Dict[str, Any] = dict(overrides or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.values:
            return self.values[key]
        return ConfigManager.get(key, default)


class FakeTransport:
    """Records what a connection sends; can be told to fail."""

    def __init__(self, fail_on_send: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.closed_with: Optional[tuple] = None
        self.fail_on_send = fail_on_send

    async def send_json(self, data: Any) -> None:
        if self.fail_on_send:
            raise RuntimeError("transport gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = (code, reason)

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == message_type]


@pytest.fixture
def fake_config() -> FakeConfig:
    return FakeConfig()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(return_value="listener-id")
    mock_bus.unsubscribe = mocker.MagicMock(return_value=True)
    mock_bus.drain = mocker.AsyncMock()
    return mock_bus


@pytest.fixture
def verifier() -> IdentityVerifier:
    return IdentityVerifier(secret=TEST_SECRET)


@pytest.fixture
def identity() -> Identity:
    return Identity(participant_id="p-1", display_name="alice")
