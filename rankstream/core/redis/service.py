"""
Process-wide Redis access.

One pooled ``redis.asyncio`` client serves the rank cache, the participant
score cache, the rate limiter and the broadcast relay. Every command goes
through ``RedisResilience`` (breaker plus bounded retries) and is timed into
``RedisMetrics``. Callers decide what to cache and for how long.

Connection settings come from ``core.redis.*`` in the policy config when
present, otherwise from REDIS_URL, REDIS_SOCKET_TIMEOUT,
REDIS_MAX_CONNECTIONS and REDIS_DECODE_RESPONSES.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from redis.asyncio.client import PubSub
from redis.asyncio.client import Redis as AsyncRedis
from redis.exceptions import RedisError

from rankstream.core.config import ConfigManager
from rankstream.core.config.config import Config
from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.metrics import RedisMetrics
from rankstream.core.redis.rate_limiter import RedisRateLimiter
from rankstream.core.redis.resilience import RedisResilience

logger = get_logger(__name__)

T = TypeVar("T")

_NOT_READY = "RedisService not initialized. Call initialize() first."


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


class RedisService:
    _client: Optional[AsyncRedis] = None
    _resilience: Optional[RedisResilience] = None
    _rate_limiter: Optional[RedisRateLimiter] = None
    _healthy: bool = False
    _lock: Optional[asyncio.Lock] = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and PING. A second call is a no-op.

        Raises:
            RuntimeError: Redis did not answer.
        """
        cls._lock = cls._lock or asyncio.Lock()
        async with cls._lock:
            if cls._client is not None:
                return

            url = url or ConfigManager.get("core.redis.url") or Config.REDIS_URL
            client = AsyncRedis.from_url(
                url,
                password=Config.REDIS_PASSWORD,
                socket_timeout=ConfigManager.get(
                    "core.redis.socket_timeout_seconds", Config.REDIS_SOCKET_TIMEOUT
                ),
                max_connections=ConfigManager.get(
                    "core.redis.max_connections", Config.REDIS_MAX_CONNECTIONS
                ),
                decode_responses=ConfigManager.get(
                    "core.redis.decode_responses", Config.REDIS_DECODE_RESPONSES
                ),
                encoding="utf-8",
                retry_on_timeout=False,
                health_check_interval=30,
            )
            started = time.monotonic()
            try:
                await client.ping()
            except (RedisError, OSError) as exc:
                await client.aclose()
                logger.critical(
                    "Redis unreachable at startup",
                    extra={"scheme": url.partition("://")[0], "error_type": type(exc).__name__},
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

            cls._client = client
            cls._resilience = RedisResilience()
            cls._rate_limiter = RedisRateLimiter(cls)
            cls._healthy = True
            logger.info(
                "Redis connected",
                extra={"connect_ms": round((time.monotonic() - started) * 1000, 2)},
            )

    @classmethod
    async def shutdown(cls) -> None:
        client, cls._client = cls._client, None
        cls._resilience = cls._rate_limiter = None
        cls._healthy = False
        if client is None:
            return
        try:
            await client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning("Error closing Redis client", extra={"error": str(exc)})
        else:
            logger.info("Redis connection closed")

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    @classmethod
    async def health_check(cls) -> bool:
        """PING; reports False instead of raising."""
        if cls._client is None:
            cls._healthy = False
            return False
        started = time.monotonic()
        try:
            cls._healthy = bool(await cls._client.ping())
        except (RedisError, OSError) as exc:
            cls._healthy = False
            logger.error("Redis PING failed", extra={"error_type": type(exc).__name__})
        RedisMetrics.record_health_check(cls._healthy, (time.monotonic() - started) * 1000)
        return cls._healthy

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def get_status(cls) -> dict[str, Any]:
        return {
            "initialized": cls._client is not None,
            "healthy": cls._healthy,
            "resilience": cls._resilience.get_status() if cls._resilience else None,
            "rate_limiter": cls._rate_limiter.get_status() if cls._rate_limiter else None,
            "metrics": RedisMetrics.get_summary(),
        }

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise RuntimeError(_NOT_READY)
        return cls._client

    @classmethod
    def get_resilience(cls) -> RedisResilience:
        if cls._resilience is None:
            raise RuntimeError(_NOT_READY)
        return cls._resilience

    @classmethod
    def get_rate_limiter(cls) -> RedisRateLimiter:
        if cls._rate_limiter is None:
            raise RuntimeError(_NOT_READY)
        return cls._rate_limiter

    @classmethod
    def pubsub(cls) -> PubSub:
        """New pub/sub handle on the shared pool; the caller must ``aclose()`` it."""
        return cls.client().pubsub(ignore_subscribe_messages=True)

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    @classmethod
    async def _run(cls, command: str, target: str, call: Callable[[], Awaitable[T]]) -> T:
        started = time.monotonic()
        ok = False
        try:
            result = await cls.get_resilience().execute(
                operation=call, operation_name=f"{command}:{target}"
            )
            ok = True
            return result
        except Exception:
            logger.warning("Redis %s failed", command, extra={"target": target})
            raise
        finally:
            RedisMetrics.record_operation(command, (time.monotonic() - started) * 1000, ok)

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        return await cls._run("GET", key, lambda: cls.client().get(key))

    @classmethod
    async def set(cls, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return bool(await cls._run("SET", key, lambda: cls.client().set(key, value, ex=ttl)))

    @classmethod
    async def delete(cls, *keys: str) -> int:
        if not keys:
            return 0
        return int(await cls._run("DELETE", ",".join(keys), lambda: cls.client().delete(*keys)))

    @classmethod
    async def get_json(cls, key: str) -> Optional[Any]:
        """Decoded JSON value; an undecodable entry reads as a miss."""
        raw = await cls.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable JSON entry", extra={"key": key})
            return None

    @classmethod
    async def set_json(cls, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return await cls.set(key, _compact_json(value), ttl=ttl)

    @classmethod
    async def publish(cls, channel: str, message: Any) -> int:
        """Publish ``message`` (JSON-encoded unless already a string); returns receiver count."""
        payload = message if isinstance(message, str) else _compact_json(message)
        return int(
            await cls._run("PUBLISH", channel, lambda: cls.client().publish(channel, payload))
        )
