"""
Cross-process relay over Redis pub/sub.

Every process subscribes to one shared channel at startup. Messages are
``{"participant": <id>, "timestamp": <iso8601>}``; each one received is
handed to the local hub. A dropped subscription reconnects with exponential
backoff and resumes without replaying what was missed.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.exceptions import RedisError

from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.service import RedisService

logger = get_logger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]

SUBSCRIPTION_FAILURES = (RedisError, OSError, RuntimeError, asyncio.TimeoutError)


class BroadcastRelay:
    def __init__(
        self,
        channel: str,
        handler: MessageHandler,
        *,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        redis_service: type[RedisService] = RedisService,
    ) -> None:
        self.channel = channel
        self._handler = handler
        self._redis = redis_service
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self._task: Optional[asyncio.Task[None]] = None
        self._connected = asyncio.Event()
        self.reconnect_count = 0
        self.messages_received = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"broadcast-relay:{self.channel}"
        )

    async def wait_connected(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._connected.clear()
        logger.info("Relay stopped", extra={"channel": self.channel})

    async def publish(self, participant_id: str, timestamp: str) -> int:
        return await self._redis.publish(
            self.channel, {"participant": participant_id, "timestamp": timestamp}
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "running": self.is_running,
            "connected": self.is_connected,
            "reconnect_count": self.reconnect_count,
            "messages_received": self.messages_received,
        }

    # ------------------------------------------------------------------ #
    # Subscription loop
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        delay = self.reconnect_delay
        while True:
            try:
                await self._listen()
                delay = self.reconnect_delay
            except SUBSCRIPTION_FAILURES as exc:
                self._connected.clear()
                self.reconnect_count += 1
                logger.warning(
                    f"Relay subscription lost, reconnecting in {delay:.1f}s",
                    extra={
                        "channel": self.channel,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "reconnect_count": self.reconnect_count,
                    },
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_reconnect_delay)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            self._connected.set()
            logger.info("Relay subscribed", extra={"channel": self.channel})

            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self._dispatch(message.get("data"))
        finally:
            self._connected.clear()
            await pubsub.aclose()

    async def _dispatch(self, raw: Any) -> None:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(
                "Relay dropped undecodable message",
                extra={"channel": self.channel, "raw": str(raw)[:200]},
            )
            return
        if not isinstance(payload, dict) or "participant" not in payload:
            logger.warning(
                "Relay dropped malformed message",
                extra={"channel": self.channel, "raw": str(raw)[:200]},
            )
            return

        self.messages_received += 1
        try:
            await self._handler(payload)
        except Exception as exc:
            # One bad notification must not tear down the subscription.
            logger.error(
                "Relay handler failed",
                extra={
                    "channel": self.channel,
                    "participant_id": payload.get("participant"),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
