"""
Request-scoped dependencies: service access, identity and throttling.

Routes pull domain services out of the ServiceContainer stored on
``app.state.context``; nothing here holds state of its own.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rankstream.core.config.manager import ConfigManager
from rankstream.core.logging.logger import get_logger, set_log_context
from rankstream.core.redis.service import RedisService
from rankstream.core.services.container import ServiceContainer
from rankstream.modules.identity.tokens import Identity
from rankstream.modules.scores.service import Origin
from rankstream.modules.shared.exceptions import AuthorizationError, RateLimitError

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(connection: HTTPConnection) -> ServiceContainer:
    return connection.app.state.context.service_container


def get_origin(connection: HTTPConnection) -> Origin:
    return Origin(
        address=connection.client.host if connection.client else None,
        agent=connection.headers.get("user-agent"),
    )


# ============================================================================
# Identity
# ============================================================================


async def require_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Identity:
    """Bearer token is mandatory; AuthorizationError renders as 401."""
    token = credentials.credentials if credentials is not None else None
    identity = container.identity.verify(token)
    set_log_context(participant_id=identity.participant_id)
    return identity


async def optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Optional[Identity]:
    """Bearer token is optional; a missing or rejected token means anonymous."""
    if credentials is None:
        return None
    try:
        identity = container.identity.verify(credentials.credentials)
    except AuthorizationError:
        return None
    set_log_context(participant_id=identity.participant_id)
    return identity


# ============================================================================
# Throttling gates
# ============================================================================


async def _gate(key: str, scope: str, rate: int) -> None:
    if not RedisService.is_initialized():
        return

    period = int(ConfigManager.get("rate_limits.period_seconds", 60))
    decision = await RedisService.get_rate_limiter().check(key, rate, period_seconds=period)
    if not decision.allowed:
        raise RateLimitError(scope, retry_after=decision.retry_after)


async def origin_rate_gate(origin: Origin = Depends(get_origin)) -> None:
    rate = int(ConfigManager.get("rate_limits.origin.rate", 1000))
    await _gate(f"origin:{origin.address or 'unknown'}", "origin", rate)


async def participant_rate_gate(identity: Identity = Depends(require_identity)) -> None:
    rate = int(ConfigManager.get("rate_limits.participant.rate", 60))
    await _gate(f"participant:{identity.participant_id}", "participant", rate)
