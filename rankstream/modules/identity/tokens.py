"""
Participant identity tokens.

Compact HMAC-SHA256 tokens of the form ``b64url(claims).b64url(signature)``
where claims are ``{"sub": participant_id, "name": display_name, "exp": unix}``.

Verification is the only operation the request path needs; ``issue`` exists
for development tooling and tests.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from rankstream.core.config.config import Config
from rankstream.core.logging.logger import get_logger
from rankstream.modules.shared.exceptions import AuthorizationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    participant_id: str
    display_name: str


def _b64u(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64u_dec(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class IdentityVerifier:
    """Signs and verifies participant tokens with a shared secret."""

    def __init__(self, secret: Optional[str] = None) -> None:
        self._secret = (secret or Config.IDENTITY_SECRET).encode()

    def _sign(self, blob: bytes) -> str:
        return _b64u(hmac.new(self._secret, blob, hashlib.sha256).digest())

    def issue(
        self,
        participant_id: str,
        display_name: str,
        ttl_seconds: Optional[int] = None,
    ) -> str:
        ttl = ttl_seconds if ttl_seconds is not None else Config.IDENTITY_TOKEN_TTL_SECONDS
        claims = {
            "sub": participant_id,
            "name": display_name,
            "exp": int(time.time()) + ttl,
        }
        raw = json.dumps(claims, separators=(",", ":"), sort_keys=True).encode()
        return f"{_b64u(raw)}.{self._sign(raw)}"

    def verify(self, token: Optional[str]) -> Identity:
        """
        Resolve a token to an ``Identity``.

        Raises:
            AuthorizationError: ``missing`` when no token is supplied,
                ``invalid`` when it is malformed, badly signed or expired.
        """
        if not token:
            raise AuthorizationError("missing")

        try:
            payload_part, signature = token.split(".", 1)
            raw = _b64u_dec(payload_part)
        except (ValueError, binascii.Error):
            raise AuthorizationError("invalid") from None

        if not hmac.compare_digest(signature, self._sign(raw)):
            logger.warning("Rejected token with bad signature")
            raise AuthorizationError("invalid")

        try:
            claims = json.loads(raw)
        except ValueError:
            raise AuthorizationError("invalid") from None

        participant_id = claims.get("sub") if isinstance(claims, dict) else None
        expires_at = claims.get("exp") if isinstance(claims, dict) else None
        if not isinstance(participant_id, str) or not participant_id:
            raise AuthorizationError("invalid")
        if not isinstance(expires_at, int) or expires_at < time.time():
            logger.info("Rejected expired token", extra={"participant_id": participant_id})
            raise AuthorizationError("invalid", "Token expired")

        return Identity(
            participant_id=participant_id,
            display_name=str(claims.get("name") or participant_id),
        )
