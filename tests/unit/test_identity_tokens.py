"""
Unit tests for participant identity tokens.
"""

import pytest

from rankstream.modules.identity.tokens import IdentityVerifier
from rankstream.modules.shared.exceptions import AuthorizationError

pytestmark = pytest.mark.unit


class TestVerify:
    """Test token verification."""

    def test_issued_token_verifies(self, verifier):
        """A freshly issued token resolves to its participant."""
        token = verifier.issue("p-1", "alice", ttl_seconds=60)

        identity = verifier.verify(token)

        assert identity.participant_id == "p-1"
        assert identity.display_name == "alice"

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, verifier, token):
        """No token at all is reported as missing."""
        with pytest.raises(AuthorizationError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.reason == "missing"
        assert exc_info.value.error_code == "UNAUTHORIZED"

    @pytest.mark.parametrize("token", ["garbage", "a.b", "!!!.???"])
    def test_malformed_token(self, verifier, token):
        """Tokens that do not parse are invalid."""
        with pytest.raises(AuthorizationError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.reason == "invalid"
        assert exc_info.value.error_code == "INVALID_TOKEN"

    def test_foreign_signature_rejected(self, verifier):
        """A token signed with another secret is invalid."""
        token = IdentityVerifier(secret="someone-else").issue("p-1", "alice", ttl_seconds=60)

        with pytest.raises(AuthorizationError):
            verifier.verify(token)

    def test_tampered_claims_rejected(self, verifier):
        """Swapping the claims part breaks the signature."""
        token = verifier.issue("p-1", "alice", ttl_seconds=60)
        other = verifier.issue("p-2", "bob", ttl_seconds=60)
        forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

        with pytest.raises(AuthorizationError):
            verifier.verify(forged)

    def test_expired_token_rejected(self, verifier):
        """A token past its expiry is invalid."""
        token = verifier.issue("p-1", "alice", ttl_seconds=-10)

        with pytest.raises(AuthorizationError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.message == "Token expired"
