"""
Token Verification Tests.

WHAT: Unit tests for JWT verification and the Redis revocation list.

WHY: Every request is authenticated by these functions; an expired or
tampered token must never be accepted.
"""

from datetime import timedelta

import pytest
from jose import jwt

from workorders.core import auth as auth_module
from workorders.core.auth import (
    create_access_token,
    is_token_revoked,
    verify_token,
)
from workorders.core.config import settings
from workorders.core.exceptions import TokenExpiredError, TokenInvalidError


class FakeRedis:
    """Minimal async Redis with the calls the revocation list uses."""

    def __init__(self):
        self.store = {}

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def exists(self, key):
        return 1 if key in self.store else 0


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(auth_module, "_redis_client", redis)
    return redis


class TestVerifyToken:
    """Tests for verify_token."""

    def test_round_trip_claims(self):
        token = create_access_token({"user_id": 42})
        payload = verify_token(token)

        assert payload["user_id"] == 42
        assert {"exp", "iat", "nbf"} <= set(payload)

    def test_expired_token(self):
        token = create_access_token({"user_id": 42}, expires_delta=timedelta(seconds=-30))
        with pytest.raises(TokenExpiredError):
            verify_token(token)

    def test_wrong_signature(self):
        token = jwt.encode({"user_id": 42}, "not-the-secret", algorithm=settings.JWT_ALGORITHM)
        with pytest.raises(TokenInvalidError):
            verify_token(token)

    def test_garbage_token(self):
        with pytest.raises(TokenInvalidError):
            verify_token("not.a.jwt")


class TestRevocation:
    """Tests for the revocation list written by the identity service on logout."""

    @pytest.mark.asyncio
    async def test_listed_token_is_revoked(self, fake_redis):
        token = create_access_token({"user_id": 1})
        assert await is_token_revoked(token) is False

        await fake_redis.setex(f"revoked:token:{token}", 600, "1")

        assert await is_token_revoked(token) is True

    @pytest.mark.asyncio
    async def test_other_tokens_unaffected(self, fake_redis):
        revoked = create_access_token({"user_id": 1})
        await fake_redis.setex(f"revoked:token:{revoked}", 600, "1")

        assert await is_token_revoked(create_access_token({"user_id": 2})) is False
