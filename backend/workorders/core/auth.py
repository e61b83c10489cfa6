"""
JWT verification and token revocation.

WHY: Tokens are issued by the identity service; this API only verifies
them:
1. Signature and expiry checks on every request
2. A Redis revocation list so a logged-out token stops working at once;
   the identity service adds entries on logout, keyed revoked:token:{jwt}
   and expiring with the token
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from jose import JWTError, jwt

from workorders.core.config import settings
from workorders.core.exceptions import TokenExpiredError, TokenInvalidError


# Redis connection for token revocation
# WHY: Revocation is checked on every request, so it must be an O(1)
# in-memory lookup rather than a database query.
_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """
    Get Redis client for token revocation.

    Returns:
        Redis client instance (created on first use)
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token.

    WHY: Used by operational scripts and tests; interactive logins are
    issued elsewhere with the same secret.

    Args:
        data: Claims to encode; must include user_id
        expires_delta: Custom lifetime (default JWT_EXPIRATION_MINUTES)

    Returns:
        JWT token string
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))
    to_encode.update({"exp": expire, "iat": now, "nbf": now})

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        # WHY: A distinct error lets the frontend refresh instead of logging out
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


# ============================================================================
# Token Revocation
# ============================================================================


def _revocation_key(token: str) -> str:
    return f"revoked:token:{token}"


async def is_token_revoked(token: str) -> bool:
    """
    Check whether the identity service has revoked a token.

    Returns:
        True if revoked, False otherwise
    """
    redis = await get_redis()
    return await redis.exists(_revocation_key(token)) > 0
