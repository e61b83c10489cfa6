"""
FastAPI dependencies for authentication and service wiring.

WHY: Dependencies provide reusable authentication and service
construction that route handlers inject, and that tests override.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.core.auth import is_token_revoked, verify_token
from workorders.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from workorders.dao.user import UserDAO
from workorders.db.session import get_db
from workorders.models.user import User
from workorders.services.attachment_service import AttachmentService
from workorders.services.comment_service import CommentService
from workorders.services.dispatcher import NotificationDispatcher, get_dispatcher
from workorders.services.notification_service import NotificationService, get_notification_service
from workorders.services.storage import StorageService, get_storage_service
from workorders.services.ticket_service import TicketService


# HTTP Bearer token security scheme
# WHY: auto_error=False so a missing header goes through our own
# AuthenticationError (401 UNAUTHORIZED) instead of FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Checks if token has been revoked
    4. Fetches user from database
    5. Ensures user still exists and is active

    Returns:
        Authenticated User instance (role and organization come from here)

    Raises:
        AuthenticationError: If token is missing, invalid, expired or revoked,
            or the user is unknown or inactive
    """
    if credentials is None:
        raise AuthenticationError(message="Missing bearer token")

    token = credentials.credentials

    try:
        payload = verify_token(token)
    except (TokenExpiredError, TokenInvalidError) as e:
        # WHY: Re-raise as AuthenticationError for consistent API responses
        raise AuthenticationError(message=str(e))

    if await is_token_revoked(token):
        raise AuthenticationError(
            message="Token has been revoked",
            reason="revoked",
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError(message="Invalid token: missing user_id")

    # WHY: Role and organization may have changed since the token was issued
    user = await UserDAO(User, db).get_by_id(user_id)

    if not user:
        raise AuthenticationError(message="User not found", user_id=user_id)

    if not user.is_active:
        raise AuthenticationError(message="User account is inactive", user_id=user_id)

    return user


# ============================================================================
# Service providers
# ============================================================================


def get_notifier() -> NotificationService:
    return get_notification_service()


def get_notification_dispatcher() -> NotificationDispatcher:
    return get_dispatcher()


def get_storage() -> StorageService:
    return get_storage_service()


def get_ticket_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> TicketService:
    return TicketService(db, notifier=notifier, dispatcher=dispatcher)


def get_comment_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> CommentService:
    return CommentService(db, notifier=notifier, dispatcher=dispatcher)


def get_attachment_service(
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
) -> AttachmentService:
    return AttachmentService(db, storage)
