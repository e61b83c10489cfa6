"""
User Data Access Object.

WHY: Notification fan-out needs a few specific user lookups (the
organization's property managers, SMS-enabled platform staff). Keeping
them here keeps SQL out of the notification service.
"""

from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.dao.base import BaseDAO
from workorders.models.user import User, UserRole


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, model: type[User], session: AsyncSession):
        """Initialize UserDAO with model and session."""
        super().__init__(model, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address (case-insensitive).

        Args:
            email: User's email address

        Returns:
            User instance if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def list_org_users(self, organization_id: int, sms_only: bool = False) -> List[User]:
        """
        Active org admins and org members of an organization.

        WHY: Both org roles receive the same notifications.

        Args:
            organization_id: Organization that owns the ticket's building
            sms_only: Restrict to users who opted in to SMS

        Returns:
            Users ordered by id
        """
        query = select(User).where(
            User.organization_id == organization_id,
            User.role.in_([UserRole.ORG_ADMIN, UserRole.ORG_MEMBER]),
            User.is_active.is_(True),
        )
        if sms_only:
            query = query.where(User.sms_notifications_enabled.is_(True))
        result = await self.session.execute(query.order_by(User.id))
        return list(result.scalars().all())

    async def list_platform_admins(self, sms_only: bool = False) -> List[User]:
        """Active platform staff, optionally only those with SMS enabled."""
        query = select(User).where(
            User.role == UserRole.PLATFORM_ADMIN,
            User.is_active.is_(True),
        )
        if sms_only:
            query = query.where(User.sms_notifications_enabled.is_(True))
        result = await self.session.execute(query.order_by(User.id))
        return list(result.scalars().all())
