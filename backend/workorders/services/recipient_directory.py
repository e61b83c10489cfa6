"""
Recipient lookup for notifications.

WHAT: Answers "who are this organization's property managers?" and
"which platform staff want emergency texts?".

WHY: Notification routing depends on the directory only through this
interface, so routing can be tested with an in-memory directory and the
database-backed one can open its own session from a detached task.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

from workorders.dao.user import UserDAO
from workorders.models.user import User
from workorders.services.notices import Recipient

logger = logging.getLogger(__name__)


class RecipientDirectory(ABC):
    """Read-only source of notification recipients."""

    @abstractmethod
    async def org_users(self, organization_id: int, sms_only: bool = False) -> List[Recipient]:
        """Active org admins and org members of an organization."""

    @abstractmethod
    async def platform_admins(self, sms_only: bool = False) -> List[Recipient]:
        """Active platform staff."""


class DatabaseRecipientDirectory(RecipientDirectory):
    """
    Directory backed by the users table.

    HOW: Each lookup opens a short-lived session from session_factory,
    independent of any request session.
    """

    def __init__(self, session_factory: Callable):
        self._session_factory = session_factory

    async def org_users(self, organization_id: int, sms_only: bool = False) -> List[Recipient]:
        async with self._session_factory() as session:
            users = await UserDAO(User, session).list_org_users(organization_id, sms_only=sms_only)
        logger.debug(f"Resolved {len(users)} org user(s) for organization {organization_id}")
        return [Recipient.from_user(user) for user in users]

    async def platform_admins(self, sms_only: bool = False) -> List[Recipient]:
        async with self._session_factory() as session:
            users = await UserDAO(User, session).list_platform_admins(sms_only=sms_only)
        return [Recipient.from_user(user) for user in users]
