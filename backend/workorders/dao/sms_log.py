"""
SMS log Data Access Object.
"""

import uuid
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.dao.base import BaseDAO
from workorders.models.sms_log import SmsLog, SmsStatus


class SmsLogDAO(BaseDAO[SmsLog]):
    """Append-only access to the sms_log table."""

    def __init__(self, session: AsyncSession):
        super().__init__(SmsLog, session)

    async def record(
        self,
        phone_number: str,
        message_body: str,
        status: SmsStatus,
        user_id: Optional[int] = None,
        ticket_id: Optional[uuid.UUID] = None,
        provider_sid: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> SmsLog:
        """
        Record one send attempt.

        Returns:
            The created SmsLog row
        """
        return await self.create(
            user_id=user_id,
            ticket_id=ticket_id,
            phone_number=phone_number,
            message_body=message_body,
            provider_sid=provider_sid,
            status=status,
            error_message=error_message,
        )

    async def list_for_ticket(self, ticket_id: uuid.UUID) -> List[SmsLog]:
        result = await self.session.execute(
            select(SmsLog).where(SmsLog.ticket_id == ticket_id).order_by(SmsLog.created_at.asc())
        )
        return list(result.scalars().all())
