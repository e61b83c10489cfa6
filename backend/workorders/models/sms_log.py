"""
SMS delivery log.

WHY: SMS costs money and phone numbers are error-prone. One row per send
attempt (including sandbox and failed ones) lets support answer
"did the technician get the text?" without provider dashboards.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from workorders.models.base import Base, enum_column, utc_now


class SmsStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    SANDBOX = "sandbox"


class SmsLog(Base):
    """One SMS send attempt."""

    __tablename__ = "sms_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    ticket_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    message_body: Mapped[str] = mapped_column(Text, nullable=False)
    provider_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[SmsStatus] = mapped_column(enum_column(SmsStatus, "smsstatus"), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_sms_log_user_id", "user_id"),
        Index("ix_sms_log_ticket_id", "ticket_id"),
        Index("ix_sms_log_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SmsLog(id={self.id}, status={self.status.value})>"
