"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from workorders.models.base import Base, TimestampMixin, PrimaryKeyMixin
from workorders.models.organization import Organization
from workorders.models.user import User, UserRole
from workorders.models.building import Building, Space, SpaceType
from workorders.models.ticket import (
    Ticket,
    TicketStatus,
    TicketSeverity,
    IssueType,
    TicketComment,
    TicketAttachment,
    StatusChangeEvent,
)
from workorders.models.sms_log import SmsLog, SmsStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Organization",
    "User",
    "UserRole",
    "Building",
    "Space",
    "SpaceType",
    "Ticket",
    "TicketStatus",
    "TicketSeverity",
    "IssueType",
    "TicketComment",
    "TicketAttachment",
    "StatusChangeEvent",
    "SmsLog",
    "SmsStatus",
]
