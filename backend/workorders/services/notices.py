"""
Notification payloads.

WHAT: Immutable snapshots of the ticket, people and event a notification
is about.

WHY: Notifications run in detached tasks after the request's session has
been committed and closed. Copying what they need into plain frozen
dataclasses means no ORM object (and no lazy load) crosses that boundary.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from workorders.models.ticket import IssueType, Ticket, TicketSeverity, TicketStatus
from workorders.models.user import User, UserRole


@dataclass(frozen=True)
class Recipient:
    """A person who can be notified."""

    user_id: Optional[int]
    email: Optional[str]
    full_name: str
    role: Optional[UserRole] = None
    phone: Optional[str] = None
    sms_enabled: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Recipient":
        return cls(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            phone=user.phone,
            sms_enabled=bool(user.sms_notifications_enabled),
        )


@dataclass(frozen=True)
class TicketSnapshot:
    """The ticket fields notification content is built from."""

    id: uuid.UUID
    ticket_number: int
    issue_type: IssueType
    severity: TicketSeverity
    status: TicketStatus
    description: str
    organization_id: int
    building_name: str
    building_address: str
    space_label: str
    created_by: Recipient
    access_instructions: Optional[str] = None
    assigned_technician: Optional[str] = None
    scheduled_date: Optional[date] = None
    scheduled_time_window: Optional[str] = None
    quote_amount: Optional[Decimal] = None
    invoice_number: Optional[str] = None

    @property
    def is_emergency(self) -> bool:
        return self.severity == TicketSeverity.EMERGENCY

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketSnapshot":
        """
        Snapshot a ticket whose building, space and creator are loaded.

        Raises:
            sqlalchemy.exc.InvalidRequestError: If a relationship was not
                eager-loaded (relationships are lazy="raise")
        """
        building = ticket.building
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            issue_type=ticket.issue_type,
            severity=ticket.severity,
            status=ticket.status,
            description=ticket.description,
            organization_id=building.organization_id,
            building_name=building.display_name,
            building_address=building.full_address,
            space_label=ticket.space.label,
            created_by=Recipient.from_user(ticket.created_by),
            access_instructions=ticket.access_instructions,
            assigned_technician=ticket.assigned_technician,
            scheduled_date=ticket.scheduled_date,
            scheduled_time_window=ticket.scheduled_time_window,
            quote_amount=ticket.quote_amount,
            invoice_number=ticket.invoice_number,
        )


@dataclass(frozen=True)
class NewTicketNotice:
    ticket: TicketSnapshot


@dataclass(frozen=True)
class StatusChangeNotice:
    ticket: TicketSnapshot
    old_status: TicketStatus
    new_status: TicketStatus
    actor: Recipient
    notes: Optional[str] = None


@dataclass(frozen=True)
class CommentNotice:
    ticket: TicketSnapshot
    comment_text: str
    is_internal: bool
    author: Recipient
