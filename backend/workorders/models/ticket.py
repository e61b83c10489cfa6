"""
Ticket models for the work order lifecycle.

WHAT: SQLAlchemy models for tickets, comments, attachments, and the
status change log.

WHY: A ticket moves through a fixed status workflow
(new → scheduled → dispatched → on_site → in_progress → completed → invoiced)
whose transitions depend on the actor's role. Comments carry an internal
flag visible to platform staff only. Attachments are registered after their
object has been uploaded to blob storage.

HOW: Uses SQLAlchemy 2.0 with:
- Enums stored by value for status, severity and issue type
- UUID keys for ticket-owned rows (the attachment path embeds the ticket id)
- An append-only status change log written alongside each transition
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    Sequence,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from workorders.models.base import Base, enum_column, utc_now

# Ticket numbers are human-facing and start at 1001
TICKET_NUMBER_START = 1001
TICKET_NUMBER_SEQUENCE = Sequence("tickets_ticket_number_seq", start=TICKET_NUMBER_START)

if TYPE_CHECKING:
    from workorders.models.building import Building, Space
    from workorders.models.user import User


# ============================================================================
# Enums
# ============================================================================


class TicketStatus(str, enum.Enum):
    """
    Ticket status values, in workflow order.

    WHAT: Tracks the lifecycle of a work order.

    WHY: INVOICED and CANCELLED are terminal. COMPLETED allows exactly one
    more move (to INVOICED, by platform staff). Which moves are legal for
    whom lives in workorders.core.transitions.
    """

    NEW = "new"
    NEEDS_INFO = "needs_info"
    SCHEDULED = "scheduled"
    DISPATCHED = "dispatched"
    ON_SITE = "on_site"
    IN_PROGRESS = "in_progress"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        """Display label, e.g. "Waiting Approval"."""
        return self.value.replace("_", " ").title()


class TicketSeverity(str, enum.Enum):
    """
    Ticket severity.

    WHY: EMERGENCY routes the new-ticket notification to the emergency
    distribution list and triggers SMS to on-call staff.
    """

    EMERGENCY = "emergency"
    URGENT = "urgent"
    STANDARD = "standard"

    @property
    def rank(self) -> int:
        """Lower is more urgent."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    TicketSeverity.EMERGENCY: 0,
    TicketSeverity.URGENT: 1,
    TicketSeverity.STANDARD: 2,
}


class IssueType(str, enum.Enum):
    """Category of the reported problem."""

    ACTIVE_LEAK = "active_leak"
    SEWER_BACKUP = "sewer_backup"
    DRAIN_CLOG = "drain_clog"
    WATER_HEATER = "water_heater"
    GAS_SMELL = "gas_smell"
    TOILET_FAUCET_SHOWER = "toilet_faucet_shower"
    OTHER_PLUMBING = "other_plumbing"

    @property
    def label(self) -> str:
        return _ISSUE_LABELS[self]


_ISSUE_LABELS = {
    IssueType.ACTIVE_LEAK: "Active Leak",
    IssueType.SEWER_BACKUP: "Sewer Backup",
    IssueType.DRAIN_CLOG: "Drain Clog",
    IssueType.WATER_HEATER: "Water Heater",
    IssueType.GAS_SMELL: "Gas Smell",
    IssueType.TOILET_FAUCET_SHOWER: "Toilet/Faucet/Shower",
    IssueType.OTHER_PLUMBING: "Other Plumbing",
}


# ============================================================================
# Ticket Model
# ============================================================================


class Ticket(Base):
    """
    Work order ticket.

    WHAT: A maintenance request against a space in a building.

    WHY: The restricted fields (technician, schedule, quote, invoice) are
    written by platform staff only. completed_at is stamped once, on entry
    into COMPLETED, in the same statement as the status change.

    Security: Org users see tickets on their organization's buildings;
    residents see tickets they created.
    """

    __tablename__ = "tickets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_number: Mapped[int] = mapped_column(
        Integer, TICKET_NUMBER_SEQUENCE, unique=True, nullable=False
    )

    building_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("buildings.id"), nullable=False
    )
    space_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("spaces.id"), nullable=False
    )
    created_by_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )

    # Classification
    issue_type: Mapped[IssueType] = mapped_column(
        enum_column(IssueType, "issuetype"), nullable=False
    )
    severity: Mapped[TicketSeverity] = mapped_column(
        enum_column(TicketSeverity, "ticketseverity"),
        default=TicketSeverity.STANDARD,
        nullable=False,
    )
    status: Mapped[TicketStatus] = mapped_column(
        enum_column(TicketStatus, "ticketstatus"),
        default=TicketStatus.NEW,
        nullable=False,
    )

    # Reporter-supplied details
    description: Mapped[str] = mapped_column(Text, nullable=False)
    access_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Restricted fields (platform staff only)
    assigned_technician: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    scheduled_time_window: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quote_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timestamps
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    # Relationships
    building: Mapped["Building"] = relationship("Building", lazy="raise")
    space: Mapped["Space"] = relationship("Space", lazy="raise")
    created_by: Mapped["User"] = relationship("User", lazy="raise")

    __table_args__ = (
        Index("ix_tickets_building_id", "building_id"),
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_severity", "severity"),
        Index("ix_tickets_created_by", "created_by_user_id"),
        Index("ix_tickets_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number={self.ticket_number}, status={self.status.value})>"


# ============================================================================
# TicketComment Model
# ============================================================================


class TicketComment(Base):
    """
    Comment on a ticket.

    WHAT: A note on a ticket's discussion thread.

    WHY: Internal comments are a private channel between platform staff.
    Rows are created once and never edited or deleted.
    """

    __tablename__ = "ticket_comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )

    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    user: Mapped["User"] = relationship("User", lazy="raise")

    __table_args__ = (
        Index("ix_ticket_comments_ticket_id", "ticket_id"),
        Index("ix_ticket_comments_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TicketComment(id={self.id}, ticket_id={self.ticket_id}, is_internal={self.is_internal})>"


# ============================================================================
# TicketAttachment Model
# ============================================================================


class TicketAttachment(Base):
    """
    Metadata for a file uploaded to blob storage.

    WHAT: Points at an object under "tickets/{ticket_id}/...".

    WHY: Upload happens first (directly to storage), then the row is
    registered. The row and the object are deleted independently, so a
    failed object delete can leave an orphaned blob.
    """

    __tablename__ = "ticket_attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    uploaded_by_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )

    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_ticket_attachments_ticket_id", "ticket_id"),
    )

    def __repr__(self) -> str:
        return f"<TicketAttachment(id={self.id}, ticket_id={self.ticket_id}, file='{self.file_name}')>"


# ============================================================================
# StatusChangeEvent Model
# ============================================================================


class StatusChangeEvent(Base):
    """
    Append-only record of a ticket status change.

    WHAT: One row per accepted transition (and one at creation, with
    old_status NULL).

    WHY: Written in the same transaction as the status update so the log
    can never disagree with the ticket. Never updated or deleted.
    """

    __tablename__ = "ticket_status_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    old_status: Mapped[Optional[TicketStatus]] = mapped_column(
        enum_column(TicketStatus, "ticketstatus"), nullable=True
    )
    new_status: Mapped[TicketStatus] = mapped_column(
        enum_column(TicketStatus, "ticketstatus"), nullable=False
    )
    changed_by_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_ticket_status_log_ticket_id", "ticket_id"),
    )

    def __repr__(self) -> str:
        old = self.old_status.value if self.old_status else None
        return f"<StatusChangeEvent(ticket_id={self.ticket_id}, {old} -> {self.new_status.value})>"
