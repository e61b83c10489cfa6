"""
Pydantic schemas for ticket endpoints.

WHAT: Request/response schemas for ticket creation, reads, updates and
the transition affordance.

WHY: Schemas define the API contract:
1. Validate field limits before the service runs
2. Distinguish an explicit null (clear the field) from an absent field
3. Control which fields are exposed

HOW: Uses Pydantic v2. The update schema is read through model_fields_set
so only fields the client actually sent are applied.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from workorders.models.ticket import IssueType, TicketSeverity, TicketStatus
from workorders.models.user import UserRole


# Fields only platform staff may write
RESTRICTED_FIELDS = (
    "assigned_technician",
    "scheduled_date",
    "scheduled_time_window",
    "quote_amount",
    "invoice_number",
)


# ============================================================================
# User Reference Schema
# ============================================================================


class UserReference(BaseModel):
    """
    Minimal user info embedded in ticket and comment responses.

    WHY: Shows who acted without exposing email or phone.
    """

    id: int = Field(..., description="User ID")
    full_name: str = Field(..., description="Display name")
    role: UserRole = Field(..., description="User role")

    class Config:
        from_attributes = True


# ============================================================================
# Ticket Schemas
# ============================================================================


class TicketCreate(BaseModel):
    """
    Ticket creation request.

    WHAT: Data for reporting a new maintenance issue.

    WHY: Severity is a floor, not a final value: the service may escalate
    it based on the issue type and the description.
    """

    building_id: int = Field(..., gt=0, description="Building ID")
    space_id: int = Field(..., gt=0, description="Space (unit or common area) ID")
    issue_type: IssueType = Field(..., description="Category of the problem")
    severity: TicketSeverity = Field(
        default=TicketSeverity.STANDARD,
        description="Reporter-selected severity (may be escalated)",
    )
    description: str = Field(..., min_length=1, max_length=5000, description="What is wrong")
    access_instructions: str | None = Field(
        default=None,
        max_length=2000,
        description="How the technician gets in",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "building_id": 1,
                "space_id": 4,
                "issue_type": "drain_clog",
                "severity": "standard",
                "description": "Kitchen sink drains very slowly",
                "access_instructions": "Key with front desk",
            }
        }


class TicketUpdate(BaseModel):
    """
    Ticket update request.

    WHAT: Optional target status, restricted fields, and a decline reason.

    WHY: An explicit null clears a restricted field while an absent field
    is left untouched, so callers must use model_fields_set rather than
    checking for None.
    """

    status: TicketStatus | None = Field(default=None, description="Target status")
    assigned_technician: str | None = Field(default=None, max_length=255)
    scheduled_date: date | None = Field(default=None)
    scheduled_time_window: str | None = Field(default=None, max_length=100)
    quote_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    invoice_number: str | None = Field(default=None, max_length=100)
    decline_reason: str | None = Field(
        default=None,
        max_length=2000,
        description="Recorded as a comment when the ticket is cancelled",
    )

    class Config:
        extra = "forbid"
        json_schema_extra = {
            "example": {
                "status": "scheduled",
                "assigned_technician": "Dana Ruiz",
                "scheduled_date": "2026-03-02",
                "scheduled_time_window": "8am - 12pm",
            }
        }

    def restricted_changes(self) -> Dict[str, Any]:
        """Restricted fields the client sent, including explicit nulls."""
        return {
            name: getattr(self, name)
            for name in RESTRICTED_FIELDS
            if name in self.model_fields_set
        }


class TicketResponse(BaseModel):
    """
    Ticket response schema.

    WHAT: Ticket data for API responses.
    """

    id: uuid.UUID = Field(..., description="Ticket ID")
    ticket_number: int = Field(..., description="Human-readable ticket number")
    building_id: int
    space_id: int
    created_by_user_id: int
    issue_type: IssueType
    severity: TicketSeverity
    status: TicketStatus
    description: str
    access_instructions: str | None = None

    assigned_technician: str | None = None
    scheduled_date: date | None = None
    scheduled_time_window: str | None = None
    quote_amount: Decimal | None = None
    invoice_number: str | None = None

    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class TicketCreateResponse(TicketResponse):
    """
    Ticket creation response.

    WHY: Tells the reporter when their severity was raised.
    """

    severity_escalated: bool = Field(
        default=False,
        description="True if severity was raised above the requested value",
    )


class TransitionOptions(BaseModel):
    """
    Statuses the caller may move a ticket to.

    WHAT: Drives the client's status picker.

    WHY: Computed from the same transition matrix the update path enforces,
    so the client never offers a move the server rejects.
    """

    ticket_id: uuid.UUID
    current_status: TicketStatus
    role: UserRole
    allowed_transitions: List[TicketStatus] = Field(default_factory=list)
    is_terminal: bool = False
