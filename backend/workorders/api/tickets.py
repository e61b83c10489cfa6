"""
Ticket API endpoints.

WHAT: Create, read, update, and the transition affordance.

WHY: The affordance endpoint and the update endpoint read the same
transition matrix, so the client never offers a move the server rejects.

HOW: FastAPI router delegating to TicketService. Visibility is applied
by the service; a ticket outside the caller's scope is a 404.
"""

import uuid

from fastapi import APIRouter, Depends, status

from workorders.core.deps import get_current_user, get_ticket_service
from workorders.models.user import User
from workorders.schemas.ticket import (
    TicketCreate,
    TicketCreateResponse,
    TicketResponse,
    TicketUpdate,
    TransitionOptions,
)
from workorders.services.ticket_service import TicketService


router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post(
    "",
    response_model=TicketCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create ticket",
    description="Report a new maintenance issue",
)
async def create_ticket(
    data: TicketCreate,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketCreateResponse:
    """
    Create a ticket.

    WHAT: Severity may be escalated from the issue type or description;
    severity_escalated reports it. Platform staff are notified.

    Raises:
        ResourceNotFoundError (404): Building not in the caller's scope
        ValidationError (400): Space not in the building
    """
    ticket, escalated = await service.create_ticket(current_user, data)
    response = TicketCreateResponse.model_validate(ticket)
    response.severity_escalated = escalated
    return response


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get ticket",
)
async def get_ticket(
    ticket_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    ticket = await service.get_ticket(current_user, ticket_id)
    return TicketResponse.model_validate(ticket)


@router.get(
    "/{ticket_id}/transitions",
    response_model=TransitionOptions,
    summary="Allowed status transitions",
    description="Statuses the current user may move this ticket to",
)
async def get_transitions(
    ticket_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TransitionOptions:
    ticket = await service.get_ticket(current_user, ticket_id)
    return service.allowed_for(current_user, ticket)


@router.patch(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update ticket",
    description="Change status and/or restricted fields",
)
async def update_ticket(
    ticket_id: uuid.UUID,
    patch: TicketUpdate,
    current_user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service),
) -> TicketResponse:
    """
    Update a ticket.

    WHAT: Applies a status transition and restricted field changes in one
    conditional write. Notifications go out after the response.

    Raises:
        TicketNotFoundError (404): Missing or not visible
        InvalidTransitionError (403): Move not permitted for the caller's role
        AuthorizationError (403): Restricted field by non platform staff
        NoChangesError (400): Nothing to update
        ConflictError (409): Ticket changed concurrently
    """
    ticket = await service.update_ticket(current_user, ticket_id, patch)
    return TicketResponse.model_validate(ticket)
