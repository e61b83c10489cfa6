"""
Ticket comment API endpoints.

WHY: Both endpoints pass through the internal note gate in
CommentService; internal notes never reach readers who are not
platform staff.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, status

from workorders.core.deps import get_comment_service, get_current_user
from workorders.models.user import User
from workorders.schemas.comment import CommentCreate, CommentResponse
from workorders.services.comment_service import CommentService


router = APIRouter(prefix="/tickets", tags=["comments"])


@router.post(
    "/{ticket_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
)
async def create_comment(
    ticket_id: uuid.UUID,
    data: CommentCreate,
    current_user: User = Depends(get_current_user),
    service: CommentService = Depends(get_comment_service),
) -> CommentResponse:
    """
    Add a comment to a ticket.

    Raises:
        TicketNotFoundError (404): Missing or not visible
        AuthorizationError (403): Internal note by non platform staff
    """
    comment = await service.create_comment(
        current_user,
        ticket_id,
        data.comment_text,
        is_internal=data.is_internal,
    )
    return CommentResponse.model_validate(comment)


@router.get(
    "/{ticket_id}/comments",
    response_model=List[CommentResponse],
    summary="List comments",
    description="Comments visible to the current user, oldest first",
)
async def list_comments(
    ticket_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: CommentService = Depends(get_comment_service),
) -> List[CommentResponse]:
    return await service.list_comments(current_user, ticket_id)
