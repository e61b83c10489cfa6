"""
Pydantic schemas for ticket comments.

WHY: Internal notes are hidden from everyone but platform staff. The
response schema never decides that on its own; the comment service
builds responses with the flag already resolved for the reader.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from workorders.schemas.ticket import UserReference


class CommentCreate(BaseModel):
    """
    Comment creation request.

    WHAT: Data for adding a comment to a ticket.
    """

    comment_text: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="Comment text",
    )
    is_internal: bool = Field(
        default=False,
        description="True for internal notes (platform staff only)",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "comment_text": "Tenant will be home after 3pm.",
                "is_internal": False,
            }
        }


class CommentResponse(BaseModel):
    """
    Comment response schema.

    Note: is_internal is always False for readers who are not platform staff.
    """

    id: uuid.UUID = Field(..., description="Comment ID")
    ticket_id: uuid.UUID = Field(..., description="Parent ticket ID")
    comment_text: str = Field(..., description="Comment text")
    is_internal: bool = Field(..., description="True if internal note")
    created_at: datetime = Field(..., description="Creation timestamp")
    user: UserReference | None = Field(None, description="Comment author")

    class Config:
        from_attributes = True
