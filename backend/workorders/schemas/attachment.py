"""
Pydantic schemas for ticket attachments.

WHAT: Registration, batch registration, presigned URL and deletion
contracts.

WHY: Upload is two-phase. The client first PUTs the object to blob
storage (using an upload URL issued here), then registers its metadata.
The registration schema only bounds field lengths; the size cap and path
convention are enforced by the attachment service so that batch
registration can report them per file.
"""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class AttachmentRegister(BaseModel):
    """
    Attachment registration request.

    WHAT: Metadata for an object already uploaded to blob storage.
    """

    file_path: str = Field(
        ...,
        min_length=1,
        max_length=1024,
        description="Storage path, tickets/{ticket_id}/{filename}",
    )
    file_name: str = Field(..., min_length=1, max_length=255, description="Display name")
    file_type: str = Field(..., min_length=1, max_length=100, description="MIME type")
    file_size: int = Field(..., description="Size in bytes")

    class Config:
        json_schema_extra = {
            "example": {
                "file_path": "tickets/5b1f0c9e-6a57-4c61-9d8f-2f5f0b1e1c11/3fa2b1c0_leak.jpg",
                "file_name": "leak.jpg",
                "file_type": "image/jpeg",
                "file_size": 482133,
            }
        }


class AttachmentBatchRegister(BaseModel):
    """Several registrations, each reported independently."""

    files: List[AttachmentRegister] = Field(..., min_length=1, max_length=20)


class AttachmentResponse(BaseModel):
    """
    Attachment response schema.
    """

    id: uuid.UUID = Field(..., description="Attachment ID")
    ticket_id: uuid.UUID = Field(..., description="Parent ticket ID")
    uploaded_by_user_id: int = Field(..., description="Uploader")
    file_path: str
    file_name: str
    file_type: str
    file_size: int
    created_at: datetime

    class Config:
        from_attributes = True


class AttachmentError(BaseModel):
    code: str
    message: str


class AttachmentBatchItem(BaseModel):
    """
    Outcome for one file of a batch.

    WHAT: ok plus either the attachment or the error.
    """

    file_name: str
    ok: bool
    attachment: AttachmentResponse | None = None
    error: AttachmentError | None = None


class AttachmentBatchResponse(BaseModel):
    results: List[AttachmentBatchItem]
    registered: int = 0
    failed: int = 0


class UploadUrlRequest(BaseModel):
    """Request for a presigned upload URL."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_size: int = Field(..., gt=0, description="Size in bytes")


class UploadUrlResponse(BaseModel):
    """
    Presigned upload URL.

    WHAT: The client PUTs the file to upload_url, then registers file_path.
    """

    upload_url: str
    file_path: str
    expires_in: int


class DownloadUrlResponse(BaseModel):
    download_url: str
    expires_in: int


class AttachmentDeleteResponse(BaseModel):
    deleted: bool = True
    id: uuid.UUID
