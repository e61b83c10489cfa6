"""
Ticket attachment API endpoints.

WHAT: Upload URL issuance, metadata registration (single and batch),
download URLs and deletion.

WHY: Upload is two-phase: the client PUTs the file to blob storage, then
registers it here. The storage path must name the ticket it is
registered against.
"""

import uuid

from fastapi import APIRouter, Depends, status

from workorders.core.deps import get_attachment_service, get_current_user
from workorders.models.user import User
from workorders.schemas.attachment import (
    AttachmentBatchItem,
    AttachmentBatchRegister,
    AttachmentBatchResponse,
    AttachmentDeleteResponse,
    AttachmentError,
    AttachmentRegister,
    AttachmentResponse,
    DownloadUrlResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from workorders.services.attachment_service import AttachmentService


router = APIRouter(tags=["attachments"])


@router.post(
    "/tickets/{ticket_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register attachment",
)
async def register_attachment(
    ticket_id: uuid.UUID,
    data: AttachmentRegister,
    current_user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
) -> AttachmentResponse:
    """
    Register metadata for an uploaded object.

    Raises:
        TicketNotFoundError (404): Missing or not visible
        ValidationError (400): Size out of range
        InvalidPathError (400): Path not tickets/{ticket_id}/{file}
        PathMismatchError (400): Path names a different ticket
    """
    attachment = await service.register(current_user, ticket_id, data)
    return AttachmentResponse.model_validate(attachment)


@router.post(
    "/tickets/{ticket_id}/attachments/batch",
    response_model=AttachmentBatchResponse,
    summary="Register several attachments",
    description="Each file succeeds or fails on its own",
)
async def register_attachments_batch(
    ticket_id: uuid.UUID,
    data: AttachmentBatchRegister,
    current_user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
) -> AttachmentBatchResponse:
    results = await service.register_batch(current_user, ticket_id, data.files)
    items = [
        AttachmentBatchItem(
            file_name=result.file_name,
            ok=result.ok,
            attachment=AttachmentResponse.model_validate(result.attachment) if result.ok else None,
            error=None if result.ok else AttachmentError(
                code=result.error.error_code,
                message=result.error.message,
            ),
        )
        for result in results
    ]
    registered = sum(1 for item in items if item.ok)
    return AttachmentBatchResponse(
        results=items,
        registered=registered,
        failed=len(items) - registered,
    )


@router.post(
    "/tickets/{ticket_id}/attachments/upload-url",
    response_model=UploadUrlResponse,
    summary="Get upload URL",
)
async def get_upload_url(
    ticket_id: uuid.UUID,
    data: UploadUrlRequest,
    current_user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
) -> UploadUrlResponse:
    url, file_path, expires_in = await service.issue_upload_url(
        current_user,
        ticket_id,
        data.file_name,
        data.file_type,
        data.file_size,
    )
    return UploadUrlResponse(upload_url=url, file_path=file_path, expires_in=expires_in)


@router.get(
    "/attachments/{attachment_id}/download-url",
    response_model=DownloadUrlResponse,
    summary="Get download URL",
)
async def get_download_url(
    attachment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
) -> DownloadUrlResponse:
    url, expires_in = await service.issue_download_url(current_user, attachment_id)
    return DownloadUrlResponse(download_url=url, expires_in=expires_in)


@router.delete(
    "/attachments/{attachment_id}",
    response_model=AttachmentDeleteResponse,
    summary="Delete attachment",
)
async def delete_attachment(
    attachment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
) -> AttachmentDeleteResponse:
    """
    Delete an attachment.

    WHAT: The storage object is removed first; if that fails the metadata
    row is still removed and the failure is only logged.

    Raises:
        AttachmentNotFoundError (404): Missing or ticket not visible
        AuthorizationError (403): Resident deleting another user's upload
    """
    deleted_id = await service.delete(current_user, attachment_id)
    return AttachmentDeleteResponse(deleted=True, id=deleted_id)
