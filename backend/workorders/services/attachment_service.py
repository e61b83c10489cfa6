"""
Attachment Service.

WHAT: Registers metadata for objects already uploaded to blob storage,
issues presigned URLs, and deletes attachments.

WHY: Upload is two-phase and the phases share no transaction. The
storage path "tickets/{ticket_id}/{file}" is the tenancy guard: a caller
cannot register an object stored under a different ticket.

HOW:
- The size cap and path convention are checked before any write
- Batch registration gives every file its own SAVEPOINT and its own result
- Deletion removes the object and the row independently; a failed object
  delete is logged and the row is still removed (the blob is orphaned)
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.core.config import settings
from workorders.core.exceptions import (
    AppException,
    AttachmentNotFoundError,
    AuthorizationError,
    InvalidPathError,
    PathMismatchError,
    StorageError,
    TicketNotFoundError,
    ValidationError,
)
from workorders.dao.ticket import TicketAttachmentDAO, TicketDAO
from workorders.models.ticket import Ticket, TicketAttachment
from workorders.models.user import User, UserRole
from workorders.schemas.attachment import AttachmentRegister
from workorders.services.storage import StorageService

logger = logging.getLogger(__name__)

ATTACHMENT_PREFIX = "tickets"


# ============================================================================
# Path convention
# ============================================================================


def parse_attachment_path(file_path: str) -> Tuple[str, str, str]:
    """
    Split "tickets/{ticket_id}/{filename}".

    Returns:
        (prefix, ticket_id, filename)

    Raises:
        InvalidPathError: Fewer than three segments or a foreign prefix
    """
    parts = file_path.split("/")
    if len(parts) < 3 or parts[0] != ATTACHMENT_PREFIX or not parts[1] or not parts[-1]:
        raise InvalidPathError(
            message=f"Invalid file path format. Expected {ATTACHMENT_PREFIX}/{{ticket_id}}/{{filename}}",
            file_path=file_path,
        )
    return parts[0], parts[1], "/".join(parts[2:])


def validate_attachment_path(file_path: str, ticket_id: uuid.UUID) -> None:
    """
    Check that file_path belongs to ticket_id.

    Raises:
        InvalidPathError: Path does not follow the convention
        PathMismatchError: Path names a different ticket
    """
    _, path_ticket_id, _ = parse_attachment_path(file_path)
    if path_ticket_id.lower() != str(ticket_id).lower():
        raise PathMismatchError(
            file_path=file_path,
            ticket_id=str(ticket_id),
        )


def validate_file_size(file_size: int) -> None:
    if file_size <= 0:
        raise ValidationError(message="File size must be positive", file_size=file_size)
    if file_size > settings.ATTACHMENT_MAX_BYTES:
        max_mb = settings.ATTACHMENT_MAX_BYTES // (1024 * 1024)
        raise ValidationError(
            message=f"File size exceeds maximum of {max_mb} MB",
            file_size=file_size,
            max_bytes=settings.ATTACHMENT_MAX_BYTES,
        )


def sanitize_file_name(file_name: str) -> str:
    """
    Make a display name safe to use as a storage key segment.

    WHY: Prevents path traversal and odd characters in object keys.
    """
    cleaned = file_name.replace("/", "_").replace("\\", "_").replace("\x00", "").replace(" ", "_")
    if len(cleaned) > 200:
        name, ext = cleaned.rsplit(".", 1) if "." in cleaned else (cleaned, "")
        cleaned = f"{name[:190]}.{ext}" if ext else name[:200]
    return cleaned or "file"


@dataclass
class BatchResult:
    """Outcome for one file of a batch registration."""

    file_name: str
    attachment: Optional[TicketAttachment] = None
    error: Optional[AppException] = None

    @property
    def ok(self) -> bool:
        return self.attachment is not None


# ============================================================================
# Attachment Service
# ============================================================================


class AttachmentService:
    """
    Service for ticket attachments.

    Attributes:
        session: Async database session
        storage: Blob storage for URLs and object deletion
    """

    def __init__(self, session: AsyncSession, storage: StorageService):
        self.session = session
        self.storage = storage
        self.ticket_dao = TicketDAO(session)
        self.attachment_dao = TicketAttachmentDAO(session)

    async def _visible_ticket(self, actor: User, ticket_id: uuid.UUID) -> Ticket:
        ticket = await self.ticket_dao.get_visible(ticket_id, actor)
        if not ticket:
            raise TicketNotFoundError(ticket_id=str(ticket_id))
        return ticket

    async def _visible_attachment(self, actor: User, attachment_id: uuid.UUID) -> TicketAttachment:
        attachment = await self.attachment_dao.get_by_id(attachment_id)
        if not attachment or not await self.ticket_dao.get_visible(attachment.ticket_id, actor):
            raise AttachmentNotFoundError(attachment_id=str(attachment_id))
        return attachment

    async def _register_one(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        data: AttachmentRegister,
    ) -> TicketAttachment:
        validate_file_size(data.file_size)
        validate_attachment_path(data.file_path, ticket_id)

        attachment = await self.attachment_dao.create(
            ticket_id=ticket_id,
            uploaded_by_user_id=actor.id,
            file_path=data.file_path,
            file_name=data.file_name,
            file_type=data.file_type,
            file_size=data.file_size,
        )
        logger.info(
            f"Attachment {attachment.id} registered on ticket {ticket_id} by user {actor.id} "
            f"({data.file_type}, {data.file_size} bytes)"
        )
        return attachment

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        data: AttachmentRegister,
    ) -> TicketAttachment:
        """
        Register metadata for an uploaded object.

        WHAT: Nothing checks that the object actually exists at file_path.

        Raises:
            TicketNotFoundError: Ticket missing or not visible
            ValidationError: Size is zero, negative, or over the cap
            InvalidPathError: Path does not follow tickets/{id}/{file}
            PathMismatchError: Path names a different ticket
        """
        await self._visible_ticket(actor, ticket_id)
        try:
            attachment = await self._register_one(actor, ticket_id, data)
        except ValidationError as e:
            logger.warning(f"Rejected attachment on ticket {ticket_id}: {e.error_code} {data.file_path}")
            raise
        await self.session.commit()
        return attachment

    async def register_batch(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        files: List[AttachmentRegister],
    ) -> List[BatchResult]:
        """
        Register several files, each independently.

        WHY: One bad file must not discard the others. Each insert runs in
        its own SAVEPOINT so a failure rolls back only that file.

        Returns:
            One BatchResult per input file, in order
        """
        await self._visible_ticket(actor, ticket_id)

        results: List[BatchResult] = []
        for data in files:
            try:
                async with self.session.begin_nested():
                    attachment = await self._register_one(actor, ticket_id, data)
                results.append(BatchResult(file_name=data.file_name, attachment=attachment))
            except AppException as e:
                results.append(BatchResult(file_name=data.file_name, error=e))
            except SQLAlchemyError as e:
                logger.error(f"Failed to register {data.file_name} on ticket {ticket_id}: {e}")
                results.append(BatchResult(
                    file_name=data.file_name,
                    error=AppException(message="Failed to register attachment"),
                ))

        await self.session.commit()

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            f"Batch registration on ticket {ticket_id}: "
            f"{len(results) - failed} registered, {failed} failed"
        )
        return results

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete(self, actor: User, attachment_id: uuid.UUID) -> uuid.UUID:
        """
        Delete an attachment's object and metadata row.

        WHAT: The storage delete is attempted first; its failure is logged
        and the row is removed anyway.

        Returns:
            The deleted attachment ID

        Raises:
            AttachmentNotFoundError: Missing, or its ticket is not visible
            AuthorizationError: A resident deleting someone else's upload
        """
        attachment = await self._visible_attachment(actor, attachment_id)

        if actor.role == UserRole.RESIDENT and attachment.uploaded_by_user_id != actor.id:
            raise AuthorizationError(message="You can only delete your own attachments")

        try:
            await self.storage.delete_object(attachment.file_path)
        except StorageError as e:
            logger.error(
                f"Storage delete failed for attachment {attachment_id} "
                f"({attachment.file_path}); removing metadata anyway: {e.context.get('error')}"
            )

        await self.attachment_dao.delete(attachment_id)
        await self.session.commit()
        logger.info(f"Attachment {attachment_id} deleted by user {actor.id}")
        return attachment_id

    # =========================================================================
    # Presigned URLs
    # =========================================================================

    async def issue_upload_url(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        file_name: str,
        file_type: str,
        file_size: int,
    ) -> Tuple[str, str, int]:
        """
        Presigned PUT URL plus the conventional path to register afterwards.

        Returns:
            (upload_url, file_path, expires_in)
        """
        await self._visible_ticket(actor, ticket_id)
        validate_file_size(file_size)

        file_path = f"{ATTACHMENT_PREFIX}/{ticket_id}/{uuid.uuid4().hex[:8]}_{sanitize_file_name(file_name)}"
        expires_in = settings.SIGNED_URL_TTL_SECONDS
        url = await self.storage.generate_upload_url(file_path, file_type, expires_in)
        logger.info(f"Issued upload URL for {file_path} to user {actor.id}")
        return url, file_path, expires_in

    async def issue_download_url(self, actor: User, attachment_id: uuid.UUID) -> Tuple[str, int]:
        """
        Presigned GET URL for a registered attachment.

        Returns:
            (download_url, expires_in)
        """
        attachment = await self._visible_attachment(actor, attachment_id)
        expires_in = settings.SIGNED_URL_TTL_SECONDS
        url = await self.storage.generate_download_url(attachment.file_path, attachment.file_name, expires_in)
        return url, expires_in
