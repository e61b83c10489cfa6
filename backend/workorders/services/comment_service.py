"""
Comment Service.

WHAT: Creates and lists ticket comments through the internal-note gate.

WHY: Internal notes are a private channel for platform staff. They must
never be written by anyone else and never shown to anyone else, not even
as a flag on an otherwise public row.

HOW: Creation rejects is_internal from non platform staff before anything
is written. Listing excludes internal rows in the query, filters again in
memory, and forces is_internal to False on what remains.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from workorders.core.exceptions import AuthorizationError, TicketNotFoundError
from workorders.dao.ticket import TicketCommentDAO, TicketDAO
from workorders.models.ticket import TicketComment
from workorders.models.user import User
from workorders.schemas.comment import CommentResponse
from workorders.services.dispatcher import NotificationDispatcher, get_dispatcher
from workorders.services.notices import CommentNotice, Recipient, TicketSnapshot

logger = logging.getLogger(__name__)


class CommentService:
    """
    Service for ticket comments.

    Attributes:
        session: Async database session
        notifier: NotificationService (None disables notifications)
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier=None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.ticket_dao = TicketDAO(session)
        self.comment_dao = TicketCommentDAO(session)
        self.notifier = notifier
        self.dispatcher = dispatcher or get_dispatcher()

    async def create_comment(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        comment_text: str,
        is_internal: bool = False,
    ) -> TicketComment:
        """
        Add a comment to a ticket.

        Args:
            actor: Author
            ticket_id: Ticket ID
            comment_text: Comment body
            is_internal: Internal note flag (platform staff only)

        Returns:
            Created TicketComment

        Raises:
            TicketNotFoundError: If the ticket is missing or not visible
            AuthorizationError: If a non platform admin sets is_internal
        """
        ticket = await self.ticket_dao.get_visible(ticket_id, actor)
        if not ticket:
            raise TicketNotFoundError(ticket_id=str(ticket_id))

        if is_internal and not actor.role.is_platform_admin:
            logger.warning(
                f"User {actor.id} ({actor.role.value}) tried to post an internal comment "
                f"on ticket #{ticket.ticket_number}"
            )
            raise AuthorizationError(message="Only platform admin can create internal comments")

        comment = await self.comment_dao.create(
            ticket_id=ticket_id,
            user_id=actor.id,
            comment_text=comment_text,
            is_internal=is_internal,
        )
        await self.session.commit()

        logger.info(
            f"Comment {comment.id} added to ticket #{ticket.ticket_number} by user {actor.id} "
            f"(internal={is_internal})"
        )

        await self._dispatch_comment(actor, ticket_id, comment_text, is_internal)
        return comment

    async def list_comments(self, actor: User, ticket_id: uuid.UUID) -> List[CommentResponse]:
        """
        List comments the actor may read, oldest first.

        WHAT: Platform staff get every comment with its real flag. Everyone
        else gets public comments only, each with is_internal=False.

        Returns:
            Comment responses with author info

        Raises:
            TicketNotFoundError: If the ticket is missing or not visible
        """
        ticket = await self.ticket_dao.get_visible(ticket_id, actor)
        if not ticket:
            raise TicketNotFoundError(ticket_id=str(ticket_id))

        privileged = actor.role.is_platform_admin
        rows = await self.comment_dao.list_for_ticket(ticket_id, include_internal=privileged)

        if privileged:
            responses = [CommentResponse.model_validate(row) for row in rows]
        else:
            # Second pass in case the query filter is ever loosened
            responses = [
                CommentResponse.model_validate(row).model_copy(update={"is_internal": False})
                for row in rows
                if not row.is_internal
            ]

        total = await self.comment_dao.count_for_ticket(ticket_id)
        logger.info(
            f"Listed comments on ticket #{ticket.ticket_number} for user {actor.id}: "
            f"total={total} returned={len(responses)} filtered={total - len(responses)}"
        )
        return responses

    async def _dispatch_comment(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        comment_text: str,
        is_internal: bool,
    ) -> None:
        if self.notifier is None:
            return
        try:
            ticket = await self.ticket_dao.get_with_relations(ticket_id)
            notice = CommentNotice(
                ticket=TicketSnapshot.from_ticket(ticket),
                comment_text=comment_text,
                is_internal=is_internal,
                author=Recipient.from_user(actor),
            )
            self.dispatcher.submit(
                self.notifier.notify_comment(notice),
                name=f"comment:{notice.ticket.ticket_number}",
            )
        except Exception:
            logger.exception(f"Failed to dispatch comment notification for {ticket_id}")
