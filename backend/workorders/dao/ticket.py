"""
Ticket Data Access Objects.

WHAT: Database operations for tickets, comments, attachments and the
status change log.

WHY: Ticket writes are the only serialization point of the system. Every
update is a single conditional UPDATE predicated on the status the caller
read, so two racing transitions cannot both apply.

HOW: Uses SQLAlchemy 2.0 async with:
- A visibility predicate applied to every ticket read
- UPDATE ... WHERE id = :id AND status = :expected RETURNING
- The storage transition constraint checked in the same unit of work
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update, delete, func, true
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from workorders.core.transitions import require_exhaustive
from workorders.db.constraints import (
    ACTOR_ROLE_SETTING,
    check_status_change,
    violation_from_sqlstate,
)
from workorders.models.base import utc_now
from workorders.models.building import Building
from workorders.models.ticket import (
    Ticket,
    TICKET_NUMBER_START,
    TicketStatus,
    TicketComment,
    TicketAttachment,
    StatusChangeEvent,
)
from workorders.models.user import User, UserRole

logger = logging.getLogger(__name__)

# Tries at max + 1 numbering before the unique violation is raised
TICKET_NUMBER_ATTEMPTS = 5


# ============================================================================
# Visibility
# ============================================================================


def _all_tickets(user: User) -> ColumnElement:
    return true()


def _organization_tickets(user: User) -> ColumnElement:
    org_buildings = select(Building.id).where(Building.organization_id == user.organization_id)
    return Ticket.building_id.in_(org_buildings)


def _own_tickets(user: User) -> ColumnElement:
    return Ticket.created_by_user_id == user.id


_VISIBILITY: Dict[UserRole, Callable[[User], ColumnElement]] = {
    UserRole.PLATFORM_ADMIN: _all_tickets,
    UserRole.ORG_ADMIN: _organization_tickets,
    UserRole.ORG_MEMBER: _organization_tickets,
    UserRole.RESIDENT: _own_tickets,
}
require_exhaustive(_VISIBILITY, UserRole, "Ticket visibility")


def ticket_visibility(user: User) -> ColumnElement:
    """
    WHERE clause limiting tickets to those the user may see.

    WHY: Rows outside the caller's tenancy must look exactly like missing
    rows, so every read goes through this predicate.
    """
    return _VISIBILITY[user.role](user)


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    # asyncpg exposes "sqlstate", psycopg exposes "pgcode"
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


# ============================================================================
# TicketDAO
# ============================================================================


class TicketDAO:
    """
    Data Access Object for Ticket operations.

    WHAT: Reads through the visibility predicate and conditional writes.

    WHY: Centralizing ticket queries ensures the tenancy filter and the
    storage transition constraint cannot be bypassed by a service.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_visible(
        self,
        ticket_id: uuid.UUID,
        user: User,
        with_relations: bool = False,
    ) -> Optional[Ticket]:
        """
        Get a ticket the user is allowed to see.

        Args:
            ticket_id: Ticket ID
            user: Caller whose role and organization scope the query
            with_relations: Eager-load building, space and creator

        Returns:
            Ticket if found and visible, None otherwise
        """
        query = select(Ticket).where(Ticket.id == ticket_id, ticket_visibility(user))
        if with_relations:
            query = query.options(
                selectinload(Ticket.building),
                selectinload(Ticket.space),
                selectinload(Ticket.created_by),
            )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_with_relations(self, ticket_id: uuid.UUID) -> Optional[Ticket]:
        """Unscoped load with building, space and creator, for notifications."""
        result = await self.session.execute(
            select(Ticket)
            .options(
                selectinload(Ticket.building),
                selectinload(Ticket.space),
                selectinload(Ticket.created_by),
            )
            .where(Ticket.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, ticket_id: uuid.UUID) -> bool:
        result = await self.session.execute(select(Ticket.id).where(Ticket.id == ticket_id))
        return result.scalar_one_or_none() is not None

    async def next_ticket_number(self) -> int:
        """
        Next human-readable ticket number on dialects without sequences.

        PostgreSQL never calls this: tickets_ticket_number_seq assigns the
        number during the INSERT.
        """
        result = await self.session.execute(select(func.max(Ticket.ticket_number)))
        return (result.scalar() or TICKET_NUMBER_START - 1) + 1

    async def create(self, **fields: Any) -> Ticket:
        """
        Create a ticket with the next ticket number.

        WHAT: On PostgreSQL the column default (nextval of
        tickets_ticket_number_seq) numbers the row. Elsewhere the number is
        max + 1, inserted inside a SAVEPOINT and retried when a concurrent
        creation took the same number first.

        Args:
            **fields: Column values (building_id, space_id, ...)

        Returns:
            Created Ticket

        Raises:
            IntegrityError: If the insert still collides after
                TICKET_NUMBER_ATTEMPTS tries, or violates another constraint
        """
        if self.session.get_bind().dialect.supports_sequences:
            ticket = Ticket(**fields)
            self.session.add(ticket)
            await self.session.flush()
        else:
            ticket = await self._create_numbered(fields)
        await self.session.refresh(ticket)
        return ticket

    async def _create_numbered(self, fields: Dict[str, Any]) -> Ticket:
        for attempt in range(1, TICKET_NUMBER_ATTEMPTS + 1):
            number = await self.next_ticket_number()
            ticket = Ticket(ticket_number=number, **fields)
            try:
                async with self.session.begin_nested():
                    self.session.add(ticket)
                    await self.session.flush()
                return ticket
            except IntegrityError:
                if attempt == TICKET_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Ticket number {number} taken concurrently; retrying (attempt {attempt})")

    async def apply_update(
        self,
        ticket_id: uuid.UUID,
        expected_status: TicketStatus,
        values: Dict[str, Any],
        actor_role: UserRole,
    ) -> Optional[Ticket]:
        """
        Apply an update only if the ticket is still in expected_status.

        WHAT: One UPDATE ... WHERE id = :id AND status = :expected RETURNING.

        WHY: The status read at the start of the request is part of the
        predicate, so a concurrent transition makes this match zero rows
        instead of silently overwriting it. Entry into COMPLETED stamps
        completed_at in the same statement.

        Args:
            ticket_id: Ticket ID
            expected_status: Status the caller validated against
            values: Columns to set (may include "status")
            actor_role: Role checked by the storage constraint

        Returns:
            Updated Ticket, or None if no row matched

        Raises:
            StatusConstraintViolation: If the storage layer refuses the move
        """
        values = dict(values)
        new_status = values.get("status")
        if new_status is not None and new_status != expected_status:
            check_status_change(expected_status, new_status, actor_role)
            if new_status == TicketStatus.COMPLETED:
                values["completed_at"] = utc_now()
        values["updated_at"] = utc_now()

        if self.session.get_bind().dialect.name == "postgresql":
            # Read by the tickets_status_guard trigger; reset at transaction end
            await self.session.execute(
                select(func.set_config(ACTOR_ROLE_SETTING, UserRole(actor_role).value, True))
            )

        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.status == expected_status)
            .values(**values)
            .returning(Ticket)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except DBAPIError as exc:
            violation = violation_from_sqlstate(
                _sqlstate(exc), expected_status, new_status, actor_role
            )
            if violation is not None:
                raise violation from exc
            raise

        ticket = result.scalar_one_or_none()
        if ticket is None:
            logger.info(
                f"Conditional update on ticket {ticket_id} matched no rows "
                f"(expected status {TicketStatus(expected_status).value})"
            )
            return None
        await self.session.refresh(ticket)
        return ticket

    async def record_status_change(
        self,
        ticket_id: uuid.UUID,
        old_status: Optional[TicketStatus],
        new_status: TicketStatus,
        changed_by_user_id: int,
        notes: Optional[str] = None,
    ) -> StatusChangeEvent:
        """
        Append a row to the status change log.

        Returns:
            The created StatusChangeEvent
        """
        event = StatusChangeEvent(
            ticket_id=ticket_id,
            old_status=old_status,
            new_status=new_status,
            changed_by_user_id=changed_by_user_id,
            notes=notes,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_status_changes(self, ticket_id: uuid.UUID) -> List[StatusChangeEvent]:
        result = await self.session.execute(
            select(StatusChangeEvent)
            .where(StatusChangeEvent.ticket_id == ticket_id)
            .order_by(StatusChangeEvent.created_at.asc())
        )
        return list(result.scalars().all())


# ============================================================================
# TicketCommentDAO
# ============================================================================


class TicketCommentDAO:
    """
    Data Access Object for TicketComment operations.

    Comments are append-only: there is no update or delete.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        ticket_id: uuid.UUID,
        user_id: int,
        comment_text: str,
        is_internal: bool = False,
    ) -> TicketComment:
        """
        Create a new comment on a ticket.

        Returns:
            Created TicketComment with its author loaded
        """
        comment = TicketComment(
            ticket_id=ticket_id,
            user_id=user_id,
            comment_text=comment_text,
            is_internal=is_internal,
        )
        self.session.add(comment)
        await self.session.flush()
        await self.session.refresh(comment, attribute_names=["user"])
        return comment

    async def list_for_ticket(
        self,
        ticket_id: uuid.UUID,
        include_internal: bool = True,
    ) -> List[TicketComment]:
        """
        List comments for a ticket, oldest first.

        Args:
            ticket_id: Ticket ID
            include_internal: Whether to include internal notes

        Returns:
            List of comments with authors loaded
        """
        query = (
            select(TicketComment)
            .options(selectinload(TicketComment.user))
            .where(TicketComment.ticket_id == ticket_id)
        )

        if not include_internal:
            query = query.where(TicketComment.is_internal.is_(False))

        query = query.order_by(TicketComment.created_at.asc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_ticket(self, ticket_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(TicketComment).where(TicketComment.ticket_id == ticket_id)
        )
        return result.scalar_one()


# ============================================================================
# TicketAttachmentDAO
# ============================================================================


class TicketAttachmentDAO:
    """
    Data Access Object for TicketAttachment operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        ticket_id: uuid.UUID,
        uploaded_by_user_id: int,
        file_path: str,
        file_name: str,
        file_type: str,
        file_size: int,
    ) -> TicketAttachment:
        """
        Register attachment metadata.

        Returns:
            Created TicketAttachment
        """
        attachment = TicketAttachment(
            ticket_id=ticket_id,
            uploaded_by_user_id=uploaded_by_user_id,
            file_path=file_path,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
        )
        self.session.add(attachment)
        await self.session.flush()
        await self.session.refresh(attachment)
        return attachment

    async def get_by_id(self, attachment_id: uuid.UUID) -> Optional[TicketAttachment]:
        """Get attachment by ID."""
        result = await self.session.execute(
            select(TicketAttachment).where(TicketAttachment.id == attachment_id)
        )
        return result.scalar_one_or_none()

    async def delete(self, attachment_id: uuid.UUID) -> bool:
        """
        Delete attachment metadata.

        Returns:
            True if a row was deleted
        """
        result = await self.session.execute(
            delete(TicketAttachment).where(TicketAttachment.id == attachment_id)
        )
        return result.rowcount > 0
