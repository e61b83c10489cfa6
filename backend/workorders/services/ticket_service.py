"""
Ticket Service.

WHAT: Creation, reads and the update coordinator for work order tickets.

WHY: The update path is where every lifecycle rule meets:
1. The caller must be able to see the ticket
2. The transition matrix decides which status moves the role may make
3. Restricted fields are writable by platform staff only
4. The write is conditional on the status read at the start, so two
   racing updates cannot both apply
5. Notifications go out after the commit, detached from the request

HOW: Orchestrates TicketDAO and TicketCommentDAO. Status checks go
through workorders.core.transitions; the DAO re-checks them against the
storage constraint in the same unit of work. Notifications are handed to
the NotificationDispatcher as detached tasks.
"""

import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NoChangesError,
    ResourceNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from workorders.core.transitions import allowed_transitions, is_terminal, ordered
from workorders.dao.building import BuildingDAO
from workorders.dao.ticket import TicketCommentDAO, TicketDAO
from workorders.db.constraints import StatusConstraintViolation
from workorders.models.ticket import IssueType, Ticket, TicketSeverity, TicketStatus
from workorders.models.user import User
from workorders.schemas.ticket import TicketCreate, TicketUpdate, TransitionOptions
from workorders.services.dispatcher import NotificationDispatcher, get_dispatcher
from workorders.services.notices import (
    NewTicketNotice,
    Recipient,
    StatusChangeNotice,
    TicketSnapshot,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Severity
# ============================================================================

ISSUE_DEFAULT_SEVERITY = {
    IssueType.ACTIVE_LEAK: TicketSeverity.EMERGENCY,
    IssueType.SEWER_BACKUP: TicketSeverity.EMERGENCY,
    IssueType.GAS_SMELL: TicketSeverity.EMERGENCY,
    IssueType.WATER_HEATER: TicketSeverity.URGENT,
    IssueType.DRAIN_CLOG: TicketSeverity.STANDARD,
    IssueType.TOILET_FAUCET_SHOWER: TicketSeverity.STANDARD,
    IssueType.OTHER_PLUMBING: TicketSeverity.STANDARD,
}

EMERGENCY_KEYWORDS = (
    "leak",
    "flood",
    "flooding",
    "water damage",
    "burst",
    "dripping",
    "sewage",
    "sewer",
    "backup",
    "overflow",
    "raw sewage",
    "gas",
    "gas smell",
    "rotten egg",
    "gas leak",
)


def has_emergency_keyword(description: str) -> bool:
    text = description.lower()
    return any(keyword in text for keyword in EMERGENCY_KEYWORDS)


def resolve_severity(
    issue_type: IssueType,
    requested: TicketSeverity,
    description: str,
) -> Tuple[TicketSeverity, bool]:
    """
    Final severity for a new ticket.

    WHAT: The most urgent of the requested severity, the issue type's
    default, and EMERGENCY when the description mentions an emergency
    keyword. Severity is only ever raised.

    Returns:
        (severity, escalated) where escalated means it was raised above requested
    """
    candidates = [requested, ISSUE_DEFAULT_SEVERITY[issue_type]]
    if has_emergency_keyword(description):
        candidates.append(TicketSeverity.EMERGENCY)
    severity = min(candidates, key=lambda s: s.rank)
    return severity, severity != requested


# ============================================================================
# Ticket Service
# ============================================================================


class TicketService:
    """
    Service for ticket lifecycle operations.

    WHAT: Creates tickets, reads them through the caller's visibility, and
    coordinates updates.

    WHY: Authorization failures must never leave partial state, so every
    check runs before the single conditional write.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier=None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        """
        Initialize TicketService.

        Args:
            session: Async database session
            notifier: NotificationService (None disables notifications)
            dispatcher: Detached task owner (defaults to the process-wide one)
        """
        self.session = session
        self.ticket_dao = TicketDAO(session)
        self.comment_dao = TicketCommentDAO(session)
        self.building_dao = BuildingDAO(session)
        self.notifier = notifier
        self.dispatcher = dispatcher or get_dispatcher()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_ticket(self, actor: User, ticket_id: uuid.UUID) -> Ticket:
        """
        Get a ticket visible to the actor.

        Raises:
            TicketNotFoundError: If the ticket does not exist or is not visible
        """
        ticket = await self.ticket_dao.get_visible(ticket_id, actor)
        if not ticket:
            raise TicketNotFoundError(ticket_id=str(ticket_id))
        return ticket

    def allowed_for(self, actor: User, ticket: Ticket) -> TransitionOptions:
        """
        Statuses the actor may move this ticket to.

        WHY: Served to the client from the same matrix the update path uses.
        """
        return TransitionOptions(
            ticket_id=ticket.id,
            current_status=ticket.status,
            role=actor.role,
            allowed_transitions=ordered(allowed_transitions(ticket.status, actor.role)),
            is_terminal=is_terminal(ticket.status),
        )

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_ticket(self, actor: User, data: TicketCreate) -> Tuple[Ticket, bool]:
        """
        Create a ticket.

        WHAT: Validates the building and space, escalates severity, writes
        the ticket and its first status log row, then notifies platform staff.

        Args:
            actor: Reporting user
            data: Validated creation request

        Returns:
            (ticket, severity_escalated)

        Raises:
            ResourceNotFoundError: If the building is not in the actor's scope
            ValidationError: If the space is not in the building
        """
        building = await self.building_dao.get_for_user(data.building_id, actor)
        if not building:
            raise ResourceNotFoundError(
                message="Building not found",
                building_id=data.building_id,
            )

        space = await self.building_dao.get_space_in_building(data.space_id, data.building_id)
        if not space:
            raise ValidationError(
                message="Space does not belong to the selected building",
                space_id=data.space_id,
                building_id=data.building_id,
            )

        severity, escalated = resolve_severity(data.issue_type, data.severity, data.description)
        if escalated:
            logger.info(
                f"Severity escalated from {data.severity.value} to {severity.value} "
                f"({data.issue_type.value})"
            )

        ticket = await self.ticket_dao.create(
            building_id=data.building_id,
            space_id=data.space_id,
            created_by_user_id=actor.id,
            issue_type=data.issue_type,
            severity=severity,
            status=TicketStatus.NEW,
            description=data.description,
            access_instructions=data.access_instructions,
        )
        await self.ticket_dao.record_status_change(
            ticket_id=ticket.id,
            old_status=None,
            new_status=TicketStatus.NEW,
            changed_by_user_id=actor.id,
        )
        await self.session.commit()

        logger.info(
            f"Ticket #{ticket.ticket_number} created by user {actor.id} "
            f"({ticket.issue_type.value}, {ticket.severity.value})"
        )

        await self._dispatch_new_ticket(ticket.id)
        return ticket, escalated

    # =========================================================================
    # Update coordinator
    # =========================================================================

    async def update_ticket(self, actor: User, ticket_id: uuid.UUID, patch: TicketUpdate) -> Ticket:
        """
        Apply a status change and/or restricted field changes.

        WHAT:
        1. Load through the actor's visibility
        2. Check the requested transition against the matrix
        3. Reject restricted fields for non platform staff
        4. Reject an empty patch
        5. Conditional UPDATE on the status read in step 1
        6. Record a decline reason comment on cancellation (best effort)
        7. Log the transition, commit, dispatch the notification

        Args:
            actor: Authenticated user
            ticket_id: Ticket ID
            patch: Update request (explicit nulls clear restricted fields)

        Returns:
            Updated Ticket

        Raises:
            TicketNotFoundError: Missing, invisible, or deleted mid-update
            InvalidTransitionError: Move not permitted for the actor's role
            AuthorizationError: Restricted field sent by non platform staff
            NoChangesError: Nothing left to apply
            ConflictError: Status changed since it was read
        """
        ticket = await self.get_ticket(actor, ticket_id)
        current = ticket.status

        target: Optional[TicketStatus] = patch.status if "status" in patch.model_fields_set else None
        if target == current:
            target = None

        if target is not None:
            allowed = allowed_transitions(current, actor.role)
            if target not in allowed:
                allowed_values = [s.value for s in ordered(allowed)]
                suffix = (
                    f"Allowed: {', '.join(allowed_values)}"
                    if allowed_values
                    else "No transitions available for your role."
                )
                logger.warning(
                    f"Rejected transition on ticket #{ticket.ticket_number}: "
                    f"{current.value} -> {target.value} by {actor.role.value} (user {actor.id})"
                )
                raise InvalidTransitionError(
                    message=f'Cannot transition from "{current.value}" to "{target.value}" '
                    f"as {actor.role.value}. {suffix}",
                    current_status=current.value,
                    requested_status=target.value,
                    allowed_transitions=allowed_values,
                )

        restricted = patch.restricted_changes()
        if restricted and not actor.role.is_platform_admin:
            logger.warning(
                f"User {actor.id} ({actor.role.value}) tried to modify restricted fields "
                f"{sorted(restricted)} on ticket #{ticket.ticket_number}"
            )
            raise AuthorizationError(
                message=f"Only platform admin can modify: {', '.join(restricted)}",
                fields=list(restricted),
            )

        values = dict(restricted)
        if target is not None:
            values["status"] = target
        if not values:
            raise NoChangesError(ticket_id=str(ticket_id))

        try:
            updated = await self.ticket_dao.apply_update(ticket_id, current, values, actor.role)
        except StatusConstraintViolation as violation:
            logger.warning(f"Storage constraint refused ticket #{ticket.ticket_number}: {violation}")
            raise InvalidTransitionError(
                message=str(violation),
                reason=violation.code,
                current_status=violation.old_status,
                requested_status=violation.new_status,
            )

        if updated is None:
            if not await self.ticket_dao.exists(ticket_id):
                raise TicketNotFoundError(ticket_id=str(ticket_id))
            logger.warning(
                f"Concurrent modification of ticket #{ticket.ticket_number} "
                f"(expected {current.value})"
            )
            raise ConflictError(ticket_id=str(ticket_id), expected_status=current.value)

        decline_reason = patch.decline_reason if target == TicketStatus.CANCELLED else None
        if decline_reason:
            await self._record_decline_reason(actor, ticket_id, decline_reason)

        if target is not None:
            await self.ticket_dao.record_status_change(
                ticket_id=ticket_id,
                old_status=current,
                new_status=target,
                changed_by_user_id=actor.id,
                notes=decline_reason,
            )

        await self.session.commit()

        logger.info(
            f"Ticket #{updated.ticket_number} updated by user {actor.id} ({actor.role.value}): "
            f"fields={sorted(values)}"
            + (f", {current.value} -> {target.value}" if target is not None else "")
        )

        if target is not None:
            await self._dispatch_status_change(actor, ticket_id, current, target, decline_reason)

        return updated

    async def _record_decline_reason(self, actor: User, ticket_id: uuid.UUID, reason: str) -> None:
        # The update stands even if the comment cannot be written
        try:
            async with self.session.begin_nested():
                await self.comment_dao.create(
                    ticket_id=ticket_id,
                    user_id=actor.id,
                    comment_text=f"Decline reason: {reason}",
                    is_internal=False,
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record decline reason on ticket {ticket_id}: {e}")

    # =========================================================================
    # Notifications
    # =========================================================================

    async def _snapshot(self, ticket_id: uuid.UUID) -> TicketSnapshot:
        ticket = await self.ticket_dao.get_with_relations(ticket_id)
        return TicketSnapshot.from_ticket(ticket)

    async def _dispatch_new_ticket(self, ticket_id: uuid.UUID) -> None:
        if self.notifier is None:
            return
        try:
            snapshot = await self._snapshot(ticket_id)
            self.dispatcher.submit(
                self.notifier.notify_new_ticket(NewTicketNotice(ticket=snapshot)),
                name=f"new_ticket:{snapshot.ticket_number}",
            )
        except Exception:
            logger.exception(f"Failed to dispatch new ticket notification for {ticket_id}")

    async def _dispatch_status_change(
        self,
        actor: User,
        ticket_id: uuid.UUID,
        old_status: TicketStatus,
        new_status: TicketStatus,
        notes: Optional[str],
    ) -> None:
        if self.notifier is None:
            return
        try:
            snapshot = await self._snapshot(ticket_id)
            notice = StatusChangeNotice(
                ticket=snapshot,
                old_status=old_status,
                new_status=new_status,
                actor=Recipient.from_user(actor),
                notes=notes,
            )
            self.dispatcher.submit(
                self.notifier.notify_status_change(notice),
                name=f"status:{snapshot.ticket_number}:{new_status.value}",
            )
        except Exception:
            logger.exception(f"Failed to dispatch status change notification for {ticket_id}")
