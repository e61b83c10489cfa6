"""
Notification Service for ticket lifecycle events.

WHAT: Decides who hears about a new ticket, a status change or a comment,
renders the message, and hands it to the email and SMS channels.

WHY: Routing depends on who acted. Platform staff updates go out to the
property managers, while property manager and resident activity goes to
the platform distribution list. Keeping those rules in one place makes
them auditable.

HOW: Event methods receive frozen notices (see notices.py), resolve
recipients through a RecipientDirectory, and send through EmailService
and SmsService. Every public method catches and logs all errors and
returns False instead of raising: notifications are best effort and run
in detached tasks.
"""

import logging
from typing import Callable, Dict, List, Optional

from workorders.core.config import NotificationRecipients, get_notification_recipients, settings
from workorders.core.transitions import require_exhaustive
from workorders.models.ticket import TicketStatus
from workorders.models.user import UserRole
from workorders.services.email import EmailMessage, EmailService
from workorders.services.email_template_service import EmailTemplateService, truncate
from workorders.services.notices import (
    CommentNotice,
    NewTicketNotice,
    Recipient,
    StatusChangeNotice,
    TicketSnapshot,
)
from workorders.services.recipient_directory import DatabaseRecipientDirectory, RecipientDirectory
from workorders.services.sms import SmsService, SmsTarget, compose_sms

logger = logging.getLogger(__name__)

COMMENT_PREVIEW_LENGTH = 80

# Status changes (by platform staff) that also text property managers
SMS_STATUSES = frozenset({
    TicketStatus.DISPATCHED,
    TicketStatus.ON_SITE,
    TicketStatus.WAITING_APPROVAL,
})

ROLE_LABELS: Dict[UserRole, str] = {
    UserRole.PLATFORM_ADMIN: "Dispatch",
    UserRole.ORG_ADMIN: "Property Manager",
    UserRole.ORG_MEMBER: "Property Manager",
    UserRole.RESIDENT: "Resident",
}
require_exhaustive(ROLE_LABELS, UserRole, "Role labels")


# ============================================================================
# Status messages
# ============================================================================


def _scheduled_message(ticket: TicketSnapshot) -> str:
    details = []
    if ticket.assigned_technician:
        details.append(f"Technician: {ticket.assigned_technician}")
    if ticket.scheduled_date:
        details.append(f"Date: {ticket.scheduled_date.strftime('%A, %B %d, %Y')}")
    if ticket.scheduled_time_window:
        details.append(f"Window: {ticket.scheduled_time_window}")
    message = "Service has been scheduled."
    return f"{message} {'. '.join(details)}." if details else message


def _approval_message(ticket: TicketSnapshot) -> str:
    if ticket.quote_amount is not None:
        return f"A quote of ${ticket.quote_amount:,.2f} is awaiting your approval."
    return "A quote is awaiting your approval."


def _invoiced_message(ticket: TicketSnapshot) -> str:
    if ticket.invoice_number:
        return f"The work has been invoiced (Invoice #{ticket.invoice_number})."
    return "The work has been invoiced."


STATUS_MESSAGES: Dict[TicketStatus, Callable[[TicketSnapshot], str]] = {
    TicketStatus.NEW: lambda t: "The ticket has been returned to the queue for review.",
    TicketStatus.NEEDS_INFO: lambda t: "More information is needed before this ticket can be scheduled.",
    TicketStatus.SCHEDULED: _scheduled_message,
    TicketStatus.DISPATCHED: lambda t: (
        f"{t.assigned_technician or 'A technician'} has been dispatched and is on the way."
    ),
    TicketStatus.ON_SITE: lambda t: "The technician has arrived on site.",
    TicketStatus.IN_PROGRESS: lambda t: "Work is in progress.",
    TicketStatus.WAITING_APPROVAL: _approval_message,
    TicketStatus.COMPLETED: lambda t: "The work has been completed.",
    TicketStatus.INVOICED: _invoiced_message,
    TicketStatus.CANCELLED: lambda t: "The ticket has been cancelled.",
}
require_exhaustive(STATUS_MESSAGES, TicketStatus, "Status messages")


def status_subject(ticket: TicketSnapshot, new_status: TicketStatus) -> str:
    subject = f"Ticket #{ticket.ticket_number} - {new_status.label}"
    if new_status == TicketStatus.WAITING_APPROVAL:
        subject += " - Approval Required"
    return subject


def new_ticket_subject(ticket: TicketSnapshot) -> str:
    subject = f"New Ticket #{ticket.ticket_number} - {ticket.issue_type.label} at {ticket.building_name}"
    return f"EMERGENCY: {subject}" if ticket.is_emergency else subject


# ============================================================================
# Notification Service
# ============================================================================


class NotificationService:
    """
    Routes lifecycle events to recipients over email and SMS.

    Attributes:
        email_service: Email channel
        sms_service: SMS channel (None disables SMS)
        directory: Recipient lookups
        recipients: Platform distribution lists
    """

    def __init__(
        self,
        email_service: EmailService,
        directory: RecipientDirectory,
        template_service: Optional[EmailTemplateService] = None,
        sms_service: Optional[SmsService] = None,
        recipients: Optional[NotificationRecipients] = None,
        base_url: Optional[str] = None,
    ):
        self.email_service = email_service
        self.directory = directory
        self.template_service = template_service or EmailTemplateService()
        self.sms_service = sms_service
        self.recipients = recipients or get_notification_recipients()
        self.base_url = base_url or settings.FRONTEND_URL

        self._status_routes = {
            UserRole.PLATFORM_ADMIN: self._status_to_org_users,
            UserRole.ORG_ADMIN: self._status_to_platform,
            UserRole.ORG_MEMBER: self._status_to_platform,
            UserRole.RESIDENT: self._status_to_platform,
        }
        require_exhaustive(self._status_routes, UserRole, "Status change routing")

        self._public_comment_routes = {
            UserRole.PLATFORM_ADMIN: self._comment_to_org_users,
            UserRole.ORG_ADMIN: self._comment_to_platform,
            UserRole.ORG_MEMBER: self._comment_to_platform,
            UserRole.RESIDENT: self._comment_to_platform,
        }
        require_exhaustive(self._public_comment_routes, UserRole, "Comment routing")

    def _ticket_url(self, ticket: TicketSnapshot) -> str:
        return f"{self.base_url}/tickets/{ticket.id}"

    def _ticket_context(self, ticket: TicketSnapshot) -> dict:
        return {
            "ticket_number": ticket.ticket_number,
            "ticket_url": self._ticket_url(ticket),
            "issue_label": ticket.issue_type.label,
            "severity_label": ticket.severity.value.title(),
            "building_name": ticket.building_name,
            "building_address": ticket.building_address,
            "space_label": ticket.space_label,
        }

    # =========================================================================
    # New ticket
    # =========================================================================

    async def notify_new_ticket(self, notice: NewTicketNotice) -> bool:
        """
        Notify platform staff of a new ticket.

        WHAT: One email to the (emergency or normal) distribution list; for
        emergencies, also an SMS to every opted-in platform admin.

        Returns:
            True if every send succeeded
        """
        ticket = notice.ticket
        try:
            to = list(self.recipients.for_severity(ticket.is_emergency))
            logger.info(
                f"New ticket #{ticket.ticket_number} notification: {len(to)} recipient(s), "
                f"emergency={ticket.is_emergency}"
            )
            context = {
                **self._ticket_context(ticket),
                "is_emergency": ticket.is_emergency,
                "description": ticket.description,
                "access_instructions": ticket.access_instructions,
                "created_by_name": ticket.created_by.full_name,
            }
            html, text = self.template_service.render(
                "new_ticket.html",
                context,
                f"{new_ticket_subject(ticket)}\n\n"
                f"Building: {ticket.building_name} ({ticket.building_address})\n"
                f"Location: {ticket.space_label}\n"
                f"Reported by: {ticket.created_by.full_name}\n\n"
                f"{ticket.description}\n\n"
                f"View ticket: {self._ticket_url(ticket)}",
            )
            result = await self.email_service.send_email(EmailMessage(
                to=to,
                subject=new_ticket_subject(ticket),
                html_content=html,
                text_content=text,
                tags={"type": "new_ticket", "severity": ticket.severity.value},
            ))
            ok = result.success

            if ticket.is_emergency and self.sms_service is not None:
                staff = await self.directory.platform_admins(sms_only=True)
                logger.info(f"Emergency SMS for ticket #{ticket.ticket_number}: {len(staff)} recipient(s)")
                body = compose_sms(
                    f"EMERGENCY #{ticket.ticket_number}",
                    [
                        (ticket.issue_type.label, 30),
                        (ticket.building_name, 40),
                        (ticket.space_label, 20),
                        (ticket.description, 80),
                    ],
                )
                await self.sms_service.send_to_many(
                    [SmsTarget(phone=r.phone, user_id=r.user_id) for r in staff],
                    body,
                    ticket_id=ticket.id,
                )
            return ok
        except Exception:
            logger.exception(f"Failed to send new ticket notification for #{ticket.ticket_number}")
            return False

    # =========================================================================
    # Status change
    # =========================================================================

    async def notify_status_change(self, notice: StatusChangeNotice) -> bool:
        """
        Notify about a ticket status change.

        WHAT: Routed by the actor's role (see _status_routes).

        Returns:
            True if every send succeeded
        """
        try:
            route = self._status_routes[notice.actor.role]
            return await route(notice)
        except Exception:
            logger.exception(
                f"Failed to send status change notification for #{notice.ticket.ticket_number}"
            )
            return False

    def _status_email(self, notice: StatusChangeNotice, to: List[str], recipient_name: Optional[str]) -> EmailMessage:
        ticket = notice.ticket
        message = STATUS_MESSAGES[notice.new_status](ticket)
        subject = status_subject(ticket, notice.new_status)
        context = {
            **self._ticket_context(ticket),
            "recipient_name": recipient_name,
            "status_label": notice.new_status.label,
            "old_status_label": notice.old_status.label,
            "status_message": message,
            "requires_approval": notice.new_status == TicketStatus.WAITING_APPROVAL,
            "actor_name": notice.actor.full_name,
            "notes": notice.notes,
        }
        greeting = f"Hi {recipient_name},\n\n" if recipient_name else ""
        html, text = self.template_service.render(
            "status_change.html",
            context,
            f"{greeting}{subject}\n\n{message}\n\n"
            f"{ticket.issue_type.label} at {ticket.building_name} ({ticket.space_label})\n\n"
            f"View ticket: {self._ticket_url(ticket)}",
        )
        return EmailMessage(
            to=to,
            subject=subject,
            html_content=html,
            text_content=text,
            tags={"type": "status_change", "status": notice.new_status.value},
        )

    async def _status_to_org_users(self, notice: StatusChangeNotice) -> bool:
        """
        Platform staff changed the status: tell the property managers.

        Each org user gets a personalized email. The resident who reported
        the ticket is included when not already on the list.
        """
        ticket = notice.ticket
        people = await self.directory.org_users(ticket.organization_id)
        creator = ticket.created_by
        if (
            creator.role == UserRole.RESIDENT
            and creator.email
            and all(p.email != creator.email for p in people)
        ):
            people = people + [creator]

        messages = [
            self._status_email(notice, [person.email], person.full_name)
            for person in people
            if person.email
        ]
        logger.info(
            f"Status change #{ticket.ticket_number} "
            f"{notice.old_status.value} -> {notice.new_status.value}: "
            f"{len(messages)} recipient(s)"
        )
        if not messages:
            logger.warning(f"No recipients for status change on ticket #{ticket.ticket_number}")
            return True

        result = await self.email_service.send_many(messages)

        if notice.new_status in SMS_STATUSES and self.sms_service is not None:
            sms_people = await self.directory.org_users(ticket.organization_id, sms_only=True)
            body = compose_sms(
                f"Ticket #{ticket.ticket_number} {notice.new_status.label}",
                [
                    (ticket.assigned_technician, 40),
                    (ticket.building_name, 40),
                    (ticket.space_label, 20),
                    (STATUS_MESSAGES[notice.new_status](ticket), 120),
                ],
            )
            await self.sms_service.send_to_many(
                [SmsTarget(phone=p.phone, user_id=p.user_id) for p in sms_people],
                body,
                ticket_id=ticket.id,
            )
        return result.success

    async def _status_to_platform(self, notice: StatusChangeNotice) -> bool:
        """A property manager changed the status: tell platform staff."""
        to = list(self.recipients.notify)
        logger.info(
            f"Status change #{notice.ticket.ticket_number} "
            f"{notice.old_status.value} -> {notice.new_status.value}: {len(to)} recipient(s)"
        )
        result = await self.email_service.send_email(self._status_email(notice, to, None))
        return result.success

    # =========================================================================
    # Comments
    # =========================================================================

    async def notify_comment(self, notice: CommentNotice) -> bool:
        """
        Notify about a new comment.

        WHAT: Internal notes go to platform staff (minus the author);
        public comments are routed by the author's role.

        Returns:
            True if every send succeeded
        """
        try:
            if notice.is_internal:
                return await self._internal_comment_to_platform(notice)
            route = self._public_comment_routes[notice.author.role]
            return await route(notice)
        except Exception:
            logger.exception(f"Failed to send comment notification for #{notice.ticket.ticket_number}")
            return False

    def _comment_email(self, notice: CommentNotice, to: List[str], recipient_name: Optional[str]) -> EmailMessage:
        ticket = notice.ticket
        role_label = ROLE_LABELS[notice.author.role]
        preview = truncate(notice.comment_text, COMMENT_PREVIEW_LENGTH)
        prefix = "Internal note" if notice.is_internal else "New comment"
        subject = f"{prefix} on Ticket #{ticket.ticket_number}: {preview}"
        context = {
            **self._ticket_context(ticket),
            "recipient_name": recipient_name,
            "is_internal": notice.is_internal,
            "author_name": notice.author.full_name,
            "author_role_label": role_label,
            "comment_text": notice.comment_text,
        }
        greeting = f"Hi {recipient_name},\n\n" if recipient_name else ""
        html, text = self.template_service.render(
            "comment.html",
            context,
            f"{greeting}{notice.author.full_name} ({role_label}) wrote on Ticket "
            f"#{ticket.ticket_number}:\n\n{notice.comment_text}\n\n"
            f"View ticket: {self._ticket_url(ticket)}",
        )
        return EmailMessage(
            to=to,
            subject=subject,
            html_content=html,
            text_content=text,
            tags={"type": "internal_comment" if notice.is_internal else "comment"},
        )

    async def _internal_comment_to_platform(self, notice: CommentNotice) -> bool:
        author_email = (notice.author.email or "").lower()
        to = [addr for addr in self.recipients.notify if addr.lower() != author_email]
        logger.info(f"Internal comment on #{notice.ticket.ticket_number}: {len(to)} recipient(s)")
        if not to:
            return True
        result = await self.email_service.send_email(self._comment_email(notice, to, None))
        return result.success

    async def _comment_to_org_users(self, notice: CommentNotice) -> bool:
        people = await self.directory.org_users(notice.ticket.organization_id)
        messages = [
            self._comment_email(notice, [person.email], person.full_name)
            for person in people
            if person.email
        ]
        logger.info(f"Comment on #{notice.ticket.ticket_number}: {len(messages)} recipient(s)")
        if not messages:
            return True
        result = await self.email_service.send_many(messages)
        return result.success

    async def _comment_to_platform(self, notice: CommentNotice) -> bool:
        to = list(self.recipients.notify)
        logger.info(f"Comment on #{notice.ticket.ticket_number}: {len(to)} recipient(s)")
        result = await self.email_service.send_email(self._comment_email(notice, to, None))
        return result.success


# Module-level singleton
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """
    Get or create the global notification service.

    HOW: Wires the database-backed directory and SMS log to their own
    session factory, since notifications outlive the request session.

    Returns:
        NotificationService instance
    """
    global _notification_service

    if _notification_service is None:
        from workorders.db.session import AsyncSessionLocal
        from workorders.services.email import get_email_service
        from workorders.services.email_template_service import get_email_template_service
        from workorders.services.sms import TwilioSmsClient

        _notification_service = NotificationService(
            email_service=get_email_service(),
            directory=DatabaseRecipientDirectory(AsyncSessionLocal),
            template_service=get_email_template_service(),
            sms_service=SmsService(TwilioSmsClient(), AsyncSessionLocal),
            recipients=get_notification_recipients(),
        )

    return _notification_service
