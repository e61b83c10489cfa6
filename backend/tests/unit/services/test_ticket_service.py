"""
Unit tests for TicketService.

WHAT: Tests for ticket creation and the update coordinator.

WHY: The update path combines visibility, the transition matrix, the
restricted-field rule and the conditional write. Every rejection must
leave the ticket exactly as it was, and notifications must only follow a
committed change.

HOW: Real DAOs on the in-memory database, a recording notifier, and a
fresh dispatcher drained before assertions.
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from workorders.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NoChangesError,
    ResourceNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from workorders.models.ticket import (
    IssueType,
    StatusChangeEvent,
    Ticket,
    TicketComment,
    TicketSeverity,
    TicketStatus,
)
from workorders.models.base import Base
from workorders.models.user import UserRole
from workorders.schemas.ticket import TicketCreate, TicketUpdate
from workorders.services.ticket_service import TicketService
from tests.factories import (
    BuildingFactory,
    OrganizationFactory,
    SpaceFactory,
    TicketFactory,
    UserFactory,
)


@pytest.fixture
def service(db_session, notifier, dispatcher) -> TicketService:
    return TicketService(db_session, notifier=notifier, dispatcher=dispatcher)


async def _ticket(db_session, tenancy, **kwargs):
    kwargs.setdefault("created_by", tenancy.resident)
    return await TicketFactory.create(db_session, tenancy.building, tenancy.space, **kwargs)


async def _row(db_session, ticket_id) -> dict:
    """Every column of the ticket row, read straight from the table."""
    result = await db_session.execute(select(Ticket.__table__).where(Ticket.id == ticket_id))
    return dict(result.mappings().one())


async def _status_log(db_session, ticket_id):
    result = await db_session.execute(
        select(StatusChangeEvent).where(StatusChangeEvent.ticket_id == ticket_id)
    )
    return list(result.scalars().all())


# ============================================================================
# Creation
# ============================================================================


class TestCreateTicket:
    """Tests for create_ticket."""

    def _data(self, tenancy, **overrides) -> TicketCreate:
        values = dict(
            building_id=tenancy.building.id,
            space_id=tenancy.space.id,
            issue_type=IssueType.DRAIN_CLOG,
            description="Kitchen sink drains slowly",
        )
        values.update(overrides)
        return TicketCreate(**values)

    @pytest.mark.asyncio
    async def test_creates_new_ticket_with_log_row(self, db_session, service, tenancy, dispatcher, notifier):
        ticket, escalated = await service.create_ticket(tenancy.resident, self._data(tenancy))

        assert ticket.status == TicketStatus.NEW
        assert ticket.ticket_number == 1001
        assert ticket.created_by_user_id == tenancy.resident.id
        assert escalated is False

        log = await _status_log(db_session, ticket.id)
        assert [(e.old_status, e.new_status) for e in log] == [(None, TicketStatus.NEW)]

        await dispatcher.drain()
        assert [n.ticket.ticket_number for n in notifier.new_tickets] == [1001]
        assert notifier.new_tickets[0].ticket.building_name == "Maple Court"

    @pytest.mark.asyncio
    async def test_severity_escalated_from_description(self, service, tenancy):
        ticket, escalated = await service.create_ticket(
            tenancy.resident,
            self._data(tenancy, issue_type=IssueType.OTHER_PLUMBING, description="Sewage coming up the drain"),
        )

        assert ticket.severity == TicketSeverity.EMERGENCY
        assert escalated is True

    @pytest.mark.asyncio
    async def test_building_of_other_organization_is_not_found(self, service, tenancy):
        with pytest.raises(ResourceNotFoundError, match="Building not found"):
            await service.create_ticket(
                tenancy.resident, self._data(tenancy, building_id=tenancy.other_building.id)
            )

    @pytest.mark.asyncio
    async def test_platform_admin_may_file_anywhere(self, db_session, service, tenancy):
        other_space = await SpaceFactory.create(db_session, tenancy.other_building, unit_number="12")

        ticket, _ = await service.create_ticket(
            tenancy.platform_admin,
            self._data(tenancy, building_id=tenancy.other_building.id, space_id=other_space.id),
        )

        assert ticket.building_id == tenancy.other_building.id

    @pytest.mark.asyncio
    async def test_space_outside_building(self, db_session, service, tenancy):
        other_space = await SpaceFactory.create(db_session, tenancy.other_building)

        with pytest.raises(ValidationError, match="Space does not belong"):
            await service.create_ticket(tenancy.resident, self._data(tenancy, space_id=other_space.id))

    @pytest.mark.asyncio
    async def test_no_notifier_means_no_dispatch(self, db_session, tenancy, dispatcher):
        service = TicketService(db_session, notifier=None, dispatcher=dispatcher)
        await service.create_ticket(tenancy.resident, self._data(tenancy))
        assert dispatcher.pending == 0


class TestConcurrentCreation:
    """Tests for two creations racing on separate connections."""

    @pytest_asyncio.fixture
    async def file_engine(self, tmp_path):
        """
        File-backed database shared by several connections.

        WHY: The in-memory test database is one connection; a race needs two.
        """
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}",
            poolclass=NullPool,
            connect_args={"timeout": 10},
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_simultaneous_creations_get_distinct_numbers(self, file_engine, dispatcher):
        """
        WHY: Two residents filing at the same moment must both succeed; a
        collision on ticket_number must never surface as a server error.
        """
        sessions = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        async with sessions() as seed:
            org = await OrganizationFactory.create(seed)
            building = await BuildingFactory.create(seed, organization=org)
            space = await SpaceFactory.create(seed, building=building)
            residents = [
                await UserFactory.create(seed, role=UserRole.RESIDENT, organization=org)
                for _ in range(2)
            ]

        data = TicketCreate(
            building_id=building.id,
            space_id=space.id,
            issue_type=IssueType.DRAIN_CLOG,
            description="Kitchen sink drains slowly",
        )

        async def file_ticket(resident):
            async with sessions() as session:
                service = TicketService(session, notifier=None, dispatcher=dispatcher)
                ticket, _ = await service.create_ticket(resident, data)
                return ticket.ticket_number

        numbers = await asyncio.gather(*(file_ticket(r) for r in residents))

        assert sorted(numbers) == [1001, 1002]
        async with sessions() as check:
            result = await check.execute(select(func.count()).select_from(StatusChangeEvent))
            assert result.scalar_one() == 2


# ============================================================================
# Update coordinator
# ============================================================================


class TestTransitions:
    """Tests for status moves through update_ticket."""

    @pytest.mark.asyncio
    async def test_org_admin_cancels_new_ticket(self, db_session, service, tenancy, dispatcher, notifier):
        ticket = await _ticket(db_session, tenancy)

        updated = await service.update_ticket(
            tenancy.org_admin, ticket.id, TicketUpdate(status=TicketStatus.CANCELLED)
        )

        assert updated.status == TicketStatus.CANCELLED
        log = await _status_log(db_session, ticket.id)
        assert [(e.old_status, e.new_status, e.changed_by_user_id) for e in log] == [
            (TicketStatus.NEW, TicketStatus.CANCELLED, tenancy.org_admin.id)
        ]

        await dispatcher.drain()
        change = notifier.status_changes[0]
        assert (change.old_status, change.new_status) == (TicketStatus.NEW, TicketStatus.CANCELLED)
        assert change.actor.role == UserRole.ORG_ADMIN

    @pytest.mark.asyncio
    async def test_rejected_move_reports_allowed_set(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.SCHEDULED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.update_ticket(
                tenancy.org_admin, ticket.id, TicketUpdate(status=TicketStatus.DISPATCHED)
            )

        exc = exc_info.value
        assert exc.error_code == "INVALID_TRANSITION"
        assert exc.status_code == 403
        assert exc.context["current_status"] == "scheduled"
        assert exc.context["requested_status"] == "dispatched"
        assert exc.context["allowed_transitions"] == []
        assert "No transitions available for your role." in exc.message

    @pytest.mark.asyncio
    async def test_rejected_move_lists_allowed_in_workflow_order(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.update_ticket(
                tenancy.platform_admin, ticket.id, TicketUpdate(status=TicketStatus.COMPLETED)
            )

        assert exc_info.value.context["allowed_transitions"] == ["needs_info", "scheduled", "cancelled"]
        assert "Allowed: needs_info, scheduled, cancelled" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_resident_cannot_move_own_ticket(self, db_session, service, tenancy, dispatcher, notifier):
        ticket = await _ticket(db_session, tenancy)

        with pytest.raises(InvalidTransitionError):
            await service.update_ticket(
                tenancy.resident, ticket.id, TicketUpdate(status=TicketStatus.CANCELLED)
            )

        await dispatcher.drain()
        assert notifier.status_changes == []
        assert await _status_log(db_session, ticket.id) == []

    @pytest.mark.asyncio
    async def test_terminal_ticket_cannot_move(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.INVOICED)

        with pytest.raises(InvalidTransitionError):
            await service.update_ticket(
                tenancy.platform_admin, ticket.id, TicketUpdate(status=TicketStatus.COMPLETED)
            )

    @pytest.mark.asyncio
    async def test_invisible_ticket_is_not_found(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)

        with pytest.raises(TicketNotFoundError):
            await service.update_ticket(
                tenancy.outsider, ticket.id, TicketUpdate(status=TicketStatus.CANCELLED)
            )

    @pytest.mark.asyncio
    async def test_completion_sets_completed_at(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.IN_PROGRESS)

        updated = await service.update_ticket(
            tenancy.platform_admin, ticket.id, TicketUpdate(status=TicketStatus.COMPLETED)
        )

        assert updated.completed_at is not None


class TestRestrictedFields:
    """Tests for the restricted-field rule."""

    @pytest.mark.asyncio
    async def test_org_user_cannot_set_restricted_fields(self, db_session, service, tenancy):
        """
        WHY: A rejected patch must leave every column untouched, updated_at
        included, not just the fields it tried to set.
        """
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.WAITING_APPROVAL)
        before = await _row(db_session, ticket.id)

        with pytest.raises(AuthorizationError) as exc_info:
            await service.update_ticket(
                tenancy.org_member,
                ticket.id,
                TicketUpdate(status=TicketStatus.SCHEDULED, quote_amount=Decimal("1.00")),
            )

        assert exc_info.value.error_code == "FORBIDDEN"
        assert exc_info.value.context["fields"] == ["quote_amount"]

        assert await _row(db_session, ticket.id) == before
        assert before["status"] == TicketStatus.WAITING_APPROVAL
        assert before["quote_amount"] is None
        assert await _status_log(db_session, ticket.id) == []

    @pytest.mark.asyncio
    async def test_platform_admin_schedules_with_details(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)

        updated = await service.update_ticket(
            tenancy.platform_admin,
            ticket.id,
            TicketUpdate(
                status=TicketStatus.SCHEDULED,
                assigned_technician="Alex Tech",
                scheduled_date=date(2026, 3, 2),
                scheduled_time_window="8am-12pm",
            ),
        )

        assert updated.status == TicketStatus.SCHEDULED
        assert updated.assigned_technician == "Alex Tech"
        assert updated.scheduled_date == date(2026, 3, 2)

    @pytest.mark.asyncio
    async def test_explicit_null_clears_field(self, db_session, service, tenancy, dispatcher, notifier):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.SCHEDULED, assigned_technician="Alex")

        updated = await service.update_ticket(
            tenancy.platform_admin, ticket.id, TicketUpdate.model_validate({"assigned_technician": None})
        )

        assert updated.assigned_technician is None
        assert updated.status == TicketStatus.SCHEDULED

        await dispatcher.drain()
        assert notifier.status_changes == []
        assert await _status_log(db_session, ticket.id) == []

    @pytest.mark.asyncio
    async def test_empty_patch(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)

        with pytest.raises(NoChangesError):
            await service.update_ticket(tenancy.platform_admin, ticket.id, TicketUpdate())

    @pytest.mark.asyncio
    async def test_same_status_only_is_no_change(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)

        with pytest.raises(NoChangesError):
            await service.update_ticket(tenancy.org_admin, ticket.id, TicketUpdate(status=TicketStatus.NEW))


class TestConcurrency:
    """Tests for the conditional write losing a race."""

    @pytest.mark.asyncio
    async def test_concurrent_move_is_conflict(self, db_session, service, tenancy, dispatcher, notifier):
        ticket = await _ticket(db_session, tenancy)
        original = service.ticket_dao.apply_update

        async def racing(ticket_id, expected_status, values, actor_role):
            # Another request cancels the ticket between the read and the write
            await db_session.execute(
                update(Ticket).where(Ticket.id == ticket_id).values(status=TicketStatus.CANCELLED)
            )
            return await original(ticket_id, expected_status, values, actor_role)

        service.ticket_dao.apply_update = racing

        with pytest.raises(ConflictError) as exc_info:
            await service.update_ticket(
                tenancy.platform_admin, ticket.id, TicketUpdate(status=TicketStatus.SCHEDULED)
            )

        assert exc_info.value.status_code == 409
        result = await db_session.execute(select(Ticket.status).where(Ticket.id == ticket.id))
        assert result.scalar_one() == TicketStatus.CANCELLED
        assert await _status_log(db_session, ticket.id) == []

        await dispatcher.drain()
        assert notifier.status_changes == []

    @pytest.mark.asyncio
    async def test_deleted_mid_update_is_not_found(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy)
        original = service.ticket_dao.apply_update

        async def vanishing(ticket_id, expected_status, values, actor_role):
            await db_session.execute(delete(Ticket).where(Ticket.id == ticket_id))
            return await original(ticket_id, expected_status, values, actor_role)

        service.ticket_dao.apply_update = vanishing

        with pytest.raises(TicketNotFoundError):
            await service.update_ticket(
                tenancy.platform_admin, ticket.id, TicketUpdate(status=TicketStatus.SCHEDULED)
            )


class TestDeclineReason:
    @pytest.mark.asyncio
    async def test_cancellation_records_reason(self, db_session, service, tenancy, dispatcher, notifier):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.WAITING_APPROVAL)

        await service.update_ticket(
            tenancy.org_admin,
            ticket.id,
            TicketUpdate(status=TicketStatus.CANCELLED, decline_reason="Quote too high"),
        )

        comments = (
            await db_session.execute(select(TicketComment).where(TicketComment.ticket_id == ticket.id))
        ).scalars().all()
        assert [(c.comment_text, c.is_internal) for c in comments] == [("Decline reason: Quote too high", False)]

        log = await _status_log(db_session, ticket.id)
        assert log[0].notes == "Quote too high"

        await dispatcher.drain()
        assert notifier.status_changes[0].notes == "Quote too high"

    @pytest.mark.asyncio
    async def test_reason_ignored_without_cancellation(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.WAITING_APPROVAL)

        await service.update_ticket(
            tenancy.org_admin,
            ticket.id,
            TicketUpdate(status=TicketStatus.SCHEDULED, decline_reason="n/a"),
        )

        comments = (
            await db_session.execute(select(TicketComment).where(TicketComment.ticket_id == ticket.id))
        ).scalars().all()
        assert comments == []


class TestAllowedFor:
    @pytest.mark.asyncio
    async def test_matches_matrix(self, db_session, service, tenancy):
        ticket = await _ticket(db_session, tenancy, status=TicketStatus.WAITING_APPROVAL)

        options = service.allowed_for(tenancy.org_member, ticket)

        assert options.allowed_transitions == [TicketStatus.SCHEDULED, TicketStatus.CANCELLED]
        assert options.is_terminal is False

    @pytest.mark.asyncio
    async def test_get_ticket_unknown_id(self, service, tenancy):
        with pytest.raises(TicketNotFoundError):
            await service.get_ticket(tenancy.platform_admin, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_resident_gets_own_ticket(self, db_session, service, tenancy):
        other = await UserFactory.create(db_session, role=UserRole.RESIDENT, organization=tenancy.org)
        ticket = await _ticket(db_session, tenancy, created_by=other)

        assert (await service.get_ticket(other, ticket.id)).id == ticket.id
