"""
Transition Matrix Tests.

WHAT: Unit tests for workorders.core.transitions and its agreement with
the storage-side constraint in workorders.db.constraints.

WHY: The matrix is the single authority on who may move a ticket where.
The storage constraint is a deliberately separate restatement; if the two
ever disagree, either the API offers moves the database refuses or the
database accepts moves the API would never make.
"""

import itertools

import pytest

from workorders.core.transitions import (
    TERMINAL_STATUSES,
    TRANSITION_MATRIX,
    allowed_transitions,
    is_terminal,
    is_transition_allowed,
    ordered,
    require_exhaustive,
)
from workorders.db.constraints import storage_is_terminal, storage_transition_permitted
from workorders.models.ticket import TicketStatus
from workorders.models.user import UserRole


ALL_TRIPLES = list(itertools.product(TicketStatus, TicketStatus, UserRole))


class TestMatrixShape:
    """Tests for completeness of the matrix."""

    def test_every_status_role_pair_has_an_entry(self):
        """
        WHY: A missing pair would silently deny at runtime.
        """
        for status, role in itertools.product(TicketStatus, UserRole):
            assert (status, role) in TRANSITION_MATRIX

    def test_matrix_is_read_only(self):
        with pytest.raises(TypeError):
            TRANSITION_MATRIX[(TicketStatus.NEW, UserRole.RESIDENT)] = frozenset({TicketStatus.CANCELLED})

    def test_no_self_transitions(self):
        for (status, role), targets in TRANSITION_MATRIX.items():
            assert status not in targets, f"{status.value} -> itself for {role.value}"

    def test_require_exhaustive_names_missing_members(self):
        with pytest.raises(RuntimeError, match="resident"):
            require_exhaustive(
                {UserRole.PLATFORM_ADMIN: 1, UserRole.ORG_ADMIN: 1, UserRole.ORG_MEMBER: 1},
                UserRole,
                "Test table",
            )


class TestRoleRules:
    """Tests for the per-role rules."""

    def test_resident_can_never_change_status(self):
        for status in TicketStatus:
            assert allowed_transitions(status, UserRole.RESIDENT) == frozenset()

    def test_org_admin_and_org_member_have_identical_rights(self):
        for status in TicketStatus:
            assert allowed_transitions(status, UserRole.ORG_ADMIN) == allowed_transitions(
                status, UserRole.ORG_MEMBER
            )

    def test_org_user_can_cancel_new_ticket(self):
        assert allowed_transitions(TicketStatus.NEW, UserRole.ORG_ADMIN) == {TicketStatus.CANCELLED}

    def test_org_user_can_answer_approval_request(self):
        """
        WHY: Waiting approval is the property manager's decision point.
        """
        assert allowed_transitions(TicketStatus.WAITING_APPROVAL, UserRole.ORG_MEMBER) == {
            TicketStatus.SCHEDULED,
            TicketStatus.CANCELLED,
        }

    def test_org_user_cannot_move_scheduled_ticket(self):
        assert not is_transition_allowed(TicketStatus.SCHEDULED, TicketStatus.DISPATCHED, UserRole.ORG_ADMIN)

    def test_platform_admin_happy_path(self):
        path = [
            TicketStatus.NEW,
            TicketStatus.SCHEDULED,
            TicketStatus.DISPATCHED,
            TicketStatus.ON_SITE,
            TicketStatus.IN_PROGRESS,
            TicketStatus.COMPLETED,
            TicketStatus.INVOICED,
        ]
        for current, target in zip(path, path[1:]):
            assert is_transition_allowed(current, target, UserRole.PLATFORM_ADMIN)

    def test_completed_only_moves_to_invoiced_for_platform_admin(self):
        assert allowed_transitions(TicketStatus.COMPLETED, UserRole.PLATFORM_ADMIN) == {TicketStatus.INVOICED}
        for role in (UserRole.ORG_ADMIN, UserRole.ORG_MEMBER, UserRole.RESIDENT):
            assert allowed_transitions(TicketStatus.COMPLETED, role) == frozenset()

    def test_platform_admin_cannot_skip_ahead(self):
        assert not is_transition_allowed(TicketStatus.NEW, TicketStatus.COMPLETED, UserRole.PLATFORM_ADMIN)

    def test_accepts_raw_values(self):
        assert is_transition_allowed("new", "cancelled", "org_admin")


class TestTerminalStatuses:
    """Tests for terminal statuses."""

    def test_invoiced_and_cancelled_are_terminal(self):
        assert TERMINAL_STATUSES == {TicketStatus.INVOICED, TicketStatus.CANCELLED}

    def test_completed_is_not_terminal(self):
        assert not is_terminal(TicketStatus.COMPLETED)

    @pytest.mark.parametrize("status", [TicketStatus.INVOICED, TicketStatus.CANCELLED])
    def test_terminal_status_has_no_exit_for_any_role(self, status):
        for role in UserRole:
            assert allowed_transitions(status, role) == frozenset()


class TestStorageAgreement:
    """Tests that the application matrix and the storage constraint agree."""

    def test_every_triple_agrees(self):
        """
        WHY: The two rule sets are written independently on purpose. Every
        (from, to, role) combination must get the same answer from both.
        """
        mismatches = []
        for old, new, role in ALL_TRIPLES:
            if old == new:
                continue
            app_says = is_transition_allowed(old, new, role)
            storage_says = storage_transition_permitted(old.value, new.value, role.value)
            if app_says != storage_says:
                mismatches.append((old.value, new.value, role.value, app_says, storage_says))
        assert mismatches == []

    def test_terminal_sets_agree(self):
        for status in TicketStatus:
            assert is_terminal(status) == storage_is_terminal(status.value)


class TestOrdered:
    def test_orders_by_workflow(self):
        shuffled = [TicketStatus.CANCELLED, TicketStatus.NEW, TicketStatus.SCHEDULED]
        assert ordered(shuffled) == [TicketStatus.NEW, TicketStatus.SCHEDULED, TicketStatus.CANCELLED]
