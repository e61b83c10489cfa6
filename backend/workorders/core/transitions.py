"""
Ticket status transition rules.

WHAT: The single source of truth for which status moves each role may make.

WHY: The same matrix drives the client affordance endpoint and the service
check before any write. The storage layer keeps its own independent copy
(workorders.db.constraints) and tests assert the two agree on every
(from, to, role) combination.

HOW: A read-only mapping keyed by (status, role), built once at import and
checked for completeness against the closed TicketStatus and UserRole enums.
A missing pair raises at import rather than silently denying at runtime.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Tuple, Type

from workorders.models.ticket import TicketStatus
from workorders.models.user import UserRole


def require_exhaustive(mapping: Mapping, enum_cls: Type[Enum], name: str) -> None:
    """
    Fail fast when a role- or status-keyed table misses a member.

    Raises:
        RuntimeError: If any member of enum_cls has no entry
    """
    missing = [member.value for member in enum_cls if member not in mapping]
    if missing:
        raise RuntimeError(f"{name} has no entry for: {', '.join(missing)}")


S = TicketStatus
R = UserRole

# Per-status rules for each role. Org admins and org members share rights.
_RULES: Dict[TicketStatus, Dict[UserRole, Iterable[TicketStatus]]] = {
    S.NEW: {
        R.PLATFORM_ADMIN: (S.NEEDS_INFO, S.SCHEDULED, S.CANCELLED),
        R.ORG_ADMIN: (S.CANCELLED,),
        R.ORG_MEMBER: (S.CANCELLED,),
        R.RESIDENT: (),
    },
    S.NEEDS_INFO: {
        R.PLATFORM_ADMIN: (S.NEW, S.SCHEDULED, S.CANCELLED),
        R.ORG_ADMIN: (S.NEW, S.CANCELLED),
        R.ORG_MEMBER: (S.NEW, S.CANCELLED),
        R.RESIDENT: (),
    },
    S.SCHEDULED: {
        R.PLATFORM_ADMIN: (S.DISPATCHED, S.NEEDS_INFO, S.CANCELLED),
        R.ORG_ADMIN: (),
        R.ORG_MEMBER: (),
        R.RESIDENT: (),
    },
    S.DISPATCHED: {
        R.PLATFORM_ADMIN: (S.ON_SITE, S.SCHEDULED, S.CANCELLED),
        R.ORG_ADMIN: (),
        R.ORG_MEMBER: (),
        R.RESIDENT: (),
    },
    S.ON_SITE: {
        R.PLATFORM_ADMIN: (S.IN_PROGRESS, S.CANCELLED),
        R.ORG_ADMIN: (),
        R.ORG_MEMBER: (),
        R.RESIDENT: (),
    },
    S.IN_PROGRESS: {
        R.PLATFORM_ADMIN: (S.WAITING_APPROVAL, S.COMPLETED, S.CANCELLED),
        R.ORG_ADMIN: (),
        R.ORG_MEMBER: (),
        R.RESIDENT: (),
    },
    S.WAITING_APPROVAL: {
        R.PLATFORM_ADMIN: (S.SCHEDULED, S.IN_PROGRESS, S.CANCELLED),
        R.ORG_ADMIN: (S.SCHEDULED, S.CANCELLED),
        R.ORG_MEMBER: (S.SCHEDULED, S.CANCELLED),
        R.RESIDENT: (),
    },
    S.COMPLETED: {
        R.PLATFORM_ADMIN: (S.INVOICED,),
        R.ORG_ADMIN: (),
        R.ORG_MEMBER: (),
        R.RESIDENT: (),
    },
    S.INVOICED: {role: () for role in R},
    S.CANCELLED: {role: () for role in R},
}


def _build_matrix() -> Mapping[Tuple[TicketStatus, UserRole], FrozenSet[TicketStatus]]:
    require_exhaustive(_RULES, TicketStatus, "Transition matrix")
    matrix = {}
    for status, by_role in _RULES.items():
        require_exhaustive(by_role, UserRole, f"Transition matrix[{status.value}]")
        for role, targets in by_role.items():
            matrix[(status, role)] = frozenset(targets)
    return MappingProxyType(matrix)


TRANSITION_MATRIX = _build_matrix()

# Statuses no role may leave
TERMINAL_STATUSES: FrozenSet[TicketStatus] = frozenset(
    status for status in TicketStatus
    if not any(TRANSITION_MATRIX[(status, role)] for role in UserRole)
)

del S, R


def allowed_transitions(current_status: TicketStatus, role: UserRole) -> FrozenSet[TicketStatus]:
    """
    Statuses reachable in one step from current_status for role.

    Pure lookup with no I/O; an empty set means the role may not move the
    ticket at all.
    """
    return TRANSITION_MATRIX[(TicketStatus(current_status), UserRole(role))]


def is_transition_allowed(
    current_status: TicketStatus, target_status: TicketStatus, role: UserRole
) -> bool:
    return TicketStatus(target_status) in allowed_transitions(current_status, role)


def is_terminal(status: TicketStatus) -> bool:
    return TicketStatus(status) in TERMINAL_STATUSES


def ordered(statuses: Iterable[TicketStatus]) -> list:
    """Sort statuses by workflow order for stable messages and responses."""
    order = list(TicketStatus)
    return sorted(statuses, key=order.index)
