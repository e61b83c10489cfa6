"""
Storage-side ticket status constraint.

WHAT: An independent restatement of the status transition rules, applied by
the DAO inside the same unit of work as the status UPDATE.

WHY: The service layer already checks transitions. This copy exists so a
bug there, or a write path that skips the service, still cannot move a
ticket illegally. It is written deliberately differently from
workorders.core.transitions (no shared tables) so one mistake is unlikely
to appear in both. The PostgreSQL trigger installed by migration 002
implements the same rules in PL/pgSQL.

HOW: A CASE-style function per starting status. Violations raise
StatusConstraintViolation carrying a structured code; the PostgreSQL
trigger raises custom SQLSTATEs that the DAO maps to the same codes.
"""

from typing import Optional

# SQLSTATEs raised by the tickets_status_guard trigger (migration 002)
SQLSTATE_TERMINAL_STATUS = "WO001"
SQLSTATE_TRANSITION_BLOCKED = "WO002"

TERMINAL_STATUS = "TERMINAL_STATUS"
TRANSITION_BLOCKED = "TRANSITION_BLOCKED"

# Transaction-local setting the trigger reads the actor's role from
ACTOR_ROLE_SETTING = "workorders.actor_role"


class StatusConstraintViolation(Exception):
    """
    Raised when the storage layer refuses a status change.

    Attributes:
        code: TERMINAL_STATUS or TRANSITION_BLOCKED
        old_status / new_status / role: The refused move (plain strings)
    """

    def __init__(self, code: str, old_status: str, new_status: str, role: str):
        self.code = code
        self.old_status = old_status
        self.new_status = new_status
        self.role = role
        if code == TERMINAL_STATUS:
            message = f"Cannot transition from terminal status: {old_status}"
        else:
            message = (
                f'Status transition from "{old_status}" to "{new_status}" '
                f'is not permitted for role "{role}"'
            )
        super().__init__(message)


def _value(member) -> str:
    return getattr(member, "value", member)


def storage_transition_permitted(old: str, new: str, role: str) -> bool:
    """
    Whether the storage layer accepts old -> new for role.

    Works on plain string values so it can be compared one-for-one with
    the SQL trigger.
    """
    old, new, role = _value(old), _value(new), _value(role)
    if old == new:
        return True

    platform = role == "platform_admin"
    org_user = role in ("org_admin", "org_member")

    if old == "new":
        if platform:
            return new in ("needs_info", "scheduled", "cancelled")
        return org_user and new == "cancelled"
    if old == "needs_info":
        if platform:
            return new in ("new", "scheduled", "cancelled")
        return org_user and new in ("new", "cancelled")
    if old == "scheduled":
        return platform and new in ("dispatched", "needs_info", "cancelled")
    if old == "dispatched":
        return platform and new in ("on_site", "scheduled", "cancelled")
    if old == "on_site":
        return platform and new in ("in_progress", "cancelled")
    if old == "in_progress":
        return platform and new in ("waiting_approval", "completed", "cancelled")
    if old == "waiting_approval":
        if platform:
            return new in ("scheduled", "in_progress", "cancelled")
        return org_user and new in ("scheduled", "cancelled")
    if old == "completed":
        return platform and new == "invoiced"
    # invoiced, cancelled, or anything unknown
    return False


def storage_is_terminal(status: str) -> bool:
    return _value(status) in ("invoiced", "cancelled")


def check_status_change(old, new, role) -> None:
    """
    Enforce the storage constraint for one status change.

    Raises:
        StatusConstraintViolation: TERMINAL_STATUS when leaving invoiced or
            cancelled, TRANSITION_BLOCKED for any other refused move
    """
    old, new, role = _value(old), _value(new), _value(role)
    if old == new:
        return
    if storage_is_terminal(old):
        raise StatusConstraintViolation(TERMINAL_STATUS, old, new, role)
    if not storage_transition_permitted(old, new, role):
        raise StatusConstraintViolation(TRANSITION_BLOCKED, old, new, role)


def violation_from_sqlstate(
    sqlstate: Optional[str], old, new, role
) -> Optional[StatusConstraintViolation]:
    """
    Map a trigger SQLSTATE to a StatusConstraintViolation.

    Returns None for any SQLSTATE the trigger does not raise.
    """
    if sqlstate == SQLSTATE_TERMINAL_STATUS:
        return StatusConstraintViolation(TERMINAL_STATUS, _value(old), _value(new), _value(role))
    if sqlstate == SQLSTATE_TRANSITION_BLOCKED:
        return StatusConstraintViolation(TRANSITION_BLOCKED, _value(old), _value(new), _value(role))
    return None
