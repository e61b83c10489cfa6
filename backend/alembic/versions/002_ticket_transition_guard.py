"""Ticket transition guard trigger

Revision ID: 002
Revises: 001
Create Date: 2026-02-09

WHY: The status transition rules are enforced again inside the database,
independently of the service layer. A write that bypasses the API (a
script, a manual fix, a future endpoint) still cannot move a ticket out
of a terminal status or make a move the actor's role does not allow.

The trigger reads the actor role from the transaction-local setting
workorders.actor_role (set by the DAO with set_config(..., true)) and
raises structured SQLSTATEs the application maps back to domain errors:
- WO001: ticket is in a terminal status
- WO002: transition not permitted for the role
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


GUARD_FUNCTION = r"""
CREATE OR REPLACE FUNCTION tickets_status_guard() RETURNS trigger AS $$
DECLARE
    actor_role text := nullif(current_setting('workorders.actor_role', true), '');
    platform boolean;
    org_user boolean;
    permitted boolean;
BEGIN
    IF NEW.status = OLD.status THEN
        RETURN NEW;
    END IF;

    IF OLD.status IN ('invoiced', 'cancelled') THEN
        RAISE EXCEPTION 'Cannot transition from terminal status: %', OLD.status
            USING ERRCODE = 'WO001';
    END IF;

    -- Writes made outside the application carry no role; only the
    -- terminal rule applies to them
    IF actor_role IS NULL THEN
        RETURN NEW;
    END IF;

    platform := actor_role = 'platform_admin';
    org_user := actor_role IN ('org_admin', 'org_member');

    permitted := CASE OLD.status
        WHEN 'new' THEN
            (platform AND NEW.status IN ('needs_info', 'scheduled', 'cancelled'))
            OR (org_user AND NEW.status = 'cancelled')
        WHEN 'needs_info' THEN
            (platform AND NEW.status IN ('new', 'scheduled', 'cancelled'))
            OR (org_user AND NEW.status IN ('new', 'cancelled'))
        WHEN 'scheduled' THEN
            platform AND NEW.status IN ('dispatched', 'needs_info', 'cancelled')
        WHEN 'dispatched' THEN
            platform AND NEW.status IN ('on_site', 'scheduled', 'cancelled')
        WHEN 'on_site' THEN
            platform AND NEW.status IN ('in_progress', 'cancelled')
        WHEN 'in_progress' THEN
            platform AND NEW.status IN ('waiting_approval', 'completed', 'cancelled')
        WHEN 'waiting_approval' THEN
            (platform AND NEW.status IN ('scheduled', 'in_progress', 'cancelled'))
            OR (org_user AND NEW.status IN ('scheduled', 'cancelled'))
        WHEN 'completed' THEN
            platform AND NEW.status = 'invoiced'
        ELSE false
    END;

    IF NOT permitted THEN
        RAISE EXCEPTION 'Status transition from "%" to "%" is not permitted for role "%"',
            OLD.status, NEW.status, actor_role
            USING ERRCODE = 'WO002';
    END IF;

    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""


def upgrade() -> None:
    """
    Install the guard function and a BEFORE UPDATE OF status trigger.
    """
    op.execute(GUARD_FUNCTION)
    op.execute(
        """
        CREATE TRIGGER tickets_status_guard
        BEFORE UPDATE OF status ON tickets
        FOR EACH ROW EXECUTE FUNCTION tickets_status_guard()
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS tickets_status_guard ON tickets")
    op.execute("DROP FUNCTION IF EXISTS tickets_status_guard()")
