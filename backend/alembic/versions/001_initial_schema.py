"""Initial schema - work order tables

Revision ID: 001
Revises:
Create Date: 2026-02-02

WHY: Creates the reference tables (organizations, users, buildings,
spaces) and the ticket lifecycle tables (tickets, comments, attachments,
status log, sms log). Enums are stored by their lowercase values.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLES = ('platform_admin', 'org_admin', 'org_member', 'resident')
SPACE_TYPES = ('unit', 'common_area')
TICKET_STATUSES = (
    'new', 'needs_info', 'scheduled', 'dispatched', 'on_site', 'in_progress',
    'waiting_approval', 'completed', 'invoiced', 'cancelled',
)
TICKET_SEVERITIES = ('emergency', 'urgent', 'standard')
ISSUE_TYPES = (
    'active_leak', 'sewer_backup', 'drain_clog', 'water_heater', 'gas_smell',
    'toilet_faucet_shower', 'other_plumbing',
)
SMS_STATUSES = ('sent', 'failed', 'sandbox')

# Ticket numbers are assigned by the database, starting at 1001
TICKET_NUMBER_SEQUENCE = sa.Sequence('tickets_ticket_number_seq', start=1001)

ENUMS = {
    'userrole': USER_ROLES,
    'spacetype': SPACE_TYPES,
    'ticketstatus': TICKET_STATUSES,
    'ticketseverity': TICKET_SEVERITIES,
    'issuetype': ISSUE_TYPES,
    'smsstatus': SMS_STATUSES,
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    """
    Create all tables and enum types.

    WHY: PostgreSQL ENUMs give type safety at the database level; the
    transition rules themselves are installed by migration 002.
    """
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_name', 'organizations', ['name'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('role', _enum('userrole'), nullable=False, server_default='resident'),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('sms_notifications_enabled', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])

    op.create_table(
        'buildings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('address_line1', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_buildings_id', 'buildings', ['id'])
    op.create_index('ix_buildings_organization_id', 'buildings', ['organization_id'])

    op.create_table(
        'spaces',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('building_id', sa.Integer(), sa.ForeignKey('buildings.id'), nullable=False),
        sa.Column('space_type', _enum('spacetype'), nullable=False),
        sa.Column('unit_number', sa.String(length=50), nullable=True),
        sa.Column('common_area_type', sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_spaces_id', 'spaces', ['id'])
    op.create_index('ix_spaces_building_id', 'spaces', ['building_id'])

    op.execute(sa.schema.CreateSequence(TICKET_NUMBER_SEQUENCE))

    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column(
            'ticket_number', sa.Integer(), nullable=False,
            server_default=sa.text("nextval('tickets_ticket_number_seq')"),
        ),
        sa.Column('building_id', sa.Integer(), sa.ForeignKey('buildings.id'), nullable=False),
        sa.Column('space_id', sa.Integer(), sa.ForeignKey('spaces.id'), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('issue_type', _enum('issuetype'), nullable=False),
        sa.Column('severity', _enum('ticketseverity'), nullable=False, server_default='standard'),
        sa.Column('status', _enum('ticketstatus'), nullable=False, server_default='new'),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('access_instructions', sa.Text(), nullable=True),
        sa.Column('assigned_technician', sa.String(length=255), nullable=True),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('scheduled_time_window', sa.String(length=100), nullable=True),
        sa.Column('quote_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('invoice_number', sa.String(length=100), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_number', name='uq_tickets_ticket_number'),
        sa.CheckConstraint('quote_amount IS NULL OR quote_amount >= 0', name='ck_tickets_quote_nonnegative'),
    )
    op.execute('ALTER SEQUENCE tickets_ticket_number_seq OWNED BY tickets.ticket_number')
    op.create_index('ix_tickets_building_id', 'tickets', ['building_id'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_severity', 'tickets', ['severity'])
    op.create_index('ix_tickets_created_by', 'tickets', ['created_by_user_id'])
    op.create_index('ix_tickets_created_at', 'tickets', ['created_at'])

    op.create_table(
        'ticket_comments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('comment_text', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ticket_comments_ticket_id', 'ticket_comments', ['ticket_id'])
    op.create_index('ix_ticket_comments_created_at', 'ticket_comments', ['created_at'])

    op.create_table(
        'ticket_attachments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uploaded_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('file_path', sa.String(length=500), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_type', sa.String(length=100), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('file_size > 0', name='ck_ticket_attachments_size_positive'),
    )
    op.create_index('ix_ticket_attachments_ticket_id', 'ticket_attachments', ['ticket_id'])

    op.create_table(
        'ticket_status_log',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('old_status', _enum('ticketstatus'), nullable=True),
        sa.Column('new_status', _enum('ticketstatus'), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ticket_status_log_ticket_id', 'ticket_status_log', ['ticket_id'])

    op.create_table(
        'sms_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('ticket_id', sa.Uuid(), sa.ForeignKey('tickets.id', ondelete='SET NULL'), nullable=True),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('message_body', sa.Text(), nullable=False),
        sa.Column('provider_sid', sa.String(length=64), nullable=True),
        sa.Column('status', _enum('smsstatus'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sms_log_user_id', 'sms_log', ['user_id'])
    op.create_index('ix_sms_log_ticket_id', 'sms_log', ['ticket_id'])
    op.create_index('ix_sms_log_created_at', 'sms_log', ['created_at'])


def downgrade() -> None:
    """
    Drop all tables and enum types.

    WHY: Children before parents so foreign keys never dangle.
    """
    for table in (
        'sms_log',
        'ticket_status_log',
        'ticket_attachments',
        'ticket_comments',
        'tickets',
        'spaces',
        'buildings',
        'users',
        'organizations',
    ):
        op.drop_table(table)
    op.execute('DROP SEQUENCE IF EXISTS tickets_ticket_number_seq')
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
