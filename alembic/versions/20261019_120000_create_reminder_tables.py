"""create reminder tables

Revision ID: 20261019_120000
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_120000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'clients',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('preferred_notification_method', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clients_owner_id', 'clients', ['owner_id'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.BigInteger(), nullable=False),
        sa.Column('client_id', sa.BigInteger(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_appointments_owner_id', 'appointments', ['owner_id'])
    op.create_index('ix_appointments_client_id', 'appointments', ['client_id'])
    op.create_index('ix_appointments_start_time', 'appointments', ['start_time'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])

    op.create_table(
        'reminder_rules',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('appointment_id', sa.BigInteger(), nullable=False),
        sa.Column('minutes_before', sa.Integer(), nullable=False),
        sa.Column('notification_method', sa.String(length=10), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reminder_rules_appointment_enabled', 'reminder_rules', ['appointment_id', 'is_enabled'])

    op.create_table(
        'reminder_dispatches',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('appointment_id', sa.BigInteger(), nullable=False),
        sa.Column('reminder_rule_id', sa.BigInteger(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('notification_method', sa.String(length=10), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('claim_token', sa.String(length=36), nullable=True),
        sa.Column('claimed_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reminder_rule_id'], ['reminder_rules.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # Due scan and retry scan
    op.create_index(
        'ix_reminder_dispatches_status_scheduled_at',
        'reminder_dispatches',
        ['status', 'scheduled_at']
    )
    op.create_index(
        'ix_reminder_dispatches_appointment_status',
        'reminder_dispatches',
        ['appointment_id', 'status']
    )
    # At most one pending dispatch per (appointment, rule)
    op.create_index(
        'uq_reminder_dispatches_pending_rule',
        'reminder_dispatches',
        ['appointment_id', 'reminder_rule_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'")
    )


def downgrade() -> None:
    op.drop_index('uq_reminder_dispatches_pending_rule', table_name='reminder_dispatches')
    op.drop_index('ix_reminder_dispatches_appointment_status', table_name='reminder_dispatches')
    op.drop_index('ix_reminder_dispatches_status_scheduled_at', table_name='reminder_dispatches')
    op.drop_table('reminder_dispatches')
    op.drop_table('reminder_rules')
    op.drop_table('appointments')
    op.drop_table('clients')
