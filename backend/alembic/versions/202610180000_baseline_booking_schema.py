"""Baseline booking engine schema

Revision ID: 202610180000
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates services, appointment slots, queue tickets, appointments and the
appointment status history.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '202610180000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SLOT_STATUSES = ('AVAILABLE', 'FULL', 'CANCELLED')
APPOINTMENT_STATUSES = ('SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED')
TICKET_STATUSES = ('WAITING', 'NOTIFIED', 'COMPLETED', 'CANCELLED', 'EXPIRED')
HISTORY_EVENTS = ('BOOKED', 'RESCHEDULED', 'CANCELLED')


def _status(values: tuple, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade() -> None:
    op.create_table('services',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table('appointment_slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('start_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('buffer_before_minutes', sa.Integer(), nullable=False),
        sa.Column('buffer_after_minutes', sa.Integer(), nullable=False),
        sa.Column('status', _status(SLOT_STATUSES, 'appointment_slot_status'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint('capacity > 0', name='ck_appointment_slots_capacity_positive'),
        sa.CheckConstraint('end_at > start_at', name='ck_appointment_slots_end_after_start'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointment_slots_service_start', 'appointment_slots', ['service_id', 'start_at'])

    op.create_table('queue_tickets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=True),
        sa.Column('status', _status(TICKET_STATUSES, 'queue_ticket_status'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('desired_from', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('desired_to', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('notified_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['slot_id'], ['appointment_slots.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_queue_tickets_service_status_position', 'queue_tickets', ['service_id', 'status', 'position'])
    op.create_index('idx_queue_tickets_user', 'queue_tickets', ['user_id'])
    op.create_index('idx_queue_tickets_slot_status', 'queue_tickets', ['slot_id', 'status'])

    op.create_table('appointments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('service_id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=True),
        sa.Column('queue_ticket_id', sa.String(length=36), nullable=True),
        sa.Column('status', _status(APPOINTMENT_STATUSES, 'appointment_status'), nullable=False),
        sa.Column('scheduled_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('locale', sa.String(length=10), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['slot_id'], ['appointment_slots.id']),
        sa.ForeignKeyConstraint(['queue_ticket_id'], ['queue_tickets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_appointments_slot_status', 'appointments', ['slot_id', 'status'])
    op.create_index('idx_appointments_user', 'appointments', ['user_id'])
    op.create_index('idx_appointments_service_scheduled', 'appointments', ['service_id', 'scheduled_at'])

    op.create_table('appointment_status_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('appointment_id', sa.String(length=36), nullable=False),
        sa.Column('event', _status(HISTORY_EVENTS, 'appointment_status_event_type'), nullable=False),
        sa.Column('from_status', _status(APPOINTMENT_STATUSES, 'appointment_status'), nullable=True),
        sa.Column('to_status', _status(APPOINTMENT_STATUSES, 'appointment_status'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('changed_by_user_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_appointment_status_history_appointment',
        'appointment_status_history',
        ['appointment_id', 'created_at'],
    )


def downgrade() -> None:
    op.drop_index('idx_appointment_status_history_appointment', table_name='appointment_status_history')
    op.drop_table('appointment_status_history')

    op.drop_index('idx_appointments_service_scheduled', table_name='appointments')
    op.drop_index('idx_appointments_user', table_name='appointments')
    op.drop_index('idx_appointments_slot_status', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('idx_queue_tickets_slot_status', table_name='queue_tickets')
    op.drop_index('idx_queue_tickets_user', table_name='queue_tickets')
    op.drop_index('idx_queue_tickets_service_status_position', table_name='queue_tickets')
    op.drop_table('queue_tickets')

    op.drop_index('idx_appointment_slots_service_start', table_name='appointment_slots')
    op.drop_table('appointment_slots')

    op.drop_table('services')
