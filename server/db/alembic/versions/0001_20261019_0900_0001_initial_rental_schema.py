"""Initial rental schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create vehicles table
    op.create_table('vehicles',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('license_plate', sa.String(length=32), nullable=True),
        sa.Column('tank_capacity_liters', sa.Integer(), nullable=True),
        sa.Column('cleaning_buffer_hours', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(name) > 0', name='ck_vehicle_name_not_empty'),
        sa.CheckConstraint('cleaning_buffer_hours >= 0', name='ck_vehicle_buffer_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('license_plate')
    )
    op.create_index(op.f('ix_vehicles_name'), 'vehicles', ['name'], unique=False)
    op.create_index(op.f('ix_vehicles_category'), 'vehicles', ['category'], unique=False)

    # Create reservation_holds table
    op.create_table('reservation_holds',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_id', sa.String(length=128), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('start_at < end_at', name='ck_hold_range_valid'),
        sa.CheckConstraint('length(customer_id) > 0', name='ck_hold_customer_id_not_empty'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reservation_holds_vehicle_id'), 'reservation_holds', ['vehicle_id'], unique=False)
    op.create_index(op.f('ix_reservation_holds_customer_id'), 'reservation_holds', ['customer_id'], unique=False)
    op.create_index(op.f('ix_reservation_holds_expires_at'), 'reservation_holds', ['expires_at'], unique=False)
    op.create_index(op.f('ix_reservation_holds_status'), 'reservation_holds', ['status'], unique=False)
    op.create_index(op.f('ix_reservation_holds_idempotency_key'), 'reservation_holds', ['idempotency_key'], unique=False)
    # Conflict scans filter live holds on a vehicle by range
    op.create_index('ix_reservation_holds_vehicle_range', 'reservation_holds', ['vehicle_id', 'status', 'start_at', 'end_at'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('hold_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.String(length=128), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_at', sa.DateTime(), nullable=False),
        sa.Column('end_at', sa.DateTime(), nullable=False),
        sa.Column('actual_return_at', sa.DateTime(), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('deposit_amount', sa.Integer(), nullable=False),
        sa.Column('deposit_status', sa.String(length=32), nullable=True),
        sa.Column('vehicle_assigned_at', sa.DateTime(), nullable=True),
        sa.Column('return_state', sa.String(length=32), nullable=True),
        sa.Column('return_is_exception', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('return_exception_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('start_at < end_at', name='ck_booking_range_valid'),
        sa.CheckConstraint('total_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('amount_paid >= 0', name='ck_booking_paid_non_negative'),
        sa.CheckConstraint('deposit_amount >= 0', name='ck_booking_deposit_non_negative'),
        sa.CheckConstraint('length(code) > 0', name='ck_booking_code_not_empty'),
        sa.ForeignKeyConstraint(['hold_id'], ['reservation_holds.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sa.UniqueConstraint('hold_id')
    )
    op.create_index(op.f('ix_bookings_code'), 'bookings', ['code'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'), 'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_hold_id'), 'bookings', ['hold_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_vehicle_id'), 'bookings', ['vehicle_id'], unique=False)
    op.create_index('ix_bookings_vehicle_range', 'bookings', ['vehicle_id', 'status', 'start_at', 'end_at'], unique=False)

    # Create booking_preparations table
    op.create_table('booking_preparations',
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('completed_prep_items', sa.JSON(), nullable=False),
        sa.Column('captured_photos', sa.JSON(), nullable=False),
        sa.Column('agreement_signed_at', sa.DateTime(), nullable=True),
        sa.Column('walkaround_completed_at', sa.DateTime(), nullable=True),
        sa.Column('walkaround_acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('updated_by', sa.String(length=128), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('booking_id')
    )

    # Create checkin_records table
    op.create_table('checkin_records',
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('identity_verified', sa.Boolean(), nullable=False),
        sa.Column('license_verified', sa.Boolean(), nullable=False),
        sa.Column('license_name_matches', sa.Boolean(), nullable=False),
        sa.Column('license_valid', sa.Boolean(), nullable=False),
        sa.Column('license_expiry_date', sa.Date(), nullable=True),
        sa.Column('age_verified', sa.Boolean(), nullable=False),
        sa.Column('customer_dob', sa.Date(), nullable=True),
        sa.Column('arrival_time', sa.DateTime(), nullable=True),
        sa.Column('timing_status', sa.String(length=20), nullable=True),
        sa.Column('check_in_status', sa.String(length=20), nullable=False),
        sa.Column('blocked_reason', sa.Text(), nullable=True),
        sa.Column('checked_in_by', sa.String(length=128), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('booking_id')
    )

    # Create deposit_ledger_entries table
    op.create_table('deposit_ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_ledger_amount_positive'),
        sa.CheckConstraint("action IN ('hold', 'withhold', 'release')", name='ck_ledger_action_valid'),
        sa.CheckConstraint('length(created_by) > 0', name='ck_ledger_created_by_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_deposit_ledger_entries_booking_id'), 'deposit_ledger_entries', ['booking_id'], unique=False)
    op.create_index(op.f('ix_deposit_ledger_entries_category'), 'deposit_ledger_entries', ['category'], unique=False)

    # Create damage_reports table
    op.create_table('damage_reports',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('location_on_vehicle', sa.String(length=128), nullable=False),
        sa.Column('estimated_cost', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reported_by', sa.String(length=128), nullable=False),
        sa.Column('resolved_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('estimated_cost IS NULL OR estimated_cost >= 0', name='ck_damage_cost_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_damage_reports_booking_id'), 'damage_reports', ['booking_id'], unique=False)
    op.create_index(op.f('ix_damage_reports_vehicle_id'), 'damage_reports', ['vehicle_id'], unique=False)
    op.create_index(op.f('ix_damage_reports_status'), 'damage_reports', ['status'], unique=False)

    # Create alerts table
    op.create_table('alerts',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('alert_type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('vehicle_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('acknowledged_by', sa.String(length=128), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_by', sa.String(length=128), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_alerts_alert_type'), 'alerts', ['alert_type'], unique=False)
    op.create_index(op.f('ix_alerts_status'), 'alerts', ['status'], unique=False)
    op.create_index(op.f('ix_alerts_booking_id'), 'alerts', ['booking_id'], unique=False)

    # Create audit_logs table
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'], unique=False)

    # Create notification_logs table
    op.create_table('notification_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notification_logs_event_type'), 'notification_logs', ['event_type'], unique=False)
    op.create_index(op.f('ix_notification_logs_booking_id'), 'notification_logs', ['booking_id'], unique=False)
    op.create_index(op.f('ix_notification_logs_status'), 'notification_logs', ['status'], unique=False)

    # Create idempotency_records table
    op.create_table('idempotency_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('method', sa.String(length=100), nullable=False),
        sa.Column('request_body_hash', sa.String(length=64), nullable=False),
        sa.Column('response_status_code', sa.Integer(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(idempotency_key) > 0', name='ck_idempotency_key_not_empty'),
        sa.CheckConstraint('length(method) > 0', name='ck_idempotency_method_not_empty'),
        sa.CheckConstraint('length(request_body_hash) = 64', name='ck_idempotency_hash_length'),
        sa.CheckConstraint('response_status_code >= 100', name='ck_idempotency_status_code_valid'),
        sa.CheckConstraint('response_status_code <= 599', name='ck_idempotency_status_code_max'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', 'method', name='uq_idempotency_key_method')
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)
    op.create_index(op.f('ix_idempotency_records_idempotency_key'), 'idempotency_records', ['idempotency_key'], unique=False)
    op.create_index(op.f('ix_idempotency_records_method'), 'idempotency_records', ['method'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('idempotency_records')
    op.drop_table('notification_logs')
    op.drop_table('audit_logs')
    op.drop_table('alerts')
    op.drop_table('damage_reports')
    op.drop_table('deposit_ledger_entries')
    op.drop_table('checkin_records')
    op.drop_table('booking_preparations')
    op.drop_table('bookings')
    op.drop_table('reservation_holds')
    op.drop_table('vehicles')
