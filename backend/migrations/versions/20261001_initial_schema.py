"""Initial schema: sessions, bookings, payments, coupons, block bookings, webhooks

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration creates:
1. Users and login sessions
2. Programs and timetable sessions (enrolled counter, non-negative)
3. Coupons, coupon uses (one per booking) and payment plans
4. Bookings, payments (unique provider reference) and payment links
5. Block bookings with usage (unique per date/slot) and refund history
6. Webhook events keyed by provider event id
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=nullable)


def upgrade():
    # ==========================================================================
    # 1. USERS & LOGIN SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=True),
        sa.Column('last_name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)

    # ==========================================================================
    # 2. PROGRAMS & SESSIONS
    # ==========================================================================
    op.create_table('programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('service_type', sa.String(length=32), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('programs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_programs_is_active'), ['is_active'], unique=False)

    op.create_table('sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('days_of_week', sa.JSON(), nullable=True),
        sa.Column('start_time', sa.String(length=5), nullable=True),
        sa.Column('end_time', sa.String(length=5), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('age_min', sa.Integer(), nullable=True),
        sa.Column('age_max', sa.Integer(), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('enrolled', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('waitlist_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('coaches', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('enrolled >= 0', name='ck_sessions_enrolled_non_negative'),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sessions_program_id'), ['program_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sessions_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 3. COUPONS & PAYMENT PLANS
    # ==========================================================================
    op.create_table('coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Integer(), nullable=False),
        sa.Column('min_purchase', sa.Integer(), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('applicable_sessions', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('used_count >= 0', name='ck_coupons_used_count_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('coupons', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_coupons_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_coupons_is_active'), ['is_active'], unique=False)

    op.create_table('payment_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('installment_count', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('interval_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('session_ids', sa.JSON(), nullable=True),
        sa.Column('min_purchase_amount', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_plans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_plans_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 4. BOOKINGS, PAYMENTS & PAYMENT LINKS
    # ==========================================================================
    op.create_table('bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_ref', sa.String(length=32), nullable=False),
        sa.Column('session_ids', sa.JSON(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=True),
        sa.Column('child_first_name', sa.String(length=120), nullable=False),
        sa.Column('child_last_name', sa.String(length=120), nullable=False),
        sa.Column('child_dob', sa.Date(), nullable=True),
        sa.Column('age_group', sa.String(length=16), nullable=True),
        sa.Column('medical_conditions', sa.Text(), nullable=True),
        sa.Column('parent_first_name', sa.String(length=120), nullable=False),
        sa.Column('parent_last_name', sa.String(length=120), nullable=False),
        sa.Column('parent_email', sa.String(length=255), nullable=False),
        sa.Column('parent_phone', sa.String(length=32), nullable=True),
        sa.Column('emergency_contact_name', sa.String(length=255), nullable=True),
        sa.Column('emergency_contact_phone', sa.String(length=32), nullable=True),
        sa.Column('emergency_contact_relationship', sa.String(length=64), nullable=True),
        sa.Column('photo_consent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('terms_accepted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('marketing_consent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('coupon_code', sa.String(length=64), nullable=True),
        sa.Column('payment_status', sa.String(length=24), nullable=False, server_default='pending'),
        sa.Column('payment_type', sa.String(length=16), nullable=False, server_default='full'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('payment_plan_id', sa.Integer(), nullable=True),
        sa.Column('deposit_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_due', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_due_date', sa.Date(), nullable=True),
        sa.Column('balance_paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('refunded_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('enrollment_applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id'], ),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.ForeignKeyConstraint(['payment_plan_id'], ['payment_plans.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bookings_booking_ref'), ['booking_ref'], unique=True)
        batch_op.create_index(batch_op.f('ix_bookings_parent_email'), ['parent_email'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_stripe_session_id'), ['stripe_session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_stripe_payment_intent_id'), ['stripe_payment_intent_id'], unique=False)
        batch_op.create_index('ix_bookings_payment_status_created', ['payment_status', 'created_at'], unique=False)

    op.create_table('coupon_uses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=False),
        sa.Column('coupon_code', sa.String(length=64), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('discount_applied', sa.Integer(), nullable=False),
        _timestamp('used_at'),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('coupon_uses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_coupon_uses_coupon_id'), ['coupon_id'], unique=False)

    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='paid'),
        sa.Column('payment_type', sa.String(length=16), nullable=True),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_link_id', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recorded_by_user_id', sa.Integer(), nullable=True),
        _timestamp('received_at'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['recorded_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_booking_id'), ['booking_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_method'), ['method'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_status'), ['status'], unique=False)

    op.create_table('payment_links',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('stripe_payment_link_id', sa.String(length=255), nullable=False),
        sa.Column('url', sa.String(length=512), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_payment_link_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_links', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_links_booking_id'), ['booking_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_links_status'), ['status'], unique=False)

    # ==========================================================================
    # 5. BLOCK BOOKINGS
    # ==========================================================================
    op.create_table('block_bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('parent_name', sa.String(length=255), nullable=False),
        sa.Column('parent_email', sa.String(length=255), nullable=False),
        sa.Column('parent_phone', sa.String(length=32), nullable=True),
        sa.Column('total_sessions', sa.Integer(), nullable=False),
        sa.Column('remaining_sessions', sa.Integer(), nullable=False),
        sa.Column('total_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_per_session', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        _timestamp('purchased_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('remaining_sessions >= 0', name='ck_block_bookings_remaining_non_negative'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('block_bookings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_block_bookings_parent_email'), ['parent_email'], unique=False)
        batch_op.create_index(batch_op.f('ix_block_bookings_status'), ['status'], unique=False)

    op.create_table('block_booking_usages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_booking_id', sa.Integer(), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('timetable_slot_id', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('coach_id', sa.String(length=64), nullable=True),
        sa.Column('coach_name', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('deducted_by_user_id', sa.Integer(), nullable=True),
        _timestamp('used_at'),
        sa.ForeignKeyConstraint(['block_booking_id'], ['block_bookings.id'], ),
        sa.ForeignKeyConstraint(['deducted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('block_booking_id', 'session_date', 'timetable_slot_id', name='uq_block_booking_usage_date_slot'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('block_booking_usages', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_block_booking_usages_block_booking_id'), ['block_booking_id'], unique=False)

    op.create_table('block_booking_refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_booking_id', sa.Integer(), nullable=False),
        sa.Column('sessions_refunded', sa.Integer(), nullable=False),
        sa.Column('amount_refunded', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('requires_provider_refund', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('refunded_by_user_id', sa.Integer(), nullable=True),
        _timestamp('refunded_at'),
        sa.ForeignKeyConstraint(['block_booking_id'], ['block_bookings.id'], ),
        sa.ForeignKeyConstraint(['refunded_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('block_booking_refunds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_block_booking_refunds_block_booking_id'), ['block_booking_id'], unique=False)

    # ==========================================================================
    # 6. WEBHOOK EVENTS
    # ==========================================================================
    op.create_table('webhook_events',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='processing'),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('received_at'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('webhook_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_webhook_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_events_status'), ['status'], unique=False)


def downgrade():
    for table in (
        'webhook_events',
        'block_booking_refunds',
        'block_booking_usages',
        'block_bookings',
        'payment_links',
        'payments',
        'coupon_uses',
        'bookings',
        'payment_plans',
        'coupons',
        'sessions',
        'programs',
        'session_tokens',
        'users',
    ):
        op.drop_table(table)
