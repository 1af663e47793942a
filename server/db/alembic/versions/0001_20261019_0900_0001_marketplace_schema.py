"""Marketplace schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def _rating_columns() -> list[sa.Column]:
    return [
        sa.Column('rating_avg', sa.Float(), server_default='0', nullable=False),
        sa.Column('rating_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('weighted_score', sa.Float(), server_default='0', nullable=False),
        sa.Column('week_key', sa.String(length=10), nullable=True),
        sa.Column('week_rating_avg', sa.Float(), server_default='0', nullable=False),
        sa.Column('week_rating_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('week_weighted_score', sa.Float(), server_default='0', nullable=False),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('accounts',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=20), server_default='buyer', nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('seller_tier', sa.String(length=20), server_default='free', nullable=False),
        sa.Column('seller_currency', sa.String(length=3), nullable=True),
        sa.Column('subscription_status', sa.String(length=32), nullable=True),
        sa.Column('subscription_id', sa.String(length=255), nullable=True),
        sa.Column('subscription_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('last_checkout_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payout_account_id', sa.String(length=255), nullable=True),
        *_rating_columns(),
        *_timestamps(),
        sa.CheckConstraint('rating_count >= 0', name='ck_account_rating_count_non_negative'),
        sa.CheckConstraint('week_rating_count >= 0', name='ck_account_week_rating_count_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('listings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('listing_type', sa.String(length=20), nullable=False),
        sa.Column('provider_id', sa.String(length=128), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_amount', sa.Integer(), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('free_cancel_hours', sa.Integer(), server_default='48', nullable=False),
        sa.Column('refund_percent_after_deadline', sa.Integer(), server_default='0', nullable=False),
        sa.Column('no_show_refund_percent', sa.Integer(), server_default='0', nullable=False),
        *_rating_columns(),
        *_timestamps(),
        sa.CheckConstraint("listing_type IN ('tour', 'experience')", name='ck_listing_type_valid'),
        sa.CheckConstraint('price_amount >= 0', name='ck_listing_price_non_negative'),
        sa.CheckConstraint('free_cancel_hours >= 0', name='ck_listing_free_cancel_hours_non_negative'),
        sa.CheckConstraint('refund_percent_after_deadline BETWEEN 0 AND 100', name='ck_listing_refund_percent_range'),
        sa.CheckConstraint('no_show_refund_percent BETWEEN 0 AND 100', name='ck_listing_no_show_percent_range'),
        sa.CheckConstraint('rating_count >= 0', name='ck_listing_rating_count_non_negative'),
        sa.ForeignKeyConstraint(['provider_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_listings_listing_type'), 'listings', ['listing_type'], unique=False)
    op.create_index(op.f('ix_listings_provider_id'), 'listings', ['provider_id'], unique=False)

    op.create_table('availability_slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('provider_id', sa.String(length=128), nullable=False),
        sa.Column('listing_id', sa.String(length=36), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='open', nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=True),
        sa.Column('reserved_by', sa.String(length=128), nullable=True),
        sa.Column('reserved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('end_at > start_at', name='ck_slot_end_after_start'),
        sa.CheckConstraint("status IN ('open', 'reserved', 'closed')", name='ck_slot_status_valid'),
        sa.CheckConstraint("(status = 'reserved') = (booking_id IS NOT NULL)", name='ck_slot_reserved_has_booking'),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.ForeignKeyConstraint(['provider_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_availability_slots_listing_id'), 'availability_slots', ['listing_id'], unique=False)
    op.create_index(op.f('ix_availability_slots_provider_id'), 'availability_slots', ['provider_id'], unique=False)
    op.create_index(op.f('ix_availability_slots_start_at'), 'availability_slots', ['start_at'], unique=False)
    op.create_index(op.f('ix_availability_slots_status'), 'availability_slots', ['status'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('buyer_id', sa.String(length=128), nullable=False),
        sa.Column('provider_id', sa.String(length=128), nullable=False),
        sa.Column('listing_type', sa.String(length=20), nullable=False),
        sa.Column('listing_id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('people_count', sa.Integer(), server_default='1', nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('commission_percent', sa.Integer(), nullable=True),
        sa.Column('application_fee_amount', sa.Integer(), nullable=True),
        sa.Column('seller_net_amount', sa.Integer(), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('client_secret', sa.String(length=512), nullable=True),
        sa.Column('charge_id', sa.String(length=255), nullable=True),
        sa.Column('seller_payout_account_id', sa.String(length=255), nullable=True),
        sa.Column('transfer_id', sa.String(length=255), nullable=True),
        sa.Column('refund_id', sa.String(length=255), nullable=True),
        sa.Column('payment_failure_message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), server_default='pending_payment', nullable=False),
        sa.Column('payout_status', sa.String(length=20), server_default='not_scheduled', nullable=False),
        sa.Column('payout_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payout_error', sa.Text(), nullable=True),
        sa.Column('refund_percent_applied', sa.Integer(), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refunded', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('canceled_by', sa.String(length=128), nullable=True),
        sa.Column('admin_override_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_out_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_booking_amount_positive'),
        sa.CheckConstraint('people_count > 0', name='ck_booking_people_positive'),
        sa.CheckConstraint('end_at > start_at', name='ck_booking_end_after_start'),
        sa.CheckConstraint(
            'seller_net_amount IS NULL OR application_fee_amount IS NULL '
            'OR seller_net_amount + application_fee_amount = amount',
            name='ck_booking_split_sums_to_amount'
        ),
        sa.CheckConstraint(
            'refund_percent_applied IS NULL OR refund_percent_applied BETWEEN 0 AND 100',
            name='ck_booking_refund_percent_range'
        ),
        sa.CheckConstraint(
            "payout_status IN ('not_scheduled', 'pending', 'paid')",
            name='ck_booking_payout_status_valid'
        ),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id']),
        sa.ForeignKeyConstraint(['slot_id'], ['availability_slots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_intent_id')
    )
    op.create_index(op.f('ix_bookings_buyer_id'), 'bookings', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_bookings_provider_id'), 'bookings', ['provider_id'], unique=False)
    op.create_index(op.f('ix_bookings_listing_id'), 'bookings', ['listing_id'], unique=False)
    op.create_index(op.f('ix_bookings_slot_id'), 'bookings', ['slot_id'], unique=False)
    op.create_index(op.f('ix_bookings_end_at'), 'bookings', ['end_at'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_payout_status'), 'bookings', ['payout_status'], unique=False)

    op.create_table('reviews',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('buyer_id', sa.String(length=128), nullable=False),
        sa.Column('listing_type', sa.String(length=20), nullable=False),
        sa.Column('listing_id', sa.String(length=36), nullable=False),
        sa.Column('provider_id', sa.String(length=128), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), server_default='', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_review_rating_range'),
        sa.ForeignKeyConstraint(['id'], ['bookings.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reviews_buyer_id'), 'reviews', ['buyer_id'], unique=False)
    op.create_index(op.f('ix_reviews_listing_id'), 'reviews', ['listing_id'], unique=False)
    op.create_index(op.f('ix_reviews_provider_id'), 'reviews', ['provider_id'], unique=False)

    op.create_table('processed_webhook_events',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_processed_webhook_events_event_type'), 'processed_webhook_events', ['event_type'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_processed_webhook_events_event_type'), table_name='processed_webhook_events')
    op.drop_table('processed_webhook_events')

    op.drop_index(op.f('ix_reviews_provider_id'), table_name='reviews')
    op.drop_index(op.f('ix_reviews_listing_id'), table_name='reviews')
    op.drop_index(op.f('ix_reviews_buyer_id'), table_name='reviews')
    op.drop_table('reviews')

    for column in ('payout_status', 'status', 'end_at', 'slot_id', 'listing_id', 'provider_id', 'buyer_id'):
        op.drop_index(op.f(f'ix_bookings_{column}'), table_name='bookings')
    op.drop_table('bookings')

    for column in ('status', 'start_at', 'provider_id', 'listing_id'):
        op.drop_index(op.f(f'ix_availability_slots_{column}'), table_name='availability_slots')
    op.drop_table('availability_slots')

    op.drop_index(op.f('ix_listings_provider_id'), table_name='listings')
    op.drop_index(op.f('ix_listings_listing_type'), table_name='listings')
    op.drop_table('listings')

    op.drop_table('accounts')
