"""Seller billing: processor customer id and country on accounts

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: str | None = '0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.add_column('accounts', sa.Column('country', sa.String(length=64), nullable=True))
    op.add_column('accounts', sa.Column('stripe_customer_id', sa.String(length=255), nullable=True))
    op.create_index(op.f('ix_accounts_stripe_customer_id'), 'accounts', ['stripe_customer_id'], unique=True)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_accounts_stripe_customer_id'), table_name='accounts')
    op.drop_column('accounts', 'stripe_customer_id')
    op.drop_column('accounts', 'country')
