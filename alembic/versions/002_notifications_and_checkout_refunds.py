"""Notifications and checkout refunds

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column(
            'type',
            sa.Enum(
                'NEW_ORDER', 'ORDER_SHIPPED', 'ORDER_DELIVERED', 'ORDER_REFUNDED',
                'NEW_MESSAGE', 'DISPUTE_OPENED', 'DISPUTE_RESOLVED',
                name='notificationtype'
            ),
            nullable=False
        ),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.String(length=500), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'], unique=False)

    # One row per paid checkout that was refunded instead of becoming orders
    op.create_table(
        'checkout_refunds',
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('stripe_refund_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id']),
        sa.PrimaryKeyConstraint('stripe_payment_intent_id')
    )
    op.create_index('ix_checkout_refunds_buyer_id', 'checkout_refunds', ['buyer_id'], unique=False)


def downgrade() -> None:
    op.drop_table('checkout_refunds')
    op.drop_table('notifications')
    op.execute('DROP TYPE IF EXISTS notificationtype')
