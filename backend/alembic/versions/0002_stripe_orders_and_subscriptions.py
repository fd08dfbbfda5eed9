"""Add stripe_user_orders and stripe_subscriptions tables

Revision ID: 0002
Revises: 0001_user_preferences
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_stripe_orders_and_subscriptions'
down_revision: Union[str, None] = '0001_user_preferences'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create Stripe order history and subscription mirror tables."""

    op.create_table(
        'stripe_user_orders',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),

        # Checkout session id; unique so redelivery cannot add a second row
        sa.Column('order_id', sa.String(255), nullable=False),
        sa.Column('payment_intent_id', sa.String(255)),
        sa.Column('amount_total', sa.Integer),
        sa.Column('currency', sa.String(8)),
        sa.Column('payment_status', sa.String(32)),
        sa.Column('order_date', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_stripe_user_orders_user_id', 'stripe_user_orders', ['user_id'])
    op.create_index('ix_stripe_user_orders_order_id', 'stripe_user_orders', ['order_id'], unique=True)
    op.create_index('ix_stripe_user_orders_payment_intent_id', 'stripe_user_orders', ['payment_intent_id'])

    op.create_table(
        'stripe_subscriptions',
        sa.Column('subscription_id', sa.String(255), primary_key=True),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(64)),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('price_id', sa.String(255)),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default='false', nullable=False),

        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_stripe_subscriptions_customer_id', 'stripe_subscriptions', ['customer_id'])
    op.create_index('ix_stripe_subscriptions_user_id', 'stripe_subscriptions', ['user_id'])

    for table in ('stripe_user_orders', 'stripe_subscriptions'):
        op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')

        # RLS Policy: Users can view their own rows
        op.execute(f"""
            CREATE POLICY "Users can view own {table}"
            ON {table} FOR SELECT
            TO authenticated
            USING (user_id = auth.uid()::text)
        """)

        # RLS Policy: Service role manages all rows (for webhooks)
        op.execute(f"""
            CREATE POLICY "Service role manages {table}"
            ON {table} FOR ALL
            TO service_role
            USING (true)
            WITH CHECK (true)
        """)


def downgrade() -> None:
    """Drop Stripe order and subscription tables."""
    for table in ('stripe_subscriptions', 'stripe_user_orders'):
        op.execute(f'DROP POLICY IF EXISTS "Service role manages {table}" ON {table}')
        op.execute(f'DROP POLICY IF EXISTS "Users can view own {table}" ON {table}')

    op.drop_index('ix_stripe_subscriptions_user_id', table_name='stripe_subscriptions')
    op.drop_index('ix_stripe_subscriptions_customer_id', table_name='stripe_subscriptions')
    op.drop_table('stripe_subscriptions')

    op.drop_index('ix_stripe_user_orders_payment_intent_id', table_name='stripe_user_orders')
    op.drop_index('ix_stripe_user_orders_order_id', table_name='stripe_user_orders')
    op.drop_index('ix_stripe_user_orders_user_id', table_name='stripe_user_orders')
    op.drop_table('stripe_user_orders')
