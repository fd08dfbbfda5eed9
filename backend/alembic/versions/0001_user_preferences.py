"""Add user_preferences table

Revision ID: 0001
Revises:
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_user_preferences'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create user_preferences: display settings plus billing projection."""

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(64), primary_key=True),

        # Display settings (edited by the user)
        sa.Column('currency', sa.String(8), server_default='₹', nullable=False),
        sa.Column('locale', sa.String(35), server_default='en-IN', nullable=False),

        # Billing (written by the Stripe webhook only)
        sa.Column('plan_tier', sa.String(20), server_default='free', nullable=False),
        sa.Column('stripe_customer_id', sa.String(255), unique=True),
        sa.Column('stripe_subscription_id', sa.String(255)),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),

        sa.CheckConstraint("plan_tier IN ('free', 'pro')", name='ck_user_preferences_plan_tier'),
    )

    op.create_index('ix_user_preferences_plan_tier', 'user_preferences', ['plan_tier'])
    op.create_index(
        'ix_user_preferences_stripe_customer_id',
        'user_preferences',
        ['stripe_customer_id'],
        unique=True,
    )
    op.create_index(
        'ix_user_preferences_stripe_subscription_id',
        'user_preferences',
        ['stripe_subscription_id'],
    )

    # Enable RLS
    op.execute('ALTER TABLE user_preferences ENABLE ROW LEVEL SECURITY')

    # RLS Policy: Users can read their own preferences
    op.execute("""
        CREATE POLICY "Users can view own preferences"
        ON user_preferences FOR SELECT
        TO authenticated
        USING (user_id = auth.uid()::text)
    """)

    # RLS Policy: Service role manages all rows (API and webhooks)
    op.execute("""
        CREATE POLICY "Service role manages preferences"
        ON user_preferences FOR ALL
        TO service_role
        USING (true)
        WITH CHECK (true)
    """)


def downgrade() -> None:
    """Drop user_preferences table."""
    op.execute('DROP POLICY IF EXISTS "Service role manages preferences" ON user_preferences')
    op.execute('DROP POLICY IF EXISTS "Users can view own preferences" ON user_preferences')
    op.drop_index('ix_user_preferences_stripe_subscription_id', table_name='user_preferences')
    op.drop_index('ix_user_preferences_stripe_customer_id', table_name='user_preferences')
    op.drop_index('ix_user_preferences_plan_tier', table_name='user_preferences')
    op.drop_table('user_preferences')
