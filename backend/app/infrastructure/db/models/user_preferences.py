"""
User Preferences Database Model

SQLModel table holding one row per user: plan tier, display settings and
the Stripe identifiers that correlate billing events back to the user.
"""

from typing import Optional

from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin


class UserPreferencesModel(TimestampMixin, table=True):
    """
    Maps to the 'user_preferences' table in PostgreSQL.

    Columns are split into two disjoint sets: currency/locale belong to the
    user, plan_tier and stripe_* belong to the webhook reconciler.
    """

    __tablename__ = "user_preferences"

    user_id: str = Field(primary_key=True, max_length=64)

    # Display settings (user-owned)
    currency: str = Field(default="₹", max_length=8)
    locale: str = Field(default="en-IN", max_length=35)

    # Billing (reconciler-owned)
    plan_tier: str = Field(default="free", max_length=20, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, index=True)
