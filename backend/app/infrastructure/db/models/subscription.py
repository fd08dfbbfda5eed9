"""
Subscription Database Model

SQLModel table mirroring the latest state of each Stripe subscription.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import utcnow


class SubscriptionRecordModel(SQLModel, table=True):
    """
    Maps to the 'stripe_subscriptions' table in PostgreSQL.

    Keyed by the Stripe subscription id; every lifecycle event overwrites
    the row with the event's own payload.
    """

    __tablename__ = "stripe_subscriptions"

    subscription_id: str = Field(primary_key=True, max_length=255)
    customer_id: str = Field(index=True, max_length=255)
    user_id: Optional[str] = Field(default=None, index=True, max_length=64)

    status: str = Field(max_length=32)
    price_id: Optional[str] = Field(default=None, max_length=255)

    # Billing period dates
    current_period_start: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    current_period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    cancel_at_period_end: bool = Field(default=False)

    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
