"""
Order Database Model

Write-once record of a completed Stripe checkout session.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import UUIDMixin, utcnow


class OrderModel(UUIDMixin, table=True):
    """
    Maps to the 'stripe_user_orders' table in PostgreSQL.

    order_id holds the checkout session id and is unique, so a redelivered
    completion event cannot append a second row.
    """

    __tablename__ = "stripe_user_orders"

    user_id: str = Field(index=True, max_length=64)
    order_id: str = Field(unique=True, index=True, max_length=255)
    payment_intent_id: Optional[str] = Field(default=None, index=True, max_length=255)
    amount_total: Optional[int] = Field(default=None)
    currency: Optional[str] = Field(default=None, max_length=8)
    payment_status: Optional[str] = Field(default=None, max_length=32)
    order_date: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
