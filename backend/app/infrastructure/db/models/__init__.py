"""
SQLModel ORM Models for Finance Tracker

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.user_preferences import UserPreferencesModel
from app.infrastructure.db.models.order import OrderModel
from app.infrastructure.db.models.subscription import SubscriptionRecordModel
from app.infrastructure.db.models.processed_event import ProcessedWebhookEventModel


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    # Billing tables
    "UserPreferencesModel",
    "OrderModel",
    "SubscriptionRecordModel",
    "ProcessedWebhookEventModel",
]
