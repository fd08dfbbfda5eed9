"""
Repository Layer for Finance Tracker

Exports all repository classes and store interfaces for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BILLING_COLUMNS,
    DISPLAY_COLUMNS,
    IOrderStore,
    IPreferencesStore,
    ISubscriptionStore,
    IWebhookEventLedger,
)
from app.infrastructure.db.repositories.preferences_repository import (
    PreferencesRepository,
)
from app.infrastructure.db.repositories.order_repository import OrderRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Interfaces
    "BILLING_COLUMNS",
    "DISPLAY_COLUMNS",
    "IOrderStore",
    "IPreferencesStore",
    "ISubscriptionStore",
    "IWebhookEventLedger",
    # Repositories
    "PreferencesRepository",
    "OrderRepository",
    "SubscriptionRepository",
    "WebhookEventRepository",
]
