"""
Service Container

Process-wide service handles, built once in the application lifespan and
stored on `app.state.services`. Route dependencies read from here instead
of module-level singletons.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.config.settings import Settings
from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.db.repositories import (
    IOrderStore,
    IPreferencesStore,
    ISubscriptionStore,
    IWebhookEventLedger,
    OrderRepository,
    PreferencesRepository,
    SubscriptionRepository,
    WebhookEventRepository,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.realtime.change_feed import PreferencesChangeFeed
from app.infrastructure.services.checkout_service import CheckoutInitiator
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler may need."""
    settings: Settings
    stripe: StripeService
    change_feed: PreferencesChangeFeed
    preferences: IPreferencesStore
    orders: IOrderStore
    subscriptions: ISubscriptionStore
    ledger: Optional[IWebhookEventLedger]
    reconciler: WebhookReconciler
    checkout: CheckoutInitiator
    db: Optional[DatabaseManager] = None

    async def close(self) -> None:
        if self.db is not None:
            await self.db.close()


def build_services(settings: Settings) -> ServiceContainer:
    """Wire the Postgres-backed repositories and Stripe services."""
    db = DatabaseManager(settings)
    change_feed = PreferencesChangeFeed()

    preferences = PreferencesRepository(
        db,
        change_feed=change_feed,
        default_currency=settings.default_currency,
        default_locale=settings.default_locale,
    )
    orders = OrderRepository(db)
    subscriptions = SubscriptionRepository(db)
    ledger = WebhookEventRepository(db)

    stripe_service = StripeService(settings)

    logger.info("Service container built")
    return ServiceContainer(
        settings=settings,
        stripe=stripe_service,
        change_feed=change_feed,
        preferences=preferences,
        orders=orders,
        subscriptions=subscriptions,
        ledger=ledger,
        reconciler=WebhookReconciler(preferences, orders, subscriptions, ledger),
        checkout=CheckoutInitiator(stripe_service, settings),
        db=db,
    )
