"""
Repository Interfaces for Finance Tracker

Abstract stores the billing services depend on. The SQLModel repositories
implement them against Postgres; tests implement them in memory.
Separate read/write concerns the same way for every billing table.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from app.domain.subscription import (
    OrderRecord,
    SubscriptionRecord,
    UserPreferences,
)


# Columns written by the webhook reconciler
BILLING_COLUMNS = frozenset({
    "plan_tier",
    "stripe_customer_id",
    "stripe_subscription_id",
})

# Columns written by the user
DISPLAY_COLUMNS = frozenset({"currency", "locale"})


class IPreferencesStore(ABC):
    """
    One preferences row per user.

    Writes are column-scoped merges so the user's edits and the reconciler's
    billing writes never clobber each other.
    """

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserPreferences]:
        """Get a user's preferences row."""
        pass

    @abstractmethod
    async def get_or_create(self, user_id: str) -> UserPreferences:
        """Get a user's row, creating it with defaults if missing."""
        pass

    @abstractmethod
    async def get_by_stripe_customer_id(self, customer_id: str) -> Optional[UserPreferences]:
        """Resolve the user owning a Stripe customer."""
        pass

    @abstractmethod
    async def upsert_billing(
        self,
        user_id: str,
        values: Mapping[str, Any],
    ) -> UserPreferences:
        """Merge billing columns into the user's row, creating it if missing."""
        pass

    @abstractmethod
    async def update_display(
        self,
        user_id: str,
        values: Mapping[str, Any],
    ) -> UserPreferences:
        """Merge display columns into the user's row, creating it if missing."""
        pass


class IOrderStore(ABC):
    """Append-only order records keyed by checkout session id."""

    @abstractmethod
    async def insert_once(self, order: OrderRecord) -> bool:
        """Insert the order; a duplicate order_id is a successful no-op."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 100) -> List[OrderRecord]:
        """Orders for a user, newest first."""
        pass


class ISubscriptionStore(ABC):
    """Latest state of each Stripe subscription."""

    @abstractmethod
    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Overwrite the record keyed by subscription_id."""
        pass

    @abstractmethod
    async def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        """Get a subscription record."""
        pass


class IWebhookEventLedger(ABC):
    """Processed Stripe event ids."""

    @abstractmethod
    async def is_processed(self, event_id: str) -> bool:
        """Check whether an event was already fully handled."""
        pass

    @abstractmethod
    async def mark_processed(self, event_id: str, event_type: str) -> None:
        """Record a handled event; recording twice is a no-op."""
        pass


def check_columns(values: Mapping[str, Any], allowed: frozenset) -> None:
    """Reject writes outside a caller's column set."""
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Columns not writable here: {sorted(unknown)}")
