"""
Stripe Webhook Reconciler

Applies Stripe billing events to the preferences store.

Critical Events:
- checkout.session.completed: upgrade to pro, store Stripe ids, record order
- customer.subscription.updated: sync subscription record and plan tier
- customer.subscription.deleted: downgrade to free tier

Stripe delivers at least once and in no guaranteed order. Every write is
keyed by a Stripe object id and computed from the event's own payload, so
redelivery and reordering converge on the same state.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.domain.subscription import (
    OrderRecord,
    PlanTier,
    SubscriptionRecord,
    SubscriptionStatus,
    TERMINAL_STATUSES,
    UserPreferences,
    plan_tier_for_status,
)
from app.infrastructure.db.repositories.base_repository import (
    IOrderStore,
    IPreferencesStore,
    ISubscriptionStore,
    IWebhookEventLedger,
)
from app.infrastructure.exceptions import DatabaseError, MissingCorrelationError


logger = logging.getLogger(__name__)


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def subscription_record_from_payload(
    subscription: Dict[str, Any],
    user_id: Optional[str],
    status: Optional[str] = None,
) -> SubscriptionRecord:
    """
    Build the subscription record from a Stripe subscription object.

    Newer API versions report period bounds on the subscription item rather
    than the subscription itself; both shapes are accepted.
    """
    item = _first_item(subscription)
    period_start = subscription.get("current_period_start") or item.get("current_period_start")
    period_end = subscription.get("current_period_end") or item.get("current_period_end")

    return SubscriptionRecord(
        subscription_id=subscription["id"],
        customer_id=subscription["customer"],
        user_id=user_id,
        status=status or subscription.get("status") or SubscriptionStatus.INCOMPLETE.value,
        price_id=(item.get("price") or {}).get("id"),
        current_period_start=_timestamp(period_start),
        current_period_end=_timestamp(period_end),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
    )


class WebhookReconciler:
    """
    Stateless handler invoked once per verified Stripe event.

    Performs no retries of its own: failures propagate so the endpoint
    answers 4xx/5xx and Stripe redelivers with backoff.
    """

    def __init__(
        self,
        preferences: IPreferencesStore,
        orders: IOrderStore,
        subscriptions: ISubscriptionStore,
        ledger: Optional[IWebhookEventLedger] = None,
    ):
        self._preferences = preferences
        self._orders = orders
        self._subscriptions = subscriptions
        self._ledger = ledger
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
        }

    @property
    def handled_event_types(self) -> frozenset:
        return frozenset(self._handlers)

    async def process(self, event: Dict[str, Any]) -> bool:
        """
        Route a verified event to its handler.

        Returns:
            False when the event was already processed, True otherwise
        """
        event_id = event.get("id")
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        try:
            if self._ledger is not None and event_id and await self._ledger.is_processed(event_id):
                logger.info(f"Event {event_id} already processed, skipping")
                return False

            handler = self._handlers.get(event_type)
            if handler is None:
                logger.debug(f"Unhandled event type: {event_type}")
            else:
                logger.info(f"Processing webhook event: {event_type} ({event_id})")
                await handler(data)

            if self._ledger is not None and event_id:
                await self._ledger.mark_processed(event_id, event_type)

        except MissingCorrelationError as e:
            logger.error(
                f"Webhook {event_type} ({event_id}) cannot be correlated: {e.message} "
                f"customer={data.get('customer')} object={data.get('id')}"
            )
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Database error processing webhook {event_type} ({event_id}) "
                f"customer={data.get('customer')} object={data.get('id')}: {e}"
            )
            raise DatabaseError(
                f"Failed to apply {event_type}",
                operation=event_type,
                original_error=e,
            )

        return True

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> None:
        """
        Upgrade the session's owner to pro and record the order.

        The owner comes from session metadata; a session without it would
        leave a paying user on the free tier, so it is an error.
        """
        user_id = (session.get("metadata") or {}).get("user_id")
        customer_id = session.get("customer")
        subscription_id = session.get("subscription")

        if not user_id:
            raise MissingCorrelationError(
                "No user_id found in session metadata",
                event_type="checkout.session.completed",
                customer_id=customer_id,
                subscription_id=subscription_id,
            )
        if not customer_id:
            raise MissingCorrelationError(
                "No customer on completed checkout session",
                event_type="checkout.session.completed",
                subscription_id=subscription_id,
            )

        billing = {
            "plan_tier": PlanTier.PRO,
            "stripe_customer_id": customer_id,
        }
        if subscription_id:
            billing["stripe_subscription_id"] = subscription_id

        await self._preferences.upsert_billing(user_id, billing)
        logger.info(f"Activated pro plan for user {user_id} (customer {customer_id})")

        await self._orders.insert_once(
            OrderRecord(
                user_id=user_id,
                order_id=session["id"],
                payment_intent_id=session.get("payment_intent"),
                amount_total=session.get("amount_total"),
                currency=session.get("currency"),
                payment_status=session.get("payment_status"),
                order_date=datetime.now(timezone.utc),
            )
        )

    async def handle_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        """
        Sync the subscription record and derive the plan tier from status.

        Only `active` grants pro. The result depends on this payload alone.
        """
        status = subscription.get("status")
        preferences = await self._resolve_customer(
            subscription, "customer.subscription.updated"
        )

        await self._subscriptions.upsert(
            subscription_record_from_payload(subscription, preferences.user_id)
        )

        terminal = status in {s.value for s in TERMINAL_STATUSES}
        await self._preferences.upsert_billing(
            preferences.user_id,
            {
                "plan_tier": plan_tier_for_status(status),
                "stripe_subscription_id": None if terminal else subscription["id"],
            },
        )
        logger.info(
            f"Synced subscription {subscription['id']} status={status} "
            f"for user {preferences.user_id}"
        )

    async def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        """Downgrade the customer's user to the free tier."""
        preferences = await self._resolve_customer(
            subscription, "customer.subscription.deleted"
        )

        await self._subscriptions.upsert(
            subscription_record_from_payload(
                subscription,
                preferences.user_id,
                status=SubscriptionStatus.CANCELED.value,
            )
        )

        await self._preferences.upsert_billing(
            preferences.user_id,
            {
                "plan_tier": PlanTier.FREE,
                "stripe_subscription_id": None,
            },
        )
        logger.info(
            f"Downgraded user {preferences.user_id} to free tier "
            f"(subscription {subscription['id']} deleted)"
        )

    async def _resolve_customer(
        self,
        subscription: Dict[str, Any],
        event_type: str,
    ) -> UserPreferences:
        """Find the user owning the subscription's customer."""
        customer_id = subscription.get("customer")
        if not customer_id:
            raise MissingCorrelationError(
                "Subscription event without customer",
                event_type=event_type,
                subscription_id=subscription.get("id"),
            )

        preferences = await self._preferences.get_by_stripe_customer_id(customer_id)
        if preferences is None:
            raise MissingCorrelationError(
                f"No user found for customer {customer_id}",
                event_type=event_type,
                customer_id=customer_id,
                subscription_id=subscription.get("id"),
            )
        return preferences
