"""
Test configuration and fixtures for Finance Tracker billing.

Provides in-memory stores, a service container wired with them, signed
Stripe webhook payloads and authenticated request headers.
"""

import hashlib
import hmac
import json
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

# Settings are read at import time; configure before the app loads.
os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PRO_PRICE_ID", "price_pro_monthly")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")

import jwt
import pytest
from fastapi.testclient import TestClient

from app.config.settings import get_settings
from app.domain.subscription import (
    OrderRecord,
    PlanTier,
    SubscriptionRecord,
    UserPreferences,
)
from app.infrastructure.container import ServiceContainer
from app.infrastructure.db.repositories.base_repository import (
    BILLING_COLUMNS,
    DISPLAY_COLUMNS,
    IOrderStore,
    IPreferencesStore,
    ISubscriptionStore,
    IWebhookEventLedger,
    check_columns,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.realtime.change_feed import PreferencesChangeFeed
from app.infrastructure.services.checkout_service import CheckoutInitiator
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


# =============================================================================
# In-memory stores
# =============================================================================

class InMemoryPreferencesStore(IPreferencesStore):
    """Column-scoped merges over a dict, publishing like the real repository."""

    def __init__(self, change_feed: Optional[PreferencesChangeFeed] = None):
        self.rows: Dict[str, UserPreferences] = {}
        self.change_feed = change_feed
        self.writes = 0

    async def get(self, user_id: str) -> Optional[UserPreferences]:
        row = self.rows.get(user_id)
        return row.model_copy() if row else None

    async def get_or_create(self, user_id: str) -> UserPreferences:
        if user_id not in self.rows:
            now = datetime.now(timezone.utc)
            self.rows[user_id] = UserPreferences(user_id=user_id, created_at=now, updated_at=now)
        return self.rows[user_id].model_copy()

    async def get_by_stripe_customer_id(self, customer_id: str) -> Optional[UserPreferences]:
        for row in self.rows.values():
            if row.stripe_customer_id == customer_id:
                return row.model_copy()
        return None

    async def upsert_billing(self, user_id: str, values: Mapping[str, Any]) -> UserPreferences:
        check_columns(values, BILLING_COLUMNS)
        return await self._merge(user_id, values)

    async def update_display(self, user_id: str, values: Mapping[str, Any]) -> UserPreferences:
        check_columns(values, DISPLAY_COLUMNS)
        return await self._merge(user_id, values)

    async def _merge(self, user_id: str, values: Mapping[str, Any]) -> UserPreferences:
        await self.get_or_create(user_id)
        customer_id = values.get("stripe_customer_id")
        if customer_id:
            # stripe_customer_id is unique: the previous holder lets go
            for other_id, row in list(self.rows.items()):
                if other_id != user_id and row.stripe_customer_id == customer_id:
                    self.rows[other_id] = row.model_copy(update={"stripe_customer_id": None})
                    if self.change_feed is not None:
                        self.change_feed.publish(self.rows[other_id].model_copy())
        update = dict(values, updated_at=datetime.now(timezone.utc))
        self.rows[user_id] = self.rows[user_id].model_copy(update=update)
        self.writes += 1
        if self.change_feed is not None:
            self.change_feed.publish(self.rows[user_id].model_copy())
        return self.rows[user_id].model_copy()


class InMemoryOrderStore(IOrderStore):

    def __init__(self):
        self.rows: Dict[str, OrderRecord] = {}

    async def insert_once(self, order: OrderRecord) -> bool:
        if order.order_id in self.rows:
            return False
        self.rows[order.order_id] = order.model_copy(
            update={
                "id": str(uuid.uuid4()),
                "order_date": order.order_date or datetime.now(timezone.utc),
            }
        )
        return True

    async def list_for_user(self, user_id: str, limit: int = 100) -> List[OrderRecord]:
        orders = [o for o in self.rows.values() if o.user_id == user_id]
        orders.sort(key=lambda o: o.order_date, reverse=True)
        return orders[:limit]


class InMemorySubscriptionStore(ISubscriptionStore):

    def __init__(self):
        self.rows: Dict[str, SubscriptionRecord] = {}

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        self.rows[record.subscription_id] = record
        return record

    async def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        return self.rows.get(subscription_id)


class InMemoryEventLedger(IWebhookEventLedger):

    def __init__(self):
        self.events: Dict[str, str] = {}

    async def is_processed(self, event_id: str) -> bool:
        return event_id in self.events

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        self.events.setdefault(event_id, event_type)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Settings built from the test environment."""
    return get_settings()


@pytest.fixture
def change_feed():
    return PreferencesChangeFeed()


@pytest.fixture
def preferences_store(change_feed):
    return InMemoryPreferencesStore(change_feed)


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def subscription_store():
    return InMemorySubscriptionStore()


@pytest.fixture
def event_ledger():
    return InMemoryEventLedger()


@pytest.fixture
def reconciler(preferences_store, order_store, subscription_store, event_ledger):
    return WebhookReconciler(preferences_store, order_store, subscription_store, event_ledger)


@pytest.fixture
def stripe_service(settings):
    return StripeService(settings)


@pytest.fixture
def services(
    settings,
    stripe_service,
    change_feed,
    preferences_store,
    order_store,
    subscription_store,
    event_ledger,
    reconciler,
):
    """Service container backed by the in-memory stores."""
    return ServiceContainer(
        settings=settings,
        stripe=stripe_service,
        change_feed=change_feed,
        preferences=preferences_store,
        orders=order_store,
        subscriptions=subscription_store,
        ledger=event_ledger,
        reconciler=reconciler,
        checkout=CheckoutInitiator(stripe_service, settings),
    )


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(services):
    """Get the FastAPI application wired to the in-memory services."""
    from app.main import app
    app.state.services = services
    yield app
    app.state.services = None


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture
def mock_user_id():
    return "00000000-0000-0000-0000-000000000001"


def make_token(user_id: str, settings, expires_in: int = 3600) -> str:
    """HS256 Supabase-style access token."""
    now = int(time.time())
    return jwt.encode(
        {
            "sub": user_id,
            "aud": "authenticated",
            "iss": f"{settings.supabase_url}/auth/v1",
            "iat": now,
            "exp": now + expires_in,
        },
        settings.supabase_jwt_secret,
        algorithm="HS256",
    )


@pytest.fixture
def auth_headers(mock_user_id, settings):
    return {"Authorization": f"Bearer {make_token(mock_user_id, settings)}"}


@pytest.fixture(autouse=True)
def no_jwks(monkeypatch):
    """Skip the JWKS network fetch so tokens verify via the HS256 secret."""
    import app.api.dependencies as deps

    def _unavailable(token, issuer):
        raise jwt.exceptions.PyJWKClientError("JWKS unavailable in tests")

    monkeypatch.setattr(deps, "_decode_with_jwks", _unavailable)


# =============================================================================
# Stripe Webhook Fixtures
# =============================================================================

def sign_payload(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a raw payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def signer(settings):
    """Sign raw payloads with the configured webhook secret (or another one)."""

    def _sign(payload: str, secret: Optional[str] = None, timestamp: Optional[int] = None) -> str:
        return sign_payload(payload, secret or settings.stripe_webhook_secret, timestamp)

    return _sign


@pytest.fixture
def post_event(client, settings):
    """POST a correctly signed Stripe event to the webhook endpoint."""

    def _post(event: Dict[str, Any]):
        payload = json.dumps(event)
        return client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={
                "stripe-signature": sign_payload(payload, settings.stripe_webhook_secret),
                "content-type": "application/json",
            },
        )

    return _post


def make_event(event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def checkout_session(user_id: Optional[str], customer: Optional[str] = "cus_test", **overrides):
    session = {
        "id": "cs_test_123",
        "object": "checkout.session",
        "customer": customer,
        "subscription": "sub_test_123",
        "payment_intent": "pi_test_123",
        "amount_total": 49900,
        "currency": "inr",
        "payment_status": "paid",
        "metadata": {"user_id": user_id} if user_id else {},
    }
    session.update(overrides)
    return session


def subscription_payload(status: str, customer: str = "cus_test", sub_id: str = "sub_test_123"):
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": False,
        "items": {
            "data": [
                {
                    "price": {"id": "price_pro_monthly"},
                    "current_period_start": 1760000000,
                    "current_period_end": 1762592000,
                }
            ]
        },
    }


@pytest.fixture
def events():
    """Builders for Stripe event payloads."""

    class _Events:
        event = staticmethod(make_event)
        checkout_session = staticmethod(checkout_session)
        subscription = staticmethod(subscription_payload)

    return _Events


@pytest.fixture
def pro_user(preferences_store, mock_user_id):
    """A user whose checkout already completed."""
    preferences_store.rows[mock_user_id] = UserPreferences(
        user_id=mock_user_id,
        plan_tier=PlanTier.PRO,
        stripe_customer_id="cus_test",
        stripe_subscription_id="sub_test_123",
    )
    return mock_user_id
