"""
Subscription Domain Models

Domain models for the billing bounded context.
Enums, entities, and request/response DTOs for plan tiers, preferences,
orders and Stripe subscriptions.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class PlanTier(str, Enum):
    """Coarse entitlement level used by the feature gate."""
    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(str, Enum):
    """Stripe subscription lifecycle status."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    PAUSED = "paused"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    CANCELED = "canceled"


# Statuses after which Stripe will never bill the subscription again
TERMINAL_STATUSES = frozenset({
    SubscriptionStatus.CANCELED,
    SubscriptionStatus.INCOMPLETE_EXPIRED,
})


def plan_tier_for_status(status: str) -> PlanTier:
    """Only an active subscription grants the pro tier."""
    return PlanTier.PRO if status == SubscriptionStatus.ACTIVE.value else PlanTier.FREE


# =============================================================================
# Domain Entities
# =============================================================================

class UserPreferences(BaseModel):
    """
    One row per user in the preferences store.

    Billing columns (plan_tier, stripe_*) are written by the webhook
    reconciler; currency and locale are written by the user.
    """
    user_id: str
    plan_tier: PlanTier = PlanTier.FREE
    currency: str = "₹"
    locale: str = "en-IN"
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderRecord(BaseModel):
    """Append-only record of one completed checkout session."""
    id: Optional[str] = None
    user_id: str
    order_id: str
    payment_intent_id: Optional[str] = None
    amount_total: Optional[int] = None  # In minor units
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    order_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionRecord(BaseModel):
    """Latest known state of a Stripe subscription."""
    subscription_id: str
    customer_id: str
    user_id: Optional[str] = None
    status: str
    price_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    price_id: str = Field(..., alias="priceId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    email: str = Field(..., min_length=3, max_length=320)

    class Config:
        populate_by_name = True


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    url: str


class InvoiceRequest(BaseModel):
    """Request DTO for invoice PDF retrieval."""
    payment_intent_id: str = Field(..., alias="paymentIntentId", min_length=1)

    class Config:
        populate_by_name = True


class PortalResponse(BaseModel):
    """Response DTO for billing portal session creation."""
    url: str


class PreferencesUpdateRequest(BaseModel):
    """User-editable preference fields. Billing fields are not accepted."""
    currency: Optional[str] = Field(None, min_length=1, max_length=8)
    locale: Optional[str] = Field(None, min_length=2, max_length=35)


class FeatureAvailabilityResponse(BaseModel):
    """Feature gate outcome for every known feature."""
    plan_tier: PlanTier
    features: dict[str, bool]


class PlanFeature(BaseModel):
    """One row of the plan comparison table."""
    key: str
    title: str
    description: str
    tiers: dict[PlanTier, bool]


class PlanDescription(BaseModel):
    """Plan card information."""
    id: PlanTier
    name: str
    description: str
    price_id: Optional[str] = None


class PlansResponse(BaseModel):
    """Response DTO for the plans page."""
    plans: list[PlanDescription]
    features: list[PlanFeature]
