"""
Billing API Routes

Checkout, billing portal, invoices, order history and plan/feature lookup.
Stripe and database failures surface as FinanceTrackerError subclasses and
are rendered by the application exception handler.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, Response

from app.api.dependencies import (
    get_checkout_initiator,
    get_current_user_id,
    get_order_store,
    get_preferences_store,
    get_services,
    get_stripe_service,
)
from app.domain.features import feature_availability, plan_features
from app.domain.subscription import (
    CheckoutResponse,
    CreateCheckoutRequest,
    FeatureAvailabilityResponse,
    InvoiceRequest,
    OrderRecord,
    PlanDescription,
    PlansResponse,
    PlanTier,
    PortalResponse,
)
from app.infrastructure.container import ServiceContainer
from app.infrastructure.db.repositories import IOrderStore, IPreferencesStore
from app.infrastructure.exceptions import AuthorizationError, NotFoundError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.checkout_service import CheckoutInitiator


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Checkout
# =============================================================================

@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CreateCheckoutRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    checkout: CheckoutInitiator = Depends(get_checkout_initiator),
):
    """
    Open a Stripe Checkout session for the Pro plan.

    The authenticated user must be the one named in the request body.
    Nothing is written locally; the webhook grants the plan.
    """
    if body.user_id != user_id:
        logger.warning(f"User {user_id} attempted checkout for {body.user_id}")
        raise AuthorizationError("Cannot start checkout for another user")

    url = await checkout.start_checkout(
        price_id=body.price_id,
        user_id=body.user_id,
        email=body.email,
        origin=request.headers.get("origin"),
    )
    return CheckoutResponse(url=url)


# =============================================================================
# Billing Portal
# =============================================================================

@router.post("/billing-portal", response_model=PortalResponse)
async def create_billing_portal_session(
    user_id: str = Depends(get_current_user_id),
    preferences: IPreferencesStore = Depends(get_preferences_store),
    stripe_service: StripeService = Depends(get_stripe_service),
    checkout: CheckoutInitiator = Depends(get_checkout_initiator),
):
    """Stripe Customer Portal link for updating payment method or cancelling."""
    prefs = await preferences.get(user_id)
    if prefs is None or not prefs.stripe_customer_id:
        raise NotFoundError("No billing account found", table="user_preferences")

    session = await stripe_service.create_portal_session(
        customer_id=prefs.stripe_customer_id,
        return_url=checkout.return_page(),
    )
    return PortalResponse(url=session.url)


# =============================================================================
# Invoices & Orders
# =============================================================================

@router.post("/invoices")
async def download_invoice(
    body: InvoiceRequest,
    user_id: str = Depends(get_current_user_id),
    orders: IOrderStore = Depends(get_order_store),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Download the invoice PDF for one of the caller's orders."""
    owned = await orders.list_for_user(user_id)
    if not any(order.payment_intent_id == body.payment_intent_id for order in owned):
        raise NotFoundError("Order not found", table="stripe_user_orders")

    pdf = await stripe_service.get_invoice_pdf(body.payment_intent_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="invoice-{body.payment_intent_id}.pdf"'
        },
    )


@router.get("/orders", response_model=List[OrderRecord])
async def list_orders(
    user_id: str = Depends(get_current_user_id),
    orders: IOrderStore = Depends(get_order_store),
):
    """Payment history, newest first."""
    return await orders.list_for_user(user_id)


# =============================================================================
# Plans & Features
# =============================================================================

@router.get("/plans", response_model=PlansResponse)
async def get_plans(services: ServiceContainer = Depends(get_services)):
    """Plan descriptions and the feature comparison table. Public."""
    price_ids = sorted(services.settings.purchasable_price_ids)
    plans = [
        PlanDescription(
            id=PlanTier.FREE,
            name="Free",
            description="Track everyday spending with the essentials.",
        ),
        PlanDescription(
            id=PlanTier.PRO,
            name="Pro",
            description="Advanced analytics, backups and shared workspaces.",
            price_id=price_ids[0] if price_ids else None,
        ),
    ]
    return PlansResponse(plans=plans, features=plan_features())


@router.get("/features", response_model=FeatureAvailabilityResponse)
async def get_features(
    user_id: str = Depends(get_current_user_id),
    preferences: IPreferencesStore = Depends(get_preferences_store),
):
    """Which features the caller's current plan unlocks."""
    prefs = await preferences.get_or_create(user_id)
    return FeatureAvailabilityResponse(
        plan_tier=prefs.plan_tier,
        features=feature_availability(prefs.plan_tier),
    )
