"""
Stripe Webhook Handler

Receives Stripe webhook events and hands them to the reconciler, which
projects them onto user preferences. Signature verification happens before
any payload field is read.

Handled events:
- checkout.session.completed: grant pro, record the order
- customer.subscription.updated: recompute plan tier from status
- customer.subscription.deleted: downgrade to free
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.dependencies import get_stripe_service, get_webhook_reconciler
from app.infrastructure.exceptions import ValidationError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
    "Access-Control-Max-Age": "86400",
}


@router.options("/webhooks/stripe")
async def stripe_webhook_preflight():
    """CORS preflight."""
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe_service),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Handle Stripe webhook events.

    Returns {"received": true} once the event is applied (or was already
    applied). Errors answer 4xx/5xx so Stripe redelivers.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.warning("Webhook received without stripe-signature header")
        raise ValidationError("Missing Stripe signature")

    event = stripe_service.verify_webhook_signature(payload, signature)

    applied = await reconciler.process(event)
    if not applied:
        logger.debug(f"Event {event.get('id')} acknowledged as duplicate")

    return {"received": True}
