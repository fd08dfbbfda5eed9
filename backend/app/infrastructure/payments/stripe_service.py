"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles customer lookup, checkout sessions, billing portal, invoice PDFs
and webhook signature verification.

- Hosted Checkout for minimal PCI burden
- Customer Portal for subscription management
- Webhook payloads are only parsed after the signature verifies
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx
import stripe
from stripe import SignatureVerificationError, StripeError

from app.config.settings import Settings
from app.infrastructure.exceptions import (
    ConfigurationError,
    PaymentProviderError,
    WebhookSignatureError,
)


logger = logging.getLogger(__name__)


class StripeService:
    """
    Stripe payment processing service.

    Built once at process start with the application settings.
    Checkout-side methods write nothing locally and are safe to retry.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._use_idempotency_keys = settings.stripe_customer_idempotency_keys
        self._http_client = http_client

        if self._api_key:
            stripe.api_key = self._api_key

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def find_or_create_customer(
        self,
        user_id: str,
        email: str,
    ) -> stripe.Customer:
        """
        Reuse the customer registered under `email`, or create one.

        Either way the customer's metadata ends up carrying `user_id`.
        Two concurrent calls for a brand-new email can both miss the lookup
        and create two customers.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts

        Returns:
            stripe.Customer object
        """
        try:
            existing = stripe.Customer.list(email=email, limit=1)

            if existing.data:
                customer = existing.data[0]
                logger.info(f"Updating existing Stripe customer {customer.id}")
                return stripe.Customer.modify(
                    customer.id,
                    metadata={"user_id": user_id},
                )

            params: Dict[str, Any] = {
                "email": email,
                "metadata": {"user_id": user_id},
            }
            if self._use_idempotency_keys:
                params["idempotency_key"] = f"customer-create-{user_id}"

            customer = stripe.Customer.create(**params)
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            logger.error(f"Failed to find or create Stripe customer: {e}")
            raise PaymentProviderError(
                f"Failed to create customer: {e.user_message or e}",
                operation="customer",
                original_error=e,
            )

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """
        Create a subscription-mode Checkout Session.

        The session carries `user_id` in its own metadata so the completion
        webhook can act without looking the customer up.

        Args:
            customer_id: Stripe customer ID
            price_id: Stripe price to subscribe to
            user_id: Internal user ID for metadata
            success_url: Redirect after successful payment
            cancel_url: Redirect after cancelled payment

        Returns:
            stripe.checkout.Session with checkout URL
        """
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                billing_address_collection="required",
                customer_update={
                    "address": "auto",
                    "name": "auto",
                },
                metadata={
                    "user_id": user_id,
                },
            )

            logger.info(f"Created checkout session {session.id} for user {user_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise PaymentProviderError(
                f"Failed to create checkout: {e.user_message or e}",
                operation="checkout",
                original_error=e,
            )

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> stripe.billing_portal.Session:
        """Create a Billing Portal session for self-service management."""
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )

            logger.info(f"Created portal session for customer {customer_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise PaymentProviderError(
                f"Failed to create portal: {e.user_message or e}",
                operation="portal",
                original_error=e,
            )

    # =========================================================================
    # Invoices
    # =========================================================================

    async def get_invoice_pdf(self, payment_intent_id: str) -> bytes:
        """
        Download the invoice PDF behind a payment intent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID from an order record

        Returns:
            Raw PDF bytes
        """
        try:
            payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
            invoice_id = payment_intent.get("invoice")
            if not invoice_id:
                raise PaymentProviderError(
                    f"No invoice attached to payment {payment_intent_id}",
                    operation="invoice",
                )

            invoice = stripe.Invoice.retrieve(invoice_id)
            pdf_url = invoice.get("invoice_pdf")
            if not pdf_url:
                raise PaymentProviderError(
                    f"Invoice {invoice_id} has no PDF yet",
                    operation="invoice",
                )

        except StripeError as e:
            logger.error(f"Failed to retrieve invoice for {payment_intent_id}: {e}")
            raise PaymentProviderError(
                f"Failed to retrieve invoice: {e.user_message or e}",
                operation="invoice",
                original_error=e,
            )

        try:
            if self._http_client is not None:
                response = await self._http_client.get(pdf_url)
            else:
                async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
                    response = await client.get(pdf_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download invoice PDF for {payment_intent_id}: {e}")
            raise PaymentProviderError(
                "Failed to download invoice PDF",
                operation="invoice",
                original_error=e,
            )

        return response.content

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            The event as a plain dict

        Raises:
            WebhookSignatureError if the signature or payload is invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self._webhook_secret,
            )
        except SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid signature: {e}")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")

        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Invalid payload: not a Stripe event")

        return event
