"""
Checkout Service

Opens a Stripe-hosted checkout page for a plan upgrade.
Two sequential Stripe calls (customer, then session) and no local writes,
so a failed attempt can simply be retried by the caller.
"""

import logging
from typing import Optional, Tuple

from app.config.settings import Settings
from app.infrastructure.exceptions import ConfigurationError, ValidationError
from app.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)

SUCCESS_MARKER = "success=true"
CANCELED_MARKER = "canceled=true"


class CheckoutInitiator:
    """Creates or reuses a Stripe customer and opens a checkout session."""

    def __init__(self, stripe_service: StripeService, settings: Settings):
        self._stripe = stripe_service
        self._settings = settings

    def return_page(self, origin: Optional[str] = None) -> str:
        """
        Settings page URL inside the application.

        The request origin is used when it is an allowed origin, otherwise
        the configured frontend URL.
        """
        base = self._settings.frontend_url
        if origin and origin.rstrip("/") in {o.rstrip("/") for o in self._settings.allowed_origins}:
            base = origin
        return f"{base.rstrip('/')}{self._settings.checkout_return_path}"

    def return_urls(self, origin: Optional[str] = None) -> Tuple[str, str]:
        """Success and cancel URLs carrying the redirect markers."""
        page = self.return_page(origin)
        return f"{page}?{SUCCESS_MARKER}", f"{page}?{CANCELED_MARKER}"

    async def start_checkout(
        self,
        price_id: str,
        user_id: str,
        email: str,
        origin: Optional[str] = None,
    ) -> str:
        """
        Open a checkout session for `price_id` on behalf of `user_id`.

        Returns:
            The provider-hosted checkout URL
        """
        allowed_prices = self._settings.purchasable_price_ids
        if not allowed_prices:
            raise ConfigurationError(
                "No purchasable Stripe price configured",
                missing_keys=["STRIPE_PRO_PRICE_ID"],
            )
        if price_id not in allowed_prices:
            raise ValidationError(f"Unknown price: {price_id}", details={"price_id": price_id})

        customer = await self._stripe.find_or_create_customer(user_id=user_id, email=email)

        success_url, cancel_url = self.return_urls(origin)
        session = await self._stripe.create_checkout_session(
            customer_id=customer.id,
            price_id=price_id,
            user_id=user_id,
            success_url=success_url,
            cancel_url=cancel_url,
        )

        logger.info(
            f"Checkout session {session.id} opened for user {user_id} "
            f"(customer {customer.id}, price {price_id})"
        )
        return session.url
