"""
Client-side billing reconciliation.

Used by front-ends and scripts after a checkout redirect.
"""

from app.client.preferences_client import PreferencesClient
from app.client.reconciliation import ReconciliationLoop, ReconciliationResult
from app.client.redirect import CheckoutMarker, consume_checkout_marker

__all__ = [
    "CheckoutMarker",
    "PreferencesClient",
    "ReconciliationLoop",
    "ReconciliationResult",
    "consume_checkout_marker",
]
