"""
Checkout redirect markers.

Stripe sends the browser back to `?success=true` or `?canceled=true`.
The marker is consumed once and stripped from the visible URL.
"""

from enum import Enum
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


class CheckoutMarker(str, Enum):
    SUCCESS = "success"
    CANCELED = "canceled"


_MARKER_KEYS = {marker.value for marker in CheckoutMarker}


def consume_checkout_marker(url: str) -> Tuple[Optional[CheckoutMarker], str]:
    """
    Read the checkout marker from a return URL.

    Returns:
        (marker or None, the URL without any marker parameters)
    """
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)

    marker = None
    if (CheckoutMarker.SUCCESS.value, "true") in query:
        marker = CheckoutMarker.SUCCESS
    elif (CheckoutMarker.CANCELED.value, "true") in query:
        marker = CheckoutMarker.CANCELED

    remaining = [(key, value) for key, value in query if key not in _MARKER_KEYS]
    stripped = urlunsplit(parts._replace(query=urlencode(remaining)))
    return marker, stripped
