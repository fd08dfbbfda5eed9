"""
Preferences API Client

Async HTTP client for the preferences endpoints, used by the
reconciliation loop: GET for polling, the SSE stream for push updates.
"""

import json
import logging
from typing import AsyncIterator, Optional, Tuple

import httpx

from app.client.reconciliation import ReconciliationLoop, ReconciliationResult
from app.client.redirect import CheckoutMarker, consume_checkout_marker
from app.domain.subscription import PlanTier, UserPreferences


logger = logging.getLogger(__name__)

PREFERENCES_PATH = "/api/preferences"
PREFERENCES_STREAM_PATH = "/api/preferences/stream"
PREFERENCES_EVENT = "preferences"


class PreferencesClient:
    """Reads the caller's preferences with a Supabase access token."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PreferencesClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def fetch_preferences(self) -> UserPreferences:
        """One preferences refresh."""
        response = await self._client.get(PREFERENCES_PATH, headers=self._headers)
        response.raise_for_status()
        return UserPreferences.model_validate(response.json())

    async def stream_changes(self) -> AsyncIterator[UserPreferences]:
        """Yield the preferences row each time the server pushes a change."""
        async with self._client.stream(
            "GET",
            PREFERENCES_STREAM_PATH,
            headers={**self._headers, "Accept": "text/event-stream"},
            timeout=None,
        ) as response:
            response.raise_for_status()

            event_name = None
            data_lines = []
            async for line in response.aiter_lines():
                if not line:
                    if event_name in (None, PREFERENCES_EVENT) and data_lines:
                        yield UserPreferences.model_validate(json.loads("\n".join(data_lines)))
                    event_name, data_lines = None, []
                elif line.startswith(":"):
                    continue
                elif line.startswith("event:"):
                    event_name = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:"):].lstrip())

            # Server closed without a trailing blank line
            if event_name in (None, PREFERENCES_EVENT) and data_lines:
                yield UserPreferences.model_validate(json.loads("\n".join(data_lines)))

    async def reconcile_after_checkout(
        self,
        return_url: str,
        poll_interval: float = 3.0,
        timeout: float = 60.0,
    ) -> Tuple[str, Optional[ReconciliationResult]]:
        """
        Handle the page Stripe redirected back to.

        Returns:
            (URL with the marker stripped, reconciliation result or None when
            the URL carried no success marker)
        """
        marker, clean_url = consume_checkout_marker(return_url)
        if marker is not CheckoutMarker.SUCCESS:
            return clean_url, None

        logger.info("Checkout success marker found, reconciling plan tier")
        async with ReconciliationLoop(
            self.fetch_preferences,
            self.stream_changes,
            expected_tier=PlanTier.PRO,
            poll_interval=poll_interval,
            timeout=timeout,
        ) as loop:
            result = await loop.wait()
        return clean_url, result
