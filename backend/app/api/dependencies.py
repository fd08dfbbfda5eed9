"""
API Dependencies

FastAPI dependency injection for authentication and billing services.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.infrastructure.container import ServiceContainer
from app.infrastructure.db.repositories import IOrderStore, IPreferencesStore
from app.infrastructure.exceptions import ConfigurationError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.realtime.change_feed import PreferencesChangeFeed
from app.infrastructure.services.checkout_service import CheckoutInitiator
from app.infrastructure.services.webhook_reconciler import WebhookReconciler


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# PyJWKClient caches keys internally and refreshes ~every 10 min.
_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a shared PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify user ID from a Supabase JWT.

    Verification strategy (in order):
      1. JWKS (ES256) — preferred, supports key rotation automatically.
      2. HS256 with ``SUPABASE_JWT_SECRET`` — fallback for legacy signing.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 fallback ---
    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(
                token, settings.supabase_jwt_secret, issuer
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return user_id


# =============================================================================
# Service providers
# Routers should import from api.dependencies, not the container directly.
# =============================================================================

def get_services(request: Request) -> ServiceContainer:
    """Service handles built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services are not initialized")
    return services


def get_preferences_store(
    services: ServiceContainer = Depends(get_services),
) -> IPreferencesStore:
    return services.preferences


def get_order_store(
    services: ServiceContainer = Depends(get_services),
) -> IOrderStore:
    return services.orders


def get_stripe_service(
    services: ServiceContainer = Depends(get_services),
) -> StripeService:
    return services.stripe


def get_change_feed(
    services: ServiceContainer = Depends(get_services),
) -> PreferencesChangeFeed:
    return services.change_feed


def get_webhook_reconciler(
    services: ServiceContainer = Depends(get_services),
) -> WebhookReconciler:
    return services.reconciler


def get_checkout_initiator(
    services: ServiceContainer = Depends(get_services),
) -> CheckoutInitiator:
    return services.checkout
