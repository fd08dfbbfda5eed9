"""
Application Settings for Finance Tracker

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Stripe price IDs listed in STRIPE_PRO_PRICE_ID are the only prices the
    checkout endpoint will open a session for.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_pro_price_id: Optional[str] = None
    # Off by default: customer creation is keyed only by email lookup
    stripe_customer_idempotency_keys: bool = False

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    checkout_return_path: str = "/settings"

    # Client reconciliation after a checkout redirect
    reconciliation_poll_interval_seconds: float = 3.0
    reconciliation_timeout_seconds: float = 60.0

    # Preferences defaults for new users
    default_currency: str = "₹"
    default_locale: str = "en-IN"

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_reconciliation_window(self) -> "Settings":
        """Polling must fit at least once inside the reconciliation ceiling."""
        if self.reconciliation_poll_interval_seconds <= 0:
            raise ValueError("RECONCILIATION_POLL_INTERVAL_SECONDS must be positive")
        if self.reconciliation_timeout_seconds < self.reconciliation_poll_interval_seconds:
            raise ValueError(
                "RECONCILIATION_TIMEOUT_SECONDS must be at least the poll interval"
            )
        return self

    @property
    def purchasable_price_ids(self) -> set[str]:
        """Stripe price IDs accepted by the checkout endpoint."""
        if not self.stripe_pro_price_id:
            return set()
        return {
            price.strip()
            for price in self.stripe_pro_price_id.split(",")
            if price.strip()
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
