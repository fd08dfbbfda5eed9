"""
Unit tests for Pydantic Settings configuration.

Tests settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from app.config.settings import Settings


REQUIRED = {
    "supabase_url": "https://testproject.supabase.co",
    "supabase_service_role_key": "key",
}


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_loads_from_env(self):
        """Settings should load from environment variables."""
        from app.config.settings import settings

        assert settings.supabase_url is not None
        assert settings.supabase_service_role_key is not None
        assert settings.stripe_webhook_secret is not None

    def test_settings_has_defaults(self):
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None, **REQUIRED)

        assert settings.reconciliation_poll_interval_seconds == 3.0
        assert settings.reconciliation_timeout_seconds == 60.0
        assert settings.checkout_return_path == "/settings"
        assert settings.stripe_customer_idempotency_keys is False
        assert settings.default_locale == "en-IN"

    def test_is_production_property(self):
        """is_production should follow ENVIRONMENT."""
        assert Settings(_env_file=None, environment="production", **REQUIRED).is_production is True

        dev = Settings(_env_file=None, environment="development", **REQUIRED)
        assert dev.is_production is False
        assert dev.is_development is True

    def test_allowed_origins_includes_localhost(self):
        """allowed_origins should include localhost for development."""
        settings = Settings(_env_file=None, **REQUIRED)

        assert "http://localhost:5173" in settings.allowed_origins
        assert "http://localhost:3000" in settings.allowed_origins

    def test_purchasable_price_ids_parses_list(self):
        settings = Settings(
            _env_file=None,
            stripe_pro_price_id="price_a, price_b,,",
            **REQUIRED,
        )
        assert settings.purchasable_price_ids == {"price_a", "price_b"}

    def test_purchasable_price_ids_empty(self):
        settings = Settings(_env_file=None, stripe_pro_price_id=None, **REQUIRED)
        assert settings.purchasable_price_ids == set()

    def test_poll_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, reconciliation_poll_interval_seconds=0, **REQUIRED)

    def test_timeout_must_cover_one_poll(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                reconciliation_poll_interval_seconds=10,
                reconciliation_timeout_seconds=5,
                **REQUIRED,
            )
