"""Tests for checkout settings loaded from the environment."""

import pytest
from marketplace.checkout.settings import CheckoutSettings
from marketplace.payment.generation import InvoiceFallback


class TestCheckoutSettings:
    def test_defaults(self):
        settings = CheckoutSettings.from_env({})
        assert settings.invoice_fallback is InvoiceFallback.STRICT
        assert settings.confirmation_timeout_seconds == 75.0
        assert settings.invoice_ttl_seconds == 3600
        assert settings.strict_shares is False
        assert settings.concurrent_groups is True

    def test_overrides(self):
        settings = CheckoutSettings.from_env(
            {
                "MARKETPLACE_INVOICE_FALLBACK": "MOCK",
                "MARKETPLACE_CONFIRMATION_TIMEOUT": "60",
                "MARKETPLACE_INVOICE_TTL": "600",
                "MARKETPLACE_STRICT_SHARES": "yes",
                "MARKETPLACE_CONCURRENT_GROUPS": "0",
            }
        )
        assert settings.invoice_fallback is InvoiceFallback.MOCK
        assert settings.confirmation_timeout_seconds == 60.0
        assert settings.invoice_ttl_seconds == 600
        assert settings.strict_shares is True
        assert settings.concurrent_groups is False

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("MARKETPLACE_INVOICE_FALLBACK", "mock")
        assert CheckoutSettings.from_env().invoice_fallback is InvoiceFallback.MOCK

    def test_unknown_fallback(self):
        with pytest.raises(ValueError):
            CheckoutSettings.from_env({"MARKETPLACE_INVOICE_FALLBACK": "maybe"})

    def test_invalid_flag(self):
        with pytest.raises(ValueError):
            CheckoutSettings.from_env({"MARKETPLACE_STRICT_SHARES": "sometimes"})
