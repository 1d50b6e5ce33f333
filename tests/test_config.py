"""Tests for environment-driven settings."""

import pytest

from invoice_tax.config import AvalaraSettings, TaxEngineSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for var in (
        "TAX_ENGINE_DEFAULT_PROVIDER",
        "TAX_ENGINE_PAYMENT_TERMS_DAYS",
        "TAX_ENGINE_BATCH_SIZE",
        "BUSINESS_COUNTRY",
        "STRIPE_SECRET_KEY",
        "AVALARA_ENVIRONMENT",
    ):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = TaxEngineSettings()
    assert settings.default_provider == "MANUAL"
    assert settings.payment_terms_days == 30
    assert settings.batch_size == 10
    assert settings.business.country == "US"
    assert settings.stripe.secret_key is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TAX_ENGINE_DEFAULT_PROVIDER", " taxjar ")
    monkeypatch.setenv("TAX_ENGINE_PAYMENT_TERMS_DAYS", "14")
    monkeypatch.setenv("BUSINESS_COUNTRY", "de")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    settings = TaxEngineSettings()
    assert settings.default_provider == "TAXJAR"
    assert settings.payment_terms_days == 14
    assert settings.business.country == "DE"
    assert settings.stripe.secret_key == "sk_test_123"


def test_invalid_batch_size_rejected(monkeypatch):
    monkeypatch.setenv("TAX_ENGINE_BATCH_SIZE", "0")
    with pytest.raises(ValueError):
        TaxEngineSettings()


def test_avalara_api_url(monkeypatch):
    assert AvalaraSettings().api_url == "https://sandbox-rest.avatax.com"
    monkeypatch.setenv("AVALARA_ENVIRONMENT", "production")
    assert AvalaraSettings().api_url == "https://rest.avatax.com"


def test_get_settings_cached():
    assert get_settings() is get_settings()
