"""Engine settings loaded from the environment with Pydantic Settings."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class BusinessSettings(BaseSettings):
    """Seller location; ship-from address and reverse-charge origin."""

    model_config = SettingsConfigDict(env_prefix="BUSINESS_", extra="ignore")

    country: str = Field(default="US", description="ISO country code of the seller")
    state: str = Field(default="NY", description="Seller state/region")
    city: str = Field(default="New York", description="Seller city")
    postal_code: str = Field(default="10001", description="Seller postal code")
    line1: str = Field(default="123 Business St", description="Seller street address")

    @field_validator("country", "state")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class StripeTaxSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRIPE_", extra="ignore")

    secret_key: Optional[str] = Field(default=None, description="Stripe secret key")
    api_url: str = Field(default="https://api.stripe.com", description="Stripe API base URL")


class TaxJarSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TAXJAR_", extra="ignore")

    api_key: Optional[str] = Field(default=None, description="TaxJar API token")
    api_url: str = Field(default="https://api.taxjar.com", description="TaxJar API base URL")


class AvalaraSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AVALARA_", extra="ignore")

    username: Optional[str] = Field(default=None, description="AvaTax account username")
    password: Optional[str] = Field(default=None, description="AvaTax account password")
    environment: str = Field(default="sandbox", description="'sandbox' or 'production'")
    company_code: str = Field(default="DEFAULT", description="AvaTax company code")

    @property
    def api_url(self) -> str:
        if self.environment == "production":
            return "https://rest.avatax.com"
        return "https://sandbox-rest.avatax.com"


class TaxEngineSettings(BaseSettings):
    """Main engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="TAX_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_provider: str = Field(default="MANUAL", description="Provider used when none is requested")
    provider_timeout: float = Field(default=30.0, description="Seconds to wait on a provider call")
    batch_size: int = Field(default=10, ge=1, description="Requests per batch chunk")
    batch_delay_seconds: float = Field(default=0.1, ge=0, description="Pause between batch chunks")
    payment_terms_days: int = Field(default=30, ge=0, description="Default days until an invoice is due")

    business: BusinessSettings = Field(default_factory=BusinessSettings)
    stripe: StripeTaxSettings = Field(default_factory=StripeTaxSettings)
    taxjar: TaxJarSettings = Field(default_factory=TaxJarSettings)
    avalara: AvalaraSettings = Field(default_factory=AvalaraSettings)

    @field_validator("default_provider")
    @classmethod
    def _normalize_provider(cls, v: str) -> str:
        return v.strip().upper()


@lru_cache
def get_settings() -> TaxEngineSettings:
    """Cached settings loaded from the environment."""
    settings = TaxEngineSettings()
    logger.debug("Loaded tax engine settings (default provider %s)", settings.default_provider)
    return settings
