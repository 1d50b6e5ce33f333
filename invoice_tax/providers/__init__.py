"""
Tax providers.

Modules:
    base       - TaxProvider interface, ProviderRegistry, HTTP base class
    manual     - Local rate store provider
    stripe_tax - Stripe Tax adapter
    taxjar     - TaxJar adapter
    avalara    - Avalara AvaTax adapter
"""

from __future__ import annotations

from typing import Optional

import httpx

from invoice_tax.config import TaxEngineSettings
from invoice_tax.jurisdiction import JurisdictionResolver
from invoice_tax.providers.avalara import AvalaraProvider
from invoice_tax.providers.base import HttpTaxProvider, ProviderRegistry, TaxProvider
from invoice_tax.providers.manual import ManualTaxProvider
from invoice_tax.providers.stripe_tax import StripeTaxProvider
from invoice_tax.providers.taxjar import TaxJarProvider
from invoice_tax.rates import TaxRateStore
from invoice_tax.reverse_charge import ReverseChargeEvaluator


def build_default_registry(
    settings: TaxEngineSettings,
    store: TaxRateStore,
    client: Optional[httpx.AsyncClient] = None,
) -> ProviderRegistry:
    """Wire the four built-in providers from settings."""
    registry = ProviderRegistry()
    registry.register(
        ManualTaxProvider(
            JurisdictionResolver(store),
            ReverseChargeEvaluator(settings.business.country),
        )
    )
    registry.register(
        StripeTaxProvider(
            settings.stripe.secret_key,
            api_url=settings.stripe.api_url,
            timeout=settings.provider_timeout,
            client=client,
        )
    )
    registry.register(
        TaxJarProvider(
            settings.taxjar.api_key,
            business=settings.business,
            api_url=settings.taxjar.api_url,
            timeout=settings.provider_timeout,
            client=client,
        )
    )
    registry.register(
        AvalaraProvider(
            settings.avalara.username,
            settings.avalara.password,
            api_url=settings.avalara.api_url,
            company_code=settings.avalara.company_code,
            business=settings.business,
            timeout=settings.provider_timeout,
            client=client,
        )
    )
    return registry


__all__ = [
    "TaxProvider",
    "HttpTaxProvider",
    "ProviderRegistry",
    "ManualTaxProvider",
    "StripeTaxProvider",
    "TaxJarProvider",
    "AvalaraProvider",
    "build_default_registry",
]
