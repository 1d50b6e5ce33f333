"""
Tax provider interface, name-keyed registry and shared HTTP plumbing.

Every provider turns a TaxCalculationRequest into a TaxCalculationResult.
External providers share HttpTaxProvider, which owns the httpx client and
translates transport and payload failures into ProviderError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

import httpx

from invoice_tax.exceptions import ProviderError
from invoice_tax.models import (
    TaxCalculationRequest,
    TaxCalculationResult,
    round_money,
    to_decimal,
)
from invoice_tax.rates import utcnow

logger = logging.getLogger(__name__)


class TaxProvider(ABC):
    """Abstract tax provider."""

    name: str = ""

    @abstractmethod
    async def calculate_tax(self, request: TaxCalculationRequest) -> TaxCalculationResult:
        """Calculate tax for a transaction."""
        raise NotImplementedError

    async def health_check(self) -> dict[str, Any]:
        """Report readiness without calling out."""
        return {
            "status": "healthy",
            "provider": self.name,
            "timestamp": utcnow().isoformat(),
        }


class ProviderRegistry:
    """Providers keyed by name, resolved at call time."""

    def __init__(self) -> None:
        self._providers: dict[str, TaxProvider] = {}

    def register(self, provider: TaxProvider, name: Optional[str] = None) -> None:
        key = (name or provider.name).upper()
        if not key:
            raise ValueError("Provider must have a name")
        self._providers[key] = provider

    def get(self, name: str) -> TaxProvider:
        provider = self._providers.get(name.upper())
        if provider is None:
            raise ProviderError(name, "tax provider not supported")
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._providers

    async def health_check_all(self) -> dict[str, dict[str, Any]]:
        return {name: await self._providers[name].health_check() for name in self.names()}

    async def aclose(self) -> None:
        for provider in self._providers.values():
            if isinstance(provider, HttpTaxProvider):
                await provider.close()


def from_minor_units(value: Any) -> Decimal:
    return to_decimal(value) / Decimal("100")


def to_json_amount(amount: Decimal) -> float:
    """Cent-rounded amount for JSON payloads."""
    return float(round_money(amount))


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class HttpTaxProvider(TaxProvider):
    """
    Base for providers backed by an external HTTP API.

    Subclasses build the provider request, name the endpoint and parse the
    response; this class does the call and the error translation.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    # Subclass hooks -------------------------------------------------------

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials are present."""

    @abstractmethod
    def build_request(self, request: TaxCalculationRequest) -> dict[str, Any]:
        """Translate the canonical request into the provider's shape."""

    @abstractmethod
    def parse_response(self, payload: dict[str, Any]) -> TaxCalculationResult:
        """Normalize the provider's payload into a canonical result."""

    @abstractmethod
    async def _send(self, body: dict[str, Any]) -> httpx.Response:
        """Issue the calculation request."""

    # ----------------------------------------------------------------------

    async def calculate_tax(self, request: TaxCalculationRequest) -> TaxCalculationResult:
        if not self.is_configured():
            raise ProviderError(self.name, "credentials not configured")

        body = self.build_request(request)
        try:
            response = await self._send(body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("%s returned HTTP %s", self.name, e.response.status_code)
            raise ProviderError(
                self.name, f"HTTP {e.response.status_code}", cause=e
            ) from e
        except httpx.TimeoutException as e:
            logger.error("%s request timed out", self.name)
            raise ProviderError(self.name, "request timed out", cause=e) from e
        except httpx.HTTPError as e:
            logger.error("%s request failed: %s", self.name, e)
            raise ProviderError(self.name, f"request failed: {e}", cause=e) from e
        except ValueError as e:
            raise ProviderError(self.name, "response was not valid JSON", cause=e) from e

        try:
            return self.parse_response(payload)
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.error("%s returned a malformed payload: %s", self.name, e)
            raise ProviderError(self.name, f"malformed response: {e}", cause=e) from e

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.is_configured() else "unconfigured",
            "provider": self.name,
            "timestamp": utcnow().isoformat(),
        }

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
