"""
Jurisdiction resolution: which stored tax rates apply to a transaction.

Applicable rates are all retained and ordered most specific first
(city, then state, then country); they stack rather than compete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from invoice_tax.models import Address
from invoice_tax.rates import ALL, TaxRate, TaxRateStore, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    country: str
    state: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None

    @classmethod
    def from_address(cls, address: Address) -> "Location":
        return cls(
            country=address.country.upper(),
            state=address.state.upper() if address.state else None,
            city=address.city or None,
            postal_code=address.postal_code or None,
        )


def _allowed(values: list[str], candidate: Optional[str]) -> bool:
    """An empty list or one containing ALL places no restriction."""
    if not values or ALL in values:
        return True
    return candidate in values


class JurisdictionResolver:
    """Filters and orders the rates that apply to a location and sale."""

    def __init__(self, store: TaxRateStore) -> None:
        self.store = store

    @staticmethod
    def specificity(rate: TaxRate) -> int:
        return rate.specificity

    def is_applicable(
        self,
        rate: TaxRate,
        location: Location,
        customer_type: Optional[str],
        product_type: Optional[str],
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> bool:
        if not rate.is_effective(now):
            return False

        # Geography
        if rate.country != (location.country or "").upper():
            return False
        if rate.state and rate.state != (location.state or "").upper():
            return False

        if not _allowed(rate.customer_types, customer_type):
            return False
        if not _allowed(rate.applicable_to_products, product_type):
            return False

        # Amount thresholds
        if amount < rate.thresholds.minimum_amount:
            return False
        maximum = rate.thresholds.maximum_amount
        if maximum is not None and amount > maximum:
            return False

        return True

    def get_applicable_tax_rates(
        self,
        location: Location,
        customer_type: Optional[str],
        product_type: Optional[str],
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> list[TaxRate]:
        """
        Active, time-valid rates that apply, most specific first.

        City-scoped rates are drawn only for the location's own city.
        Ties keep store order (the sort is stable).
        """
        ref = now or utcnow()
        candidates = self.store.find_active_for_city(location.city, ref)
        applicable = [
            rate
            for rate in candidates
            if self.is_applicable(rate, location, customer_type, product_type, amount, ref)
        ]
        applicable.sort(key=self.specificity, reverse=True)
        logger.debug(
            "Resolved %d of %d active rates for %s/%s/%s",
            len(applicable),
            len(candidates),
            location.country,
            location.state or "-",
            location.city or "-",
        )
        return applicable
