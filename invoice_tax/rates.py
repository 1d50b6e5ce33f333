"""
Jurisdiction tax rate store.

Holds canonical tax rules keyed by jurisdiction scope (country, optionally
state/city/postal code). Ships with a default data set covering US state
sales tax with common city surcharges, Canadian GST/PST, EU and UK VAT, and
GST in Australia, New Zealand and India.

Rates are percentages: Decimal("6.25") is 6.25%.

Sources: State revenue department publications, Tax Foundation compilations,
European Commission VAT rate tables.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional


class TaxType(str, Enum):
    VAT = "VAT"
    GST = "GST"
    SALES_TAX = "SALES_TAX"
    WITHHOLDING = "WITHHOLDING"
    EXCISE = "EXCISE"
    OTHER = "OTHER"


class ProductType(str, Enum):
    DIGITAL_SERVICES = "DIGITAL_SERVICES"
    PHYSICAL_GOODS = "PHYSICAL_GOODS"
    SUBSCRIPTIONS = "SUBSCRIPTIONS"
    LICENSES = "LICENSES"
    ALL = "ALL"


class CustomerType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    BUSINESS = "BUSINESS"
    NONPROFIT = "NONPROFIT"
    GOVERNMENT = "GOVERNMENT"
    ALL = "ALL"


class ExemptEntityType(str, Enum):
    CHARITY = "CHARITY"
    EDUCATIONAL = "EDUCATIONAL"
    GOVERNMENT = "GOVERNMENT"
    DIPLOMATIC = "DIPLOMATIC"


ALL = "ALL"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: date | datetime) -> datetime:
    """Coerce a date or naive datetime to an aware UTC datetime."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class RateThresholds:
    """Amount bounds a rate applies within."""

    minimum_amount: Decimal = Decimal("0")
    maximum_amount: Optional[Decimal] = None
    annual_revenue_threshold: Optional[Decimal] = None  # economic nexus


@dataclass
class RateExemptions:
    vat_exempt: bool = False
    reverse_charge: bool = False
    exempt_entity_types: list[str] = field(default_factory=list)


@dataclass
class TaxRate:
    """A single jurisdiction tax rule."""

    name: str
    country: str
    tax_type: str
    rate: Decimal  # percentage, 0..100
    state: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    description: str = ""
    compound_tax: bool = False
    applicable_to_products: list[str] = field(default_factory=list)
    customer_types: list[str] = field(default_factory=list)
    thresholds: RateThresholds = field(default_factory=RateThresholds)
    exemptions: RateExemptions = field(default_factory=RateExemptions)
    effective_from: datetime = field(default_factory=utcnow)
    effective_to: Optional[datetime] = None
    active: bool = True
    provider_mappings: dict[str, dict[str, str]] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    rate_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not self.country:
            raise ValueError(f"Tax rate {self.name!r} requires a country")
        self.rate = Decimal(str(self.rate))
        if not Decimal("0") <= self.rate <= Decimal("100"):
            raise ValueError(
                f"Tax rate {self.name!r} must be between 0 and 100, got {self.rate}"
            )
        self.country = self.country.upper()
        if self.state:
            self.state = self.state.upper()
        self.tax_type = TaxType(self.tax_type).value
        self.effective_from = as_utc(self.effective_from)
        if self.effective_to is not None:
            self.effective_to = as_utc(self.effective_to)

    @property
    def specificity(self) -> int:
        """4 for a city, 2 for a state, plus 1 for the country."""
        return (4 if self.city else 0) + (2 if self.state else 0) + 1

    @property
    def jurisdiction_label(self) -> str:
        return ", ".join(p for p in (self.country, self.state, self.city) if p)

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """True when active and `now` falls inside the validity window."""
        ref = as_utc(now) if now else utcnow()
        if not self.active:
            return False
        if self.effective_from > ref:
            return False
        if self.effective_to is not None and self.effective_to < ref:
            return False
        return True

    def calculate_tax(
        self, amount: Decimal, compounded_so_far: Decimal = Decimal("0")
    ) -> Decimal:
        """
        Tax owed on `amount` at this rate.

        Compound rates are levied on the amount plus the tax already
        accumulated from earlier compound rates.
        """
        base = amount + compounded_so_far if self.compound_tax else amount
        return base * self.rate / Decimal("100")


# ---------------------------------------------------------------------------
# Default rate data
# ---------------------------------------------------------------------------

# State base rates (percent) and common city surcharges.
_US_STATE_RATES: dict[str, str] = {
    "AL": "4", "AZ": "5.6", "AR": "6.5", "CA": "7.25", "CO": "2.9",
    "CT": "6.35", "FL": "6", "GA": "4", "HI": "4", "ID": "6",
    "IL": "6.25", "IN": "7", "IA": "6", "KS": "6.5", "KY": "6",
    "LA": "4.45", "ME": "5.5", "MD": "6", "MA": "6.25", "MI": "6",
    "MN": "6.875", "MS": "7", "MO": "4.225", "NE": "5.5", "NV": "6.85",
    "NJ": "6.625", "NM": "4.875", "NY": "4", "NC": "4.75", "ND": "5",
    "OH": "5.75", "OK": "4.5", "PA": "6", "RI": "7", "SC": "6",
    "SD": "4.2", "TN": "7", "TX": "6.25", "UT": "4.85", "VT": "6",
    "VA": "4.3", "WA": "6.5", "WV": "6", "WI": "5", "WY": "4",
    "DC": "6",
}

_US_CITY_RATES: dict[str, list[tuple[str, str]]] = {
    "AK": [("Juneau", "5"), ("Kodiak", "7")],
    "CA": [("Los Angeles", "2.5"), ("San Francisco", "1.25"), ("San Diego", "0.75")],
    "CO": [("Denver", "4.81")],
    "IL": [("Chicago", "4.75")],
    "NY": [("New York City", "4.5"), ("Buffalo", "4")],
    "TX": [("Houston", "2"), ("Dallas", "2"), ("Austin", "2")],
    "WA": [("Seattle", "3.75"), ("Tacoma", "2.8")],
}

_CA_PROVINCIAL_PST: dict[str, str] = {
    "BC": "7", "MB": "7", "QC": "9.975", "SK": "6",
}

_VAT_RATES: dict[str, str] = {
    "AT": "20", "BE": "21", "BG": "20", "HR": "25", "CY": "19",
    "CZ": "21", "DK": "25", "EE": "22", "FI": "25.5", "FR": "20",
    "DE": "19", "GR": "24", "HU": "27", "IE": "23", "IT": "22",
    "LV": "21", "LT": "21", "LU": "17", "MT": "18", "NL": "21",
    "PL": "23", "PT": "23", "RO": "19", "SK": "23", "SI": "22",
    "ES": "21", "SE": "25", "GB": "20",
}

_GST_RATES: dict[str, str] = {
    "CA": "5", "AU": "10", "NZ": "15", "IN": "18",
}


def default_tax_rates(
    effective_from: Optional[datetime] = None,
) -> list[TaxRate]:
    """Build the default rate set."""
    start = effective_from or datetime(2024, 1, 1, tzinfo=timezone.utc)
    rates: list[TaxRate] = []

    for state, pct in _US_STATE_RATES.items():
        rates.append(
            TaxRate(
                name=f"{state} State Sales Tax",
                country="US",
                state=state,
                tax_type=TaxType.SALES_TAX,
                rate=Decimal(pct),
                effective_from=start,
            )
        )
    for state, cities in _US_CITY_RATES.items():
        for city, pct in cities:
            rates.append(
                TaxRate(
                    name=f"{city} Local Sales Tax",
                    country="US",
                    state=state,
                    city=city,
                    tax_type=TaxType.SALES_TAX,
                    rate=Decimal(pct),
                    effective_from=start,
                )
            )
    for province, pct in _CA_PROVINCIAL_PST.items():
        rates.append(
            TaxRate(
                name=f"{province} Provincial Sales Tax",
                country="CA",
                state=province,
                tax_type=TaxType.SALES_TAX,
                rate=Decimal(pct),
                effective_from=start,
            )
        )
    for country, pct in _VAT_RATES.items():
        rates.append(
            TaxRate(
                name=f"{country} VAT",
                country=country,
                tax_type=TaxType.VAT,
                rate=Decimal(pct),
                exemptions=RateExemptions(reverse_charge=country != "GB"),
                effective_from=start,
            )
        )
    for country, pct in _GST_RATES.items():
        rates.append(
            TaxRate(
                name=f"{country} GST",
                country=country,
                tax_type=TaxType.GST,
                rate=Decimal(pct),
                effective_from=start,
            )
        )
    return rates


class TaxRateStore:
    """
    In-memory tax rate store.

    Stands in for the persistence layer: rates are added, looked up by id
    or provider mapping, and queried for the active, time-valid set.
    """

    def __init__(self, rates: Optional[Iterable[TaxRate]] = None) -> None:
        self._rates: dict[str, TaxRate] = {}
        for rate in rates or []:
            self.add(rate)

    @classmethod
    def with_defaults(cls) -> "TaxRateStore":
        return cls(default_tax_rates())

    def __len__(self) -> int:
        return len(self._rates)

    def add(self, rate: TaxRate) -> TaxRate:
        self._rates[rate.rate_id] = rate
        return rate

    def remove(self, rate_id: str) -> Optional[TaxRate]:
        return self._rates.pop(rate_id, None)

    def get(self, rate_id: str) -> Optional[TaxRate]:
        return self._rates.get(rate_id)

    def all_rates(self) -> list[TaxRate]:
        """Return all rates sorted by country, state, city."""
        return sorted(
            self._rates.values(),
            key=lambda r: (r.country, r.state or "", r.city or "", r.name),
        )

    def find_active(self, now: Optional[datetime] = None) -> list[TaxRate]:
        """Return rates that are active and inside their validity window."""
        return [r for r in self._rates.values() if r.is_effective(now)]

    def find_active_for_city(
        self, city: Optional[str], now: Optional[datetime] = None
    ) -> list[TaxRate]:
        """
        Active rates a location in `city` can be taxed by.

        City-scoped rates are local surcharges: they come back only for
        their own city (case-insensitive), never for another city or for a
        location without one.
        """
        key = (city or "").strip().lower()
        return [
            r for r in self.find_active(now) if not r.city or r.city.lower() == key
        ]

    def find_by_country(
        self, country: str, state: Optional[str] = None
    ) -> list[TaxRate]:
        country = country.upper()
        matches = [r for r in self.all_rates() if r.country == country]
        if state:
            matches = [r for r in matches if r.state == state.upper()]
        return matches

    def find_by_provider_mapping(
        self, provider: str, external_id: str
    ) -> Optional[TaxRate]:
        """Look up a rate by any external id recorded for a provider."""
        for rate in self._rates.values():
            mapping = rate.provider_mappings.get(provider.lower(), {})
            if external_id in mapping.values():
                return rate
        return None
