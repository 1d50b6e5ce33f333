"""
Canonical request and result types shared by every tax provider.

A TaxCalculationRequest goes in, a TaxCalculationResult comes out,
whichever provider did the work.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional

from invoice_tax.rates import CustomerType, ProductType, as_utc, utcnow


class Confidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def round_money(amount: Decimal) -> Decimal:
    """Round to the nearest cent, half up."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Decimal from a number, numeric string or blank cell."""
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


# Date-only bounds cover the whole calendar day.
def _on_or_after(ref: datetime, bound: date | datetime) -> bool:
    if isinstance(bound, datetime):
        return ref >= as_utc(bound)
    return ref.date() >= bound


def _on_or_before(ref: datetime, bound: date | datetime) -> bool:
    if isinstance(bound, datetime):
        return ref <= as_utc(bound)
    return ref.date() <= bound


def pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key, so camelCase and snake_case payloads both load."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class Address:
    """Billing address snapshot."""

    country: str = ""
    city: str = ""
    postal_code: str = ""
    state: Optional[str] = None
    line1: str = ""
    line2: str = ""
    vat_number: Optional[str] = None
    name: str = ""
    company: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Address":
        return cls(
            country=str(pick(data, "country", default="")).upper(),
            city=pick(data, "city", default=""),
            postal_code=str(pick(data, "postal_code", "postalCode", default="")),
            state=pick(data, "state"),
            line1=pick(data, "line1", default=""),
            line2=pick(data, "line2", default=""),
            vat_number=pick(data, "vat_number", "vatNumber"),
            name=pick(data, "name", default=""),
            company=pick(data, "company", default=""),
        )


@dataclass
class LineItem:
    """A billable line on a calculation request."""

    id: str
    amount: Decimal
    description: str = ""
    quantity: Decimal = Decimal("1")
    unit_price: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")
    product_type: str = ProductType.SUBSCRIPTIONS.value

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        self.quantity = to_decimal(self.quantity, "1")
        self.discount_amount = to_decimal(self.discount_amount)
        if self.unit_price is None or self.unit_price == "":
            self.unit_price = self.amount / self.quantity if self.quantity else self.amount
        else:
            self.unit_price = to_decimal(self.unit_price)

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        return cls(
            id=str(pick(data, "id", default="")),
            amount=to_decimal(pick(data, "amount")),
            description=pick(data, "description", default=""),
            quantity=to_decimal(pick(data, "quantity"), "1"),
            unit_price=pick(data, "unit_price", "unitPrice"),
            discount_amount=to_decimal(pick(data, "discount_amount", "discountAmount")),
            product_type=pick(
                data, "product_type", "productType",
                default=ProductType.SUBSCRIPTIONS.value,
            ),
        )


@dataclass
class TaxCalculationRequest:
    """Everything a provider needs to price tax on one transaction."""

    customer_id: str
    line_items: list[LineItem]
    billing_address: Optional[Address]
    currency: str
    customer_type: str = CustomerType.INDIVIDUAL.value

    @property
    def transaction_total(self) -> Decimal:
        return sum((item.amount for item in self.line_items), Decimal("0"))

    @classmethod
    def from_dict(cls, data: dict) -> "TaxCalculationRequest":
        address = pick(data, "billing_address", "billingAddress")
        return cls(
            customer_id=str(pick(data, "customer_id", "customerId", default="")),
            line_items=[
                LineItem.from_dict(i)
                for i in pick(data, "line_items", "lineItems", default=[])
            ],
            billing_address=Address.from_dict(address) if address else None,
            currency=str(pick(data, "currency", default="")).upper(),
            customer_type=pick(
                data, "customer_type", "customerType",
                default=CustomerType.INDIVIDUAL.value,
            ),
        )


@dataclass
class TaxLine:
    """One jurisdiction's tax on one taxable amount."""

    jurisdiction: str
    tax_type: str
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    exempt_amount: Decimal = Decimal("0")
    tax_rate_id: Optional[str] = None
    line_item_id: Optional[str] = None


@dataclass
class Exemption:
    reason: str
    amount: Decimal
    certificate_number: str


@dataclass
class ReverseCharge:
    applicable: bool = False
    reason: Optional[str] = None
    vat_number: Optional[str] = None


@dataclass
class TaxCalculationResult:
    """Normalized output of a tax calculation."""

    provider: str = ""
    calculated_at: Optional[datetime] = None
    tax_lines: list[TaxLine] = field(default_factory=list)
    exemptions: list[Exemption] = field(default_factory=list)
    reverse_charge: ReverseCharge = field(default_factory=ReverseCharge)
    total_tax_amount: Decimal = Decimal("0")
    confidence: Optional[str] = None
    external_id: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def line_tax_total(self) -> Decimal:
        return sum((line.tax_amount for line in self.tax_lines), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.calculated_at is not None:
            data["calculated_at"] = self.calculated_at.isoformat()
        return data


@dataclass
class ExemptionCertificate:
    """A time-bounded authorization that zeroes matching tax lines."""

    certificate_number: str
    reason: str
    valid_from: Optional[date | datetime] = None
    valid_to: Optional[date | datetime] = None
    jurisdiction: Optional[str] = None
    applicable_tax_types: list[str] = field(default_factory=list)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Valid only with a number and both window bounds, with now inside."""
        if not self.certificate_number or not self.valid_from or not self.valid_to:
            return False
        ref = as_utc(now) if now else utcnow()
        return _on_or_after(ref, self.valid_from) and _on_or_before(ref, self.valid_to)

    def applies_to(self, line: TaxLine) -> bool:
        if self.jurisdiction and self.jurisdiction != line.jurisdiction:
            return False
        if self.applicable_tax_types and line.tax_type not in self.applicable_tax_types:
            return False
        return True
