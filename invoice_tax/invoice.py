"""
Invoice model and amount aggregation.

Invoice amounts are always derived, never set by hand: InvoiceAggregator
folds line items and the embedded tax calculation into the totals, and
payments and voids go through it so the audit trail stays complete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from invoice_tax.models import (
    Address,
    LineItem,
    TaxCalculationResult,
    pick,
    to_decimal,
)
from invoice_tax.rates import CustomerType, ProductType, utcnow

logger = logging.getLogger(__name__)


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAID = "PAID"
    VOID = "VOID"
    UNCOLLECTIBLE = "UNCOLLECTIBLE"


# No financial field may change once an invoice reaches one of these.
TERMINAL_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID})

PAYMENT_RECORDED = "PAYMENT_RECORDED"
INVOICE_VOIDED = "INVOICE_VOIDED"


@dataclass
class CustomerRef:
    """Customer snapshot taken when the invoice is issued."""

    customer_id: str
    name: str = ""
    email: str = ""


@dataclass
class InvoiceLineItem:
    """A billed line; taxable_amount defaults to the full amount."""

    id: str
    description: str
    amount: Decimal
    quantity: Decimal = Decimal("1")
    unit_price: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")
    taxable_amount: Optional[Decimal] = None
    product_type: str = ProductType.SUBSCRIPTIONS.value
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        self.quantity = to_decimal(self.quantity, "1")
        self.discount_amount = to_decimal(self.discount_amount)
        if self.unit_price is None or self.unit_price == "":
            self.unit_price = self.amount / self.quantity if self.quantity else self.amount
        else:
            self.unit_price = to_decimal(self.unit_price)
        if self.taxable_amount is None or self.taxable_amount == "":
            self.taxable_amount = self.amount
        else:
            self.taxable_amount = min(to_decimal(self.taxable_amount), self.amount)

    def to_line_item(self) -> LineItem:
        """The request-side view used for tax calculation."""
        return LineItem(
            id=self.id,
            amount=self.amount,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount_amount=self.discount_amount,
            product_type=self.product_type,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceLineItem":
        return cls(
            id=str(pick(data, "id", default="")),
            description=pick(data, "description", default=""),
            amount=to_decimal(pick(data, "amount")),
            quantity=to_decimal(pick(data, "quantity"), "1"),
            unit_price=pick(data, "unit_price", "unitPrice"),
            discount_amount=to_decimal(pick(data, "discount_amount", "discountAmount")),
            taxable_amount=pick(data, "taxable_amount", "taxableAmount"),
            product_type=pick(
                data, "product_type", "productType",
                default=ProductType.SUBSCRIPTIONS.value,
            ),
            metadata=dict(pick(data, "metadata", default={})),
        )


@dataclass
class InvoiceAmounts:
    subtotal: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    amount_due: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    amount_remaining: Decimal = Decimal("0")


@dataclass
class AuditEntry:
    action: str
    performed_at: datetime
    performed_by: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class Invoice:
    """A customer invoice with its tax calculation embedded."""

    invoice_number: str
    customer: CustomerRef
    billing_address: Address
    currency: str
    line_items: list[InvoiceLineItem] = field(default_factory=list)
    tax_calculation: TaxCalculationResult = field(default_factory=TaxCalculationResult)
    amounts: InvoiceAmounts = field(default_factory=InvoiceAmounts)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    customer_type: str = CustomerType.INDIVIDUAL.value
    invoice_sequence: int = 0
    exchange_rate: Decimal = Decimal("1")
    base_currency: str = "USD"
    invoice_date: datetime = field(default_factory=utcnow)
    due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    notes: str = ""
    custom_fields: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    audit_trail: list[AuditEntry] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def export_row(self) -> dict[str, Any]:
        """Flat row for CSV export."""
        return {
            "invoice_number": self.invoice_number,
            "customer_name": self.customer.name,
            "customer_email": self.customer.email,
            "invoice_date": self.invoice_date.date().isoformat(),
            "due_date": self.due_date.date().isoformat() if self.due_date else "",
            "currency": self.currency,
            "status": self.status.value,
            "subtotal": self.amounts.subtotal,
            "tax_total": self.amounts.tax_total,
            "total": self.amounts.total,
            "amount_paid": self.amounts.amount_paid,
            "amount_due": self.amounts.amount_due,
        }


class InvoiceAggregator:
    """Derives invoice totals and records payments and voids."""

    def recompute(self, invoice: Invoice) -> InvoiceAmounts:
        """
        Re-derive every amount from line items, tax lines and amount_paid.

        Depends only on those inputs, so calling it twice changes nothing.
        """
        amounts = invoice.amounts
        amounts.subtotal = sum((i.amount for i in invoice.line_items), Decimal("0"))
        amounts.discount_total = sum(
            (i.discount_amount for i in invoice.line_items), Decimal("0")
        )
        amounts.tax_total = invoice.tax_calculation.line_tax_total
        amounts.total = amounts.subtotal - amounts.discount_total + amounts.tax_total
        amounts.amount_due = amounts.total - amounts.amount_paid
        amounts.amount_remaining = max(Decimal("0"), amounts.amount_due)
        return amounts

    def mark_as_paid(
        self,
        invoice: Invoice,
        amount: Decimal,
        paid_at: Optional[datetime] = None,
    ) -> Invoice:
        """Apply a payment; the invoice becomes PAID once nothing remains."""
        when = paid_at or utcnow()
        amount = to_decimal(amount)
        amounts = invoice.amounts
        amounts.amount_paid += amount
        amounts.amount_due = amounts.total - amounts.amount_paid
        amounts.amount_remaining = max(Decimal("0"), amounts.amount_due)

        if amounts.amount_remaining == 0:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = when
            logger.info("Invoice %s paid in full", invoice.invoice_number)

        invoice.audit_trail.append(
            AuditEntry(
                action=PAYMENT_RECORDED,
                performed_at=when,
                details={"amount": amount},
            )
        )
        return invoice

    def void(self, invoice: Invoice, reason: str, actor: Optional[str] = None) -> Invoice:
        """Void unconditionally; callers guard against voiding paid invoices."""
        now = utcnow()
        invoice.status = InvoiceStatus.VOID
        invoice.voided_at = now
        invoice.audit_trail.append(
            AuditEntry(
                action=INVOICE_VOIDED,
                performed_at=now,
                performed_by=actor,
                details={"reason": reason},
            )
        )
        logger.info("Invoice %s voided: %s", invoice.invoice_number, reason)
        return invoice
