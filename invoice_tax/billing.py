"""
Invoice workflow.

Creates invoices with tax attached and guards every status transition:

    DRAFT -> OPEN -> PAID | VOID | UNCOLLECTIBLE
    UNCOLLECTIBLE -> PAID | VOID

PAID and VOID are terminal. Disallowed transitions raise StateError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from invoice_tax.calculator import TaxCalculationOrchestrator
from invoice_tax.config import TaxEngineSettings
from invoice_tax.exceptions import StateError, ValidationError
from invoice_tax.invoice import (
    AuditEntry,
    CustomerRef,
    Invoice,
    InvoiceAggregator,
    InvoiceLineItem,
    InvoiceStatus,
)
from invoice_tax.models import (
    Address,
    ExemptionCertificate,
    TaxCalculationRequest,
    TaxCalculationResult,
    to_decimal,
)
from invoice_tax.rates import CustomerType, as_utc, utcnow

logger = logging.getLogger(__name__)

_EDITABLE = (InvoiceStatus.DRAFT, InvoiceStatus.OPEN)
_PAYABLE = (InvoiceStatus.OPEN, InvoiceStatus.UNCOLLECTIBLE)


class InvoiceNumberGenerator:
    """
    Issues INV-YYYYMM-CUR-000001 style numbers.

    Sequences run per (currency, year, month) and start after whatever
    was seeded for that period, so a caller with storage can resume.
    """

    def __init__(self) -> None:
        self._counters: dict[tuple[str, int, int], int] = {}

    def seed(self, currency: str, year: int, month: int, last_sequence: int) -> None:
        self._counters[(currency.upper(), year, month)] = last_sequence

    def next(self, currency: str, when: Optional[datetime] = None) -> tuple[str, int]:
        ref = when or utcnow()
        key = (currency.upper(), ref.year, ref.month)
        sequence = self._counters.get(key, 0) + 1
        self._counters[key] = sequence
        number = f"INV-{ref.year}{ref.month:02d}-{key[0]}-{sequence:06d}"
        return number, sequence


class InvoiceWorkflow:
    """Creates invoices and applies the allowed lifecycle transitions."""

    def __init__(
        self,
        orchestrator: TaxCalculationOrchestrator,
        aggregator: Optional[InvoiceAggregator] = None,
        numbers: Optional[InvoiceNumberGenerator] = None,
        payment_terms_days: int = 30,
    ) -> None:
        self.orchestrator = orchestrator
        self.aggregator = aggregator or InvoiceAggregator()
        self.numbers = numbers or InvoiceNumberGenerator()
        self.payment_terms_days = payment_terms_days

    @classmethod
    def from_settings(
        cls,
        settings: TaxEngineSettings,
        orchestrator: Optional[TaxCalculationOrchestrator] = None,
    ) -> "InvoiceWorkflow":
        return cls(
            orchestrator or TaxCalculationOrchestrator.from_settings(settings),
            payment_terms_days=settings.payment_terms_days,
        )

    # ------------------------------------------------------------------
    # Creation and tax
    # ------------------------------------------------------------------

    async def create_invoice(
        self,
        customer: CustomerRef,
        billing_address: Address,
        line_items: list[InvoiceLineItem],
        currency: str,
        customer_type: str = CustomerType.INDIVIDUAL.value,
        provider: Optional[str] = None,
        certificates: Optional[list[ExemptionCertificate]] = None,
        invoice_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        notes: str = "",
        custom_fields: Optional[dict[str, Any]] = None,
        tags: Optional[dict[str, str]] = None,
    ) -> Invoice:
        """
        Build a DRAFT invoice with tax calculated and amounts derived.

        Tax is calculated before a number is issued; if the provider
        fails the error propagates and no invoice (or number) is produced.
        """
        issued = as_utc(invoice_date) if invoice_date else utcnow()
        currency = currency.upper()

        tax = await self._calculate(
            customer.customer_id,
            billing_address,
            line_items,
            currency,
            customer_type,
            provider,
            certificates,
        )

        number, sequence = self.numbers.next(currency, issued)
        invoice = Invoice(
            invoice_number=number,
            invoice_sequence=sequence,
            customer=customer,
            billing_address=billing_address,
            currency=currency,
            customer_type=customer_type,
            line_items=list(line_items),
            tax_calculation=tax,
            invoice_date=issued,
            due_date=as_utc(due_date) if due_date else issued + timedelta(days=self.payment_terms_days),
            notes=notes,
            custom_fields=dict(custom_fields or {}),
            tags=dict(tags or {}),
        )
        self.aggregator.recompute(invoice)
        logger.info(
            "Created invoice %s for %s: total %s %s",
            number,
            customer.customer_id,
            invoice.amounts.total,
            currency,
        )
        return invoice

    async def _calculate(
        self,
        customer_id: str,
        billing_address: Address,
        line_items: list[InvoiceLineItem],
        currency: str,
        customer_type: str,
        provider: Optional[str],
        certificates: Optional[list[ExemptionCertificate]],
    ) -> TaxCalculationResult:
        request = TaxCalculationRequest(
            customer_id=customer_id,
            line_items=[item.to_line_item() for item in line_items],
            billing_address=billing_address,
            currency=currency,
            customer_type=customer_type,
        )
        result = await self.orchestrator.calculate_tax(request, provider)
        if certificates:
            result = self.orchestrator.apply_tax_exemptions(result, certificates)
        return result

    async def recalculate_tax(
        self,
        invoice: Invoice,
        provider: Optional[str] = None,
        certificates: Optional[list[ExemptionCertificate]] = None,
    ) -> Invoice:
        """Replace the embedded tax calculation; invoice unchanged on failure."""
        self._require_editable(invoice, "recalculate_tax")
        tax = await self._calculate(
            invoice.customer.customer_id,
            invoice.billing_address,
            invoice.line_items,
            invoice.currency,
            invoice.customer_type,
            provider,
            certificates,
        )
        invoice.tax_calculation = tax
        self.aggregator.recompute(invoice)
        return invoice

    async def replace_line_items(
        self,
        invoice: Invoice,
        line_items: list[InvoiceLineItem],
        provider: Optional[str] = None,
        certificates: Optional[list[ExemptionCertificate]] = None,
    ) -> Invoice:
        """Swap line items and their tax together, or not at all."""
        self._require_editable(invoice, "replace_line_items")
        tax = await self._calculate(
            invoice.customer.customer_id,
            invoice.billing_address,
            line_items,
            invoice.currency,
            invoice.customer_type,
            provider,
            certificates,
        )
        invoice.line_items = list(line_items)
        invoice.tax_calculation = tax
        self.aggregator.recompute(invoice)
        return invoice

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def finalize(self, invoice: Invoice) -> Invoice:
        if invoice.status != InvoiceStatus.DRAFT:
            raise StateError(
                f"Only draft invoices can be finalized (status {invoice.status.value})",
                current_status=invoice.status.value,
                action="finalize",
            )
        invoice.status = InvoiceStatus.OPEN
        return invoice

    def record_payment(
        self,
        invoice: Invoice,
        amount: Decimal,
        paid_at: Optional[datetime] = None,
        reference: Optional[str] = None,
    ) -> Invoice:
        amount = to_decimal(amount)
        if invoice.status == InvoiceStatus.PAID:
            raise StateError("Invoice is already paid", invoice.status.value, "record_payment")
        if invoice.status == InvoiceStatus.VOID:
            raise StateError(
                "Cannot mark voided invoice as paid", invoice.status.value, "record_payment"
            )
        if invoice.status not in _PAYABLE:
            raise StateError(
                "Invoice must be finalized before payment", invoice.status.value, "record_payment"
            )
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", missing_fields=["amount"])

        if reference:
            invoice.payment_reference = reference
        return self.aggregator.mark_as_paid(invoice, amount, as_utc(paid_at) if paid_at else None)

    def void_invoice(
        self, invoice: Invoice, reason: str, actor: Optional[str] = None
    ) -> Invoice:
        if invoice.status == InvoiceStatus.PAID:
            raise StateError(
                "Cannot void a paid invoice. Issue a credit note instead.",
                invoice.status.value,
                "void",
            )
        if invoice.status == InvoiceStatus.VOID:
            raise StateError("Invoice is already voided", invoice.status.value, "void")
        return self.aggregator.void(invoice, reason, actor)

    def mark_uncollectible(self, invoice: Invoice, actor: Optional[str] = None) -> Invoice:
        if invoice.status != InvoiceStatus.OPEN:
            raise StateError(
                f"Only open invoices can be marked uncollectible (status {invoice.status.value})",
                invoice.status.value,
                "mark_uncollectible",
            )
        invoice.status = InvoiceStatus.UNCOLLECTIBLE
        invoice.audit_trail.append(
            AuditEntry(action="MARKED_UNCOLLECTIBLE", performed_at=utcnow(), performed_by=actor)
        )
        return invoice

    def _require_editable(self, invoice: Invoice, action: str) -> None:
        if invoice.status not in _EDITABLE:
            raise StateError(
                "Cannot modify financial details of paid or voided invoices"
                if invoice.is_terminal
                else f"Cannot modify invoice in status {invoice.status.value}",
                current_status=invoice.status.value,
                action=action,
            )
