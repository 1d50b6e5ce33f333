"""Tests for the invoice workflow."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from invoice_tax.billing import InvoiceNumberGenerator, InvoiceWorkflow
from invoice_tax.calculator import TaxCalculationOrchestrator
from invoice_tax.exceptions import ProviderError, StateError, ValidationError
from invoice_tax.invoice import CustomerRef, InvoiceLineItem, InvoiceStatus
from invoice_tax.jurisdiction import JurisdictionResolver
from invoice_tax.models import Address, ExemptionCertificate
from invoice_tax.providers import ManualTaxProvider, ProviderRegistry
from invoice_tax.providers.base import TaxProvider
from invoice_tax.rates import TaxRate, TaxRateStore, TaxType

ISSUED = datetime(2024, 6, 15, tzinfo=timezone.utc)


class FailingProvider(TaxProvider):
    name = "BROKEN"

    async def calculate_tax(self, request):
        raise ProviderError(self.name, "HTTP 503")


@pytest.fixture
def workflow() -> InvoiceWorkflow:
    store = TaxRateStore([
        TaxRate(
            name="US Sales Tax",
            country="US",
            tax_type=TaxType.SALES_TAX,
            rate=Decimal("7"),
            effective_from=date(2024, 1, 1),
        )
    ])
    registry = ProviderRegistry()
    registry.register(ManualTaxProvider(JurisdictionResolver(store)))
    registry.register(FailingProvider())
    return InvoiceWorkflow(TaxCalculationOrchestrator(registry))


def _items(*amounts: str) -> list[InvoiceLineItem]:
    return [
        InvoiceLineItem(id=f"li_{i}", description="Subscription", amount=Decimal(a))
        for i, a in enumerate(amounts or ("200.00",), start=1)
    ]


async def _create(workflow: InvoiceWorkflow, *amounts: str, **kwargs):
    kwargs.setdefault("invoice_date", ISSUED)
    return await workflow.create_invoice(
        CustomerRef("cus_1", "Acme", "ap@acme.example"),
        Address(country="US", city="Austin", postal_code="78701", state="TX"),
        _items(*amounts),
        "usd",
        **kwargs,
    )


async def _open(workflow: InvoiceWorkflow, *amounts: str):
    return workflow.finalize(await _create(workflow, *amounts))


# ── Numbering ────────────────────────────────────────────────────────


def test_number_format_and_sequence():
    numbers = InvoiceNumberGenerator()
    assert numbers.next("usd", ISSUED) == ("INV-202406-USD-000001", 1)
    assert numbers.next("USD", ISSUED) == ("INV-202406-USD-000002", 2)


def test_sequence_per_currency_and_month():
    numbers = InvoiceNumberGenerator()
    numbers.next("USD", ISSUED)
    assert numbers.next("EUR", ISSUED)[1] == 1
    assert numbers.next("USD", datetime(2024, 7, 1, tzinfo=timezone.utc))[1] == 1


def test_seeded_sequence_resumes():
    numbers = InvoiceNumberGenerator()
    numbers.seed("USD", 2024, 6, 41)
    assert numbers.next("USD", ISSUED)[0] == "INV-202406-USD-000042"


# ── Creation ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_invoice_totals(workflow):
    invoice = await _create(workflow, "200.00")
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.invoice_number == "INV-202406-USD-000001"
    assert invoice.invoice_sequence == 1
    assert invoice.currency == "USD"
    assert invoice.amounts.subtotal == Decimal("200.00")
    assert invoice.amounts.tax_total == Decimal("14.00")
    assert invoice.amounts.total == Decimal("214.00")
    assert invoice.amounts.amount_due == Decimal("214.00")


@pytest.mark.asyncio
async def test_default_due_date_uses_payment_terms(workflow):
    invoice = await _create(workflow)
    assert invoice.due_date == ISSUED + timedelta(days=30)


@pytest.mark.asyncio
async def test_explicit_due_date(workflow):
    due = datetime(2024, 6, 30, tzinfo=timezone.utc)
    invoice = await _create(workflow, due_date=due)
    assert invoice.due_date == due


@pytest.mark.asyncio
async def test_create_with_certificate(workflow):
    today = datetime.now(timezone.utc).date()
    cert = ExemptionCertificate(
        certificate_number="EX-9",
        reason="Resale",
        valid_from=today - timedelta(days=1),
        valid_to=today + timedelta(days=1),
    )
    invoice = await _create(workflow, "100.00", certificates=[cert])
    assert invoice.amounts.tax_total == Decimal("0")
    assert invoice.amounts.total == Decimal("100.00")
    assert invoice.tax_calculation.exemptions[0].amount == Decimal("7.00")


@pytest.mark.asyncio
async def test_provider_failure_produces_no_invoice(workflow):
    with pytest.raises(ProviderError):
        await _create(workflow, provider="BROKEN")
    invoice = await _create(workflow)
    assert invoice.invoice_sequence == 1


@pytest.mark.asyncio
async def test_validation_error_propagates(workflow):
    with pytest.raises(ValidationError):
        await workflow.create_invoice(
            CustomerRef("cus_1"), Address(country="US"), _items(), "USD"
        )


# ── Transitions ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_finalize_only_from_draft(workflow):
    invoice = await _open(workflow)
    assert invoice.status == InvoiceStatus.OPEN
    with pytest.raises(StateError) as exc:
        workflow.finalize(invoice)
    assert exc.value.current_status == "OPEN"
    assert exc.value.action == "finalize"


@pytest.mark.asyncio
async def test_payment_on_draft_rejected(workflow):
    invoice = await _create(workflow)
    with pytest.raises(StateError):
        workflow.record_payment(invoice, Decimal("10"))


@pytest.mark.asyncio
async def test_non_positive_payment_rejected(workflow):
    invoice = await _open(workflow)
    with pytest.raises(ValidationError):
        workflow.record_payment(invoice, Decimal("0"))
    with pytest.raises(ValidationError):
        workflow.record_payment(invoice, Decimal("-5"))


@pytest.mark.asyncio
async def test_full_payment_then_paid_is_terminal(workflow):
    invoice = await _open(workflow, "200.00")
    workflow.record_payment(invoice, Decimal("100.00"))
    assert invoice.status == InvoiceStatus.OPEN
    workflow.record_payment(invoice, Decimal("114.00"), reference="pi_42")
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.amounts.amount_remaining == Decimal("0")
    assert invoice.payment_reference == "pi_42"

    with pytest.raises(StateError, match="already paid"):
        workflow.record_payment(invoice, Decimal("1"))
    with pytest.raises(StateError, match="credit note"):
        workflow.void_invoice(invoice, "mistake")
    with pytest.raises(StateError):
        await workflow.replace_line_items(invoice, _items("1.00"))
    with pytest.raises(StateError):
        await workflow.recalculate_tax(invoice)
    assert invoice.amounts.total == Decimal("214.00")


@pytest.mark.asyncio
async def test_void_open_invoice(workflow):
    invoice = await _open(workflow)
    workflow.void_invoice(invoice, "Customer cancelled", actor="admin_1")
    assert invoice.status == InvoiceStatus.VOID
    assert invoice.audit_trail[-1].performed_by == "admin_1"

    with pytest.raises(StateError, match="already voided"):
        workflow.void_invoice(invoice, "again")
    with pytest.raises(StateError, match="voided"):
        workflow.record_payment(invoice, Decimal("10"))


@pytest.mark.asyncio
async def test_void_draft_invoice(workflow):
    invoice = await _create(workflow)
    workflow.void_invoice(invoice, "Never sent")
    assert invoice.status == InvoiceStatus.VOID


@pytest.mark.asyncio
async def test_uncollectible_then_paid(workflow):
    invoice = await _open(workflow, "100.00")
    workflow.mark_uncollectible(invoice, actor="collections")
    assert invoice.status == InvoiceStatus.UNCOLLECTIBLE
    workflow.record_payment(invoice, Decimal("107.00"))
    assert invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_uncollectible_only_from_open(workflow):
    invoice = await _create(workflow)
    with pytest.raises(StateError):
        workflow.mark_uncollectible(invoice)


# ── Editing ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_replace_line_items_recomputes(workflow):
    invoice = await _open(workflow, "200.00")
    await workflow.replace_line_items(invoice, _items("100.00", "50.00"))
    assert invoice.amounts.subtotal == Decimal("150.00")
    assert invoice.amounts.tax_total == Decimal("10.50")
    assert invoice.amounts.total == Decimal("160.50")


@pytest.mark.asyncio
async def test_replace_line_items_all_or_nothing(workflow):
    invoice = await _create(workflow, "200.00")
    with pytest.raises(ProviderError):
        await workflow.replace_line_items(invoice, _items("1.00"), provider="BROKEN")
    assert [i.amount for i in invoice.line_items] == [Decimal("200.00")]
    assert invoice.amounts.total == Decimal("214.00")


@pytest.mark.asyncio
async def test_recalculate_tax_keeps_payments(workflow):
    invoice = await _open(workflow, "200.00")
    workflow.record_payment(invoice, Decimal("14.00"))
    await workflow.recalculate_tax(invoice)
    assert invoice.amounts.amount_paid == Decimal("14.00")
    assert invoice.amounts.amount_due == Decimal("200.00")
