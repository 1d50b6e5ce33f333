"""Tests for the report generator."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from invoice_tax.calculator import BatchItemResult, BatchResult
from invoice_tax.invoice import CustomerRef, Invoice, InvoiceAggregator, InvoiceLineItem
from invoice_tax.models import (
    Address,
    Exemption,
    ReverseCharge,
    TaxCalculationResult,
    TaxLine,
)
from invoice_tax.report_generator import EXPORT_COLUMNS, ReportGenerator


@pytest.fixture
def rg(tmp_path) -> ReportGenerator:
    return ReportGenerator(str(tmp_path / "reports"))


def _line(jurisdiction: str, tax: str, taxable: str = "100", tax_type: str = "SALES_TAX") -> TaxLine:
    return TaxLine(
        jurisdiction=jurisdiction,
        tax_type=tax_type,
        rate=Decimal("1"),
        taxable_amount=Decimal(taxable),
        tax_amount=Decimal(tax),
    )


def _result(*lines: TaxLine, **kwargs) -> TaxCalculationResult:
    result = TaxCalculationResult(provider="MANUAL", tax_lines=list(lines), **kwargs)
    result.total_tax_amount = result.line_tax_total
    return result


def _invoice() -> Invoice:
    invoice = Invoice(
        invoice_number="INV-202406-USD-000001",
        customer=CustomerRef("cus_1", "Acme Corp", "ap@acme.example"),
        billing_address=Address(country="US", city="Austin", postal_code="78701"),
        currency="USD",
        line_items=[InvoiceLineItem(id="1", description="Plan", amount=Decimal("200"))],
        tax_calculation=_result(_line("US", "14")),
        invoice_date=datetime(2024, 6, 15, tzinfo=timezone.utc),
        due_date=datetime(2024, 7, 15, tzinfo=timezone.utc),
    )
    InvoiceAggregator().recompute(invoice)
    return invoice


# ── Invoice export ───────────────────────────────────────────────────


def test_csv_headers_in_order(rg):
    csv_str = rg.invoices_to_csv([_invoice()])
    header = csv_str.splitlines()[0]
    assert header.split(",") == list(EXPORT_COLUMNS.values())


def test_csv_row_values(rg):
    row = rg.invoices_to_csv([_invoice()]).splitlines()[1]
    assert row == (
        "INV-202406-USD-000001,Acme Corp,ap@acme.example,2024-06-15,2024-07-15,"
        "USD,DRAFT,200.00,14.00,214.00,0.00,214.00"
    )


def test_csv_written_to_output_dir(rg):
    rg.invoices_to_csv([_invoice()], "invoices.csv")
    assert (rg.output_dir / "invoices.csv").read_text().startswith("Invoice Number,")


def test_output_dir_created_lazily(tmp_path):
    ReportGenerator(str(tmp_path / "later"))
    assert not (tmp_path / "later").exists()


# ── Jurisdiction summary ─────────────────────────────────────────────


def test_jurisdiction_summary_groups_and_sorts(rg):
    results = [
        _result(_line("US, TX", "6.25"), _line("US, TX, Houston", "2.00")),
        _result(_line("US, TX", "12.50", taxable="200")),
    ]
    summary = rg.jurisdiction_summary(results)
    assert list(summary["jurisdiction"]) == ["US, TX", "US, TX, Houston"]
    tx = summary.iloc[0]
    assert tx["line_count"] == 2
    assert tx["taxable_amount"] == pytest.approx(300.0)
    assert tx["tax_amount"] == pytest.approx(18.75)


def test_jurisdiction_summary_separates_tax_types(rg):
    summary = rg.jurisdiction_summary(
        [_result(_line("CA", "5", tax_type="GST"), _line("CA", "7", tax_type="PST"))]
    )
    assert len(summary) == 2
    assert list(summary["tax_type"]) == ["PST", "GST"]


def test_jurisdiction_summary_empty(rg):
    summary = rg.jurisdiction_summary([_result()])
    assert summary.empty
    assert "tax_amount" in summary.columns


# ── Tax summary and batch ────────────────────────────────────────────


def test_tax_summary_counts(rg):
    results = [
        _result(
            _line("DE", "0", tax_type="VAT"),
            reverse_charge=ReverseCharge(applicable=True, reason="EU reverse charge"),
        ),
        _result(
            _line("US", "0"),
            exemptions=[Exemption(reason="Resale", amount=Decimal("7"), certificate_number="EX-1")],
            confidence="LOW",
            warnings=["Tax capped"],
        ),
    ]
    report = rg.tax_summary_report(results, "Q2 2024")
    summary = report["summary"]
    assert report["period"] == "Q2 2024"
    assert summary["calculations"] == 2
    assert summary["total_exempt"] == Decimal("7")
    assert summary["exemptions_applied"] == 1
    assert summary["reverse_charge_count"] == 1
    assert summary["low_confidence_count"] == 1
    assert report["warnings"] == ["Tax capped"]


def test_batch_report_includes_failures(rg):
    batch = BatchResult(
        items=[
            BatchItemResult(index=0, success=True, result=_result(_line("US", "7"))),
            BatchItemResult(index=1, success=False, error="MANUAL: boom"),
        ]
    )
    report = rg.batch_report(batch)
    assert report["report_type"] == "batch_calculation"
    assert report["summary"]["succeeded"] == 1
    assert report["summary"]["failed"] == 1
    assert report["summary"]["total_tax"] == Decimal("7")
    assert report["errors"] == ["Request 1: MANUAL: boom"]


# ── Export formats ───────────────────────────────────────────────────


def test_to_json_file(rg):
    report = rg.tax_summary_report([_result(_line("US", "7"))])
    rg.to_json(report, "summary.json")
    loaded = json.loads((rg.output_dir / "summary.json").read_text())
    assert loaded["summary"]["total_tax"] == 7.0
    assert loaded["jurisdiction_breakdown"][0]["jurisdiction"] == "US"


def test_to_csv_section(rg):
    report = rg.tax_summary_report([_result(_line("US", "7"))])
    csv_str = rg.to_csv(report)
    assert csv_str.splitlines()[0].startswith("jurisdiction,tax_type,line_count")


def test_to_csv_missing_section(rg):
    assert rg.to_csv({"summary": {}}, section="errors") == ""


def test_format_text(rg):
    report = rg.tax_summary_report([_result(_line("US", "7"))], "June")
    text = rg.format_text(report)
    assert "Tax Liability Summary" in text
    assert "Period: June" in text
    assert "US (SALES_TAX)" in text
