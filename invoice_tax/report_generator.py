"""
Invoice and tax report generator.

Produces:
- Invoice export tables (CSV) with display headers
- Tax summaries grouped by jurisdiction and tax type
- Batch calculation summaries
- JSON export and console-friendly text
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from invoice_tax.calculator import BatchResult
from invoice_tax.invoice import Invoice
from invoice_tax.models import TaxCalculationResult

# Export row key -> column header
EXPORT_COLUMNS: dict[str, str] = {
    "invoice_number": "Invoice Number",
    "customer_name": "Customer Name",
    "customer_email": "Customer Email",
    "invoice_date": "Invoice Date",
    "due_date": "Due Date",
    "currency": "Currency",
    "status": "Status",
    "subtotal": "Subtotal",
    "tax_total": "Tax Total",
    "total": "Total Amount",
    "amount_paid": "Amount Paid",
    "amount_due": "Amount Due",
}

_MONEY_COLUMNS = ["Subtotal", "Tax Total", "Total Amount", "Amount Paid", "Amount Due"]


def _decimal_to_float(obj: Any) -> Any:
    """Recursively convert Decimal values to float for serialization."""
    if isinstance(obj, dict):
        return {k: _decimal_to_float(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_float(i) for i in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class ReportGenerator:
    """
    Builds invoice and tax reports with export capabilities.

    Reports are structured dicts or pandas DataFrames, and can be
    rendered to text or written as CSV/JSON under output_dir.
    """

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("reports")

    def _path(self, filename: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir / filename

    # ------------------------------------------------------------------
    # Invoice export
    # ------------------------------------------------------------------

    def invoice_export_frame(self, invoices: list[Invoice]) -> pd.DataFrame:
        """One row per invoice, columns in export order with display headers."""
        rows = [inv.export_row() for inv in invoices]
        frame = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
        frame = frame.rename(columns=EXPORT_COLUMNS)
        for col in _MONEY_COLUMNS:
            frame[col] = frame[col].astype(float)
        return frame

    def invoices_to_csv(
        self,
        invoices: list[Invoice],
        filename: Optional[str] = None,
    ) -> str:
        """Export invoices to CSV. Returns the CSV string."""
        csv_str = self.invoice_export_frame(invoices).to_csv(
            index=False, float_format="%.2f"
        )
        if filename:
            self._path(filename).write_text(csv_str, encoding="utf-8")
        return csv_str

    # ------------------------------------------------------------------
    # Tax summaries
    # ------------------------------------------------------------------

    def tax_lines_frame(self, results: list[TaxCalculationResult]) -> pd.DataFrame:
        """Flatten every tax line of every result into one frame."""
        records = [
            {
                "provider": result.provider,
                "jurisdiction": line.jurisdiction,
                "tax_type": line.tax_type,
                "rate": float(line.rate),
                "taxable_amount": float(line.taxable_amount),
                "tax_amount": float(line.tax_amount),
                "exempt_amount": float(line.exempt_amount),
            }
            for result in results
            for line in result.tax_lines
        ]
        return pd.DataFrame(
            records,
            columns=[
                "provider",
                "jurisdiction",
                "tax_type",
                "rate",
                "taxable_amount",
                "tax_amount",
                "exempt_amount",
            ],
        )

    def jurisdiction_summary(self, results: list[TaxCalculationResult]) -> pd.DataFrame:
        """Taxable, tax and exempt totals per (jurisdiction, tax type)."""
        frame = self.tax_lines_frame(results)
        if frame.empty:
            return pd.DataFrame(
                columns=[
                    "jurisdiction",
                    "tax_type",
                    "line_count",
                    "taxable_amount",
                    "tax_amount",
                    "exempt_amount",
                ]
            )
        summary = (
            frame.groupby(["jurisdiction", "tax_type"], as_index=False)
            .agg(
                line_count=("tax_amount", "size"),
                taxable_amount=("taxable_amount", "sum"),
                tax_amount=("tax_amount", "sum"),
                exempt_amount=("exempt_amount", "sum"),
            )
            .sort_values("tax_amount", ascending=False, kind="stable")
            .reset_index(drop=True)
        )
        return summary.round(2)

    def tax_summary_report(
        self,
        results: list[TaxCalculationResult],
        period_label: str = "",
    ) -> dict[str, Any]:
        """Structured tax liability summary across calculation results."""
        summary = self.jurisdiction_summary(results)
        total_tax = sum((r.total_tax_amount for r in results), Decimal("0"))
        exemptions = [e for r in results for e in r.exemptions]

        return {
            "report_type": "tax_liability_summary",
            "period": period_label,
            "generated_date": date.today().isoformat(),
            "summary": {
                "calculations": len(results),
                "total_tax": total_tax,
                "total_exempt": sum((e.amount for e in exemptions), Decimal("0")),
                "exemptions_applied": len(exemptions),
                "reverse_charge_count": sum(
                    1 for r in results if r.reverse_charge.applicable
                ),
                "low_confidence_count": sum(
                    1 for r in results if r.confidence == "LOW"
                ),
            },
            "jurisdiction_breakdown": summary.to_dict(orient="records"),
            "warnings": [w for r in results for w in r.warnings],
        }

    def batch_report(self, batch: BatchResult, period_label: str = "") -> dict[str, Any]:
        """Summary of a batch run, including failed requests."""
        report = self.tax_summary_report(
            [i.result for i in batch.items if i.result is not None], period_label
        )
        report["report_type"] = "batch_calculation"
        report["summary"]["succeeded"] = batch.success_count
        report["summary"]["failed"] = batch.failure_count
        report["errors"] = batch.errors
        return report

    # ------------------------------------------------------------------
    # Export methods
    # ------------------------------------------------------------------

    def to_json(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
    ) -> str:
        """Export a report to JSON. Returns the JSON string."""
        json_str = json.dumps(_decimal_to_float(report), indent=2)
        if filename:
            self._path(filename).write_text(json_str, encoding="utf-8")
        return json_str

    def to_csv(
        self,
        report: dict[str, Any],
        filename: Optional[str] = None,
        section: str = "jurisdiction_breakdown",
    ) -> str:
        """Export one list section of a report to CSV. Returns the CSV string."""
        data = report.get(section, [])
        if not data:
            return ""
        csv_str = pd.DataFrame(_decimal_to_float(data)).to_csv(index=False)
        if filename:
            self._path(filename).write_text(csv_str, encoding="utf-8")
        return csv_str

    # ------------------------------------------------------------------
    # Console-formatted text output
    # ------------------------------------------------------------------

    def format_text(self, report: dict[str, Any]) -> str:
        """Format a report as human-readable text for console output."""
        lines: list[str] = []
        report_type = report.get("report_type", "report").replace("_", " ").title()
        lines.append(f"{'=' * 60}")
        lines.append(f"  {report_type}")
        lines.append(f"  Generated: {report.get('generated_date', '')}")
        if report.get("period"):
            lines.append(f"  Period: {report['period']}")
        lines.append(f"{'=' * 60}")
        lines.append("")

        summary = report.get("summary", {})
        if summary:
            lines.append("SUMMARY")
            lines.append("-" * 40)
            for key, value in summary.items():
                label = key.replace("_", " ").title()
                if isinstance(value, (float, Decimal)):
                    lines.append(f"  {label}: {float(value):,.2f}")
                else:
                    lines.append(f"  {label}: {value}")
            lines.append("")

        breakdown = report.get("jurisdiction_breakdown", [])
        if breakdown:
            lines.append("JURISDICTION BREAKDOWN")
            lines.append("-" * 40)
            for row in breakdown:
                lines.append(
                    f"  {row['jurisdiction']} ({row['tax_type']}): "
                    f"{float(row['taxable_amount']):>12,.2f} taxable | "
                    f"{float(row['tax_amount']):>10,.2f} tax"
                )
            lines.append("")

        for heading, key in (("ERRORS", "errors"), ("WARNINGS", "warnings")):
            items = report.get(key, [])
            if items:
                lines.append(heading)
                lines.append("-" * 40)
                for item in items:
                    lines.append(f"  * {item}")
                lines.append("")

        return "\n".join(lines)
