"""
Command-line interface for the Invoice Tax Engine.

Provides subcommands for rate lookup, tax calculation (single or CSV
batch), invoice creation and provider health checks.
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from invoice_tax.billing import InvoiceWorkflow
from invoice_tax.calculator import TaxCalculationOrchestrator
from invoice_tax.config import get_settings
from invoice_tax.exceptions import TaxEngineError, ValidationError
from invoice_tax.invoice import CustomerRef, Invoice, InvoiceLineItem
from invoice_tax.models import (
    Address,
    LineItem,
    TaxCalculationRequest,
    TaxCalculationResult,
)
from invoice_tax.providers import build_default_registry
from invoice_tax.rates import TaxRateStore
from invoice_tax.report_generator import ReportGenerator

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _address(args: argparse.Namespace) -> Address:
    return Address(
        country=(args.country or "").upper(),
        state=args.state.upper() if args.state else None,
        city=args.city or "",
        postal_code=args.postal_code or "",
        vat_number=args.vat_number,
    )


def _read_csv(path: str) -> list[dict[str, str]]:
    csv_path = Path(path)
    if not csv_path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        sys.exit(1)
    with open(csv_path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def _load_requests_csv(path: str, args: argparse.Namespace) -> list[TaxCalculationRequest]:
    """
    Load one calculation request per CSV row.

    Expected columns: customer_id, amount, country, state, city,
                      postal_code, product_type, currency
    """
    requests: list[TaxCalculationRequest] = []
    for i, row in enumerate(_read_csv(path)):
        try:
            requests.append(
                TaxCalculationRequest(
                    customer_id=row.get("customer_id") or f"row-{i + 1}",
                    line_items=[
                        LineItem(
                            id=row.get("id") or str(i + 1),
                            amount=Decimal(row["amount"]),
                            product_type=row.get("product_type") or args.product_type,
                        )
                    ],
                    billing_address=Address.from_dict(row),
                    currency=(row.get("currency") or args.currency).upper(),
                    customer_type=row.get("customer_type") or args.customer_type,
                )
            )
        except (KeyError, InvalidOperation) as e:
            console.print(f"[yellow]Skipping row {i + 1}: {e}[/yellow]")
    return requests


def _load_line_items_csv(path: str, product_type: str) -> list[InvoiceLineItem]:
    """
    Load invoice line items from CSV.

    Expected columns: id, description, amount, quantity, discount_amount,
                      product_type
    """
    items: list[InvoiceLineItem] = []
    for i, row in enumerate(_read_csv(path)):
        try:
            row.setdefault("id", str(i + 1))
            if not row.get("product_type"):
                row["product_type"] = product_type
            items.append(InvoiceLineItem.from_dict(row))
        except InvalidOperation as e:
            console.print(f"[yellow]Skipping row {i + 1}: {e}[/yellow]")
    return items


def _tax_lines_table(result: TaxCalculationResult, title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, show_lines=True)
    table.add_column("Jurisdiction")
    table.add_column("Type")
    table.add_column("Rate", justify="right")
    table.add_column("Taxable", justify="right")
    table.add_column("Tax", justify="right", style="bold")
    table.add_column("Exempt", justify="right")
    for line in result.tax_lines:
        table.add_row(
            line.jurisdiction,
            line.tax_type,
            f"{line.rate:.3f}%",
            f"{line.taxable_amount:,.2f}",
            f"{line.tax_amount:,.2f}",
            f"{line.exempt_amount:,.2f}" if line.exempt_amount else "",
        )
    return table


def _print_warnings(result: TaxCalculationResult) -> None:
    for w in result.warnings:
        console.print(f"[yellow]Warning: {w}[/yellow]")


# -----------------------------------------------------------------------
# Subcommand: rates
# -----------------------------------------------------------------------


def cmd_rates(args: argparse.Namespace) -> None:
    """Display stored tax rates, optionally for one country/state."""
    store = TaxRateStore.with_defaults()
    rates = (
        store.find_by_country(args.country, args.state)
        if args.country
        else store.all_rates()
    )
    if not rates:
        console.print(f"[red]No rates found for {args.country} {args.state or ''}[/red]")
        sys.exit(1)

    table = Table(title="Tax Rates", box=box.ROUNDED)
    table.add_column("Jurisdiction", style="bold")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Rate", justify="right")
    table.add_column("Compound", justify="center")
    for rate in rates:
        table.add_row(
            rate.jurisdiction_label,
            rate.name,
            rate.tax_type,
            f"{rate.rate:.3f}%",
            "Y" if rate.compound_tax else "",
        )
    console.print(table)


# -----------------------------------------------------------------------
# Subcommand: calculate
# -----------------------------------------------------------------------


async def _calculate_single(
    orchestrator: TaxCalculationOrchestrator, args: argparse.Namespace
) -> None:
    request = TaxCalculationRequest(
        customer_id=args.customer_id,
        line_items=[
            LineItem(id="1", amount=Decimal(args.amount), product_type=args.product_type)
        ],
        billing_address=_address(args),
        currency=args.currency.upper(),
        customer_type=args.customer_type,
    )
    result = await orchestrator.calculate_tax(request, args.provider)

    console.print(_tax_lines_table(result, "Tax Lines"))
    console.print(
        Panel(
            f"[bold]Provider:[/bold] {result.provider}\n"
            f"[bold]Amount:[/bold] {request.transaction_total:,.2f} {request.currency}\n"
            f"[bold]Total Tax:[/bold] {result.total_tax_amount:,.2f}\n"
            f"[bold]Total w/ Tax:[/bold] {request.transaction_total + result.total_tax_amount:,.2f}\n"
            f"[bold]Confidence:[/bold] {result.confidence}\n"
            f"[bold]Reverse Charge:[/bold] "
            f"{'Yes - ' + (result.reverse_charge.reason or '') if result.reverse_charge.applicable else 'No'}",
            title="Tax Calculation",
            border_style="blue",
        )
    )
    _print_warnings(result)


async def _calculate_file(
    orchestrator: TaxCalculationOrchestrator, args: argparse.Namespace
) -> None:
    settings = get_settings()
    requests = _load_requests_csv(args.file, args)
    batch = await orchestrator.calculate_batch(
        requests,
        args.provider,
        batch_size=settings.batch_size,
        delay=settings.batch_delay_seconds,
    )

    table = Table(title="Tax Calculation Results", box=box.ROUNDED, show_lines=True)
    table.add_column("#", style="dim")
    table.add_column("Customer")
    table.add_column("Country")
    table.add_column("Amount", justify="right")
    table.add_column("Tax", justify="right", style="bold")
    table.add_column("Status", justify="center")
    for item in batch.items:
        request = requests[item.index]
        table.add_row(
            str(item.index + 1),
            request.customer_id,
            request.billing_address.country if request.billing_address else "-",
            f"{request.transaction_total:,.2f}",
            f"{item.result.total_tax_amount:,.2f}" if item.result else "-",
            "[green]ok[/green]" if item.success else f"[red]{item.error}[/red]",
        )
    console.print(table)
    console.print(
        Panel(
            f"[bold]Total Tax:[/bold] {batch.total_tax:,.2f}\n"
            f"[bold]Succeeded:[/bold] {batch.success_count}\n"
            f"[bold]Failed:[/bold] {batch.failure_count}",
            title="Batch Summary",
            border_style="green",
        )
    )

    if args.export_json:
        rg = ReportGenerator(args.output_dir)
        rg.to_json(rg.batch_report(batch), args.export_json)
        console.print(f"[green]JSON exported to {rg.output_dir / args.export_json}[/green]")


def cmd_calculate(args: argparse.Namespace) -> None:
    """Calculate tax for a single amount or a CSV batch."""
    if not args.file and not (args.amount and args.country):
        console.print("[red]Provide --amount and --country, or --file[/red]")
        sys.exit(1)

    async def run() -> None:
        orchestrator = TaxCalculationOrchestrator.from_settings(get_settings())
        try:
            if args.file:
                await _calculate_file(orchestrator, args)
            else:
                await _calculate_single(orchestrator, args)
        finally:
            await orchestrator.registry.aclose()

    asyncio.run(run())


# -----------------------------------------------------------------------
# Subcommand: invoice
# -----------------------------------------------------------------------


def _print_invoice(invoice: Invoice) -> None:
    table = Table(title=f"Invoice {invoice.invoice_number}", box=box.ROUNDED)
    table.add_column("Item", style="dim")
    table.add_column("Description")
    table.add_column("Qty", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Discount", justify="right")
    for item in invoice.line_items:
        table.add_row(
            item.id,
            item.description,
            f"{item.quantity}",
            f"{item.amount:,.2f}",
            f"{item.discount_amount:,.2f}" if item.discount_amount else "",
        )
    console.print(table)
    console.print(_tax_lines_table(invoice.tax_calculation, "Tax"))

    a = invoice.amounts
    console.print(
        Panel(
            f"[bold]Status:[/bold] {invoice.status.value}\n"
            f"[bold]Invoice Date:[/bold] {invoice.invoice_date.date()}\n"
            f"[bold]Due Date:[/bold] {invoice.due_date.date() if invoice.due_date else '-'}\n"
            f"[bold]Subtotal:[/bold] {a.subtotal:,.2f}\n"
            f"[bold]Discounts:[/bold] {a.discount_total:,.2f}\n"
            f"[bold]Tax:[/bold] {a.tax_total:,.2f}\n"
            f"[bold]Total:[/bold] {a.total:,.2f} {invoice.currency}\n"
            f"[bold]Amount Due:[/bold] {a.amount_due:,.2f}",
            title="Invoice Summary",
            border_style="cyan",
        )
    )
    _print_warnings(invoice.tax_calculation)


def cmd_invoice(args: argparse.Namespace) -> None:
    """Create an invoice from CSV line items and show its totals."""
    if not args.country:
        console.print("[red]Provide --country for the billing address[/red]")
        sys.exit(1)

    items = _load_line_items_csv(args.file, args.product_type)
    if not items:
        console.print("[red]No line items loaded[/red]")
        sys.exit(1)

    async def run() -> Invoice:
        settings = get_settings()
        orchestrator = TaxCalculationOrchestrator.from_settings(settings)
        workflow = InvoiceWorkflow.from_settings(settings, orchestrator)
        try:
            invoice = await workflow.create_invoice(
                CustomerRef(args.customer_id, args.customer_name or "", args.customer_email or ""),
                _address(args),
                items,
                args.currency,
                customer_type=args.customer_type,
                provider=args.provider,
            )
        finally:
            await orchestrator.registry.aclose()
        if args.finalize:
            workflow.finalize(invoice)
        return invoice

    invoice = asyncio.run(run())
    _print_invoice(invoice)

    rg = ReportGenerator(args.output_dir)
    if args.export_csv:
        rg.invoices_to_csv([invoice], args.export_csv)
        console.print(f"[green]CSV exported to {rg.output_dir / args.export_csv}[/green]")
    if args.export_json:
        report = rg.tax_summary_report([invoice.tax_calculation])
        report["invoice"] = invoice.export_row()
        rg.to_json(report, args.export_json)
        console.print(f"[green]JSON exported to {rg.output_dir / args.export_json}[/green]")


# -----------------------------------------------------------------------
# Subcommand: health
# -----------------------------------------------------------------------


def cmd_health(args: argparse.Namespace) -> None:
    """Show readiness of every configured provider."""

    async def run() -> dict[str, dict]:
        registry = build_default_registry(get_settings(), TaxRateStore.with_defaults())
        try:
            return await registry.health_check_all()
        finally:
            await registry.aclose()

    statuses = asyncio.run(run())
    table = Table(title="Tax Providers", box=box.ROUNDED)
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    table.add_column("Checked At", style="dim")
    for name, status in statuses.items():
        color = "green" if status["status"] == "healthy" else "yellow"
        table.add_row(name, f"[{color}]{status['status']}[/{color}]", status["timestamp"])
    console.print(table)


# -----------------------------------------------------------------------
# Argument parser
# -----------------------------------------------------------------------


def _add_location_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--country", help="Two-letter billing country code")
    p.add_argument("--state", help="State or province code")
    p.add_argument("--city", help="Billing city")
    p.add_argument("--postal-code", help="Billing postal code")
    p.add_argument("--vat-number", help="Customer VAT number (reverse charge)")


def _add_calc_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--customer-id", default="cli-customer", help="Customer id")
    p.add_argument("--currency", default="USD", help="ISO currency code")
    p.add_argument("--product-type", default="SUBSCRIPTIONS", help="Product type")
    p.add_argument("--customer-type", default="INDIVIDUAL", help="Customer type")
    p.add_argument("--provider", help="Tax provider (default from settings)")
    p.add_argument("--export-json", help="Export results to JSON file")
    p.add_argument("--output-dir", help="Output directory for exports")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-tax",
        description="Invoice Tax Engine - Multi-provider tax calculation and invoice totals",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # rates
    rates_p = subparsers.add_parser("rates", help="View stored tax rates")
    rates_p.add_argument("--country", "-c", help="Country code to look up")
    rates_p.add_argument("--state", "-s", help="State code to look up")
    rates_p.set_defaults(func=cmd_rates)

    # calculate
    calc_p = subparsers.add_parser("calculate", help="Calculate tax")
    calc_p.add_argument("--amount", help="Transaction amount")
    calc_p.add_argument("--file", "-f", help="CSV file with one request per row")
    _add_location_args(calc_p)
    _add_calc_args(calc_p)
    calc_p.set_defaults(func=cmd_calculate)

    # invoice
    inv_p = subparsers.add_parser("invoice", help="Create an invoice from line items")
    inv_p.add_argument("--file", "-f", required=True, help="CSV file with line items")
    inv_p.add_argument("--customer-name", help="Customer name")
    inv_p.add_argument("--customer-email", help="Customer email")
    inv_p.add_argument("--finalize", action="store_true", help="Open the invoice after creation")
    inv_p.add_argument("--export-csv", help="Export invoice row to CSV file")
    _add_location_args(inv_p)
    _add_calc_args(inv_p)
    inv_p.set_defaults(func=cmd_invoice)

    # health
    health_p = subparsers.add_parser("health", help="Check provider readiness")
    health_p.set_defaults(func=cmd_health)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    _configure_logging(args.verbose)

    try:
        args.func(args)
    except ValidationError as e:
        console.print(f"[red]Invalid request: {e}[/red]")
        sys.exit(1)
    except TaxEngineError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except InvalidOperation:
        console.print("[red]Amounts must be numeric[/red]")
        sys.exit(1)
