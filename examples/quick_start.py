#!/usr/bin/env python3
"""
Quick Start Example
===================

Calculates tax for a Houston, TX subscription with the local rate store,
then builds an invoice for it and records a payment.

Usage:
    python examples/quick_start.py
"""

import asyncio
from decimal import Decimal

from invoice_tax.billing import InvoiceWorkflow
from invoice_tax.calculator import TaxCalculationOrchestrator
from invoice_tax.config import TaxEngineSettings
from invoice_tax.invoice import CustomerRef, InvoiceLineItem
from invoice_tax.models import Address, LineItem, TaxCalculationRequest


async def main() -> None:
    settings = TaxEngineSettings()
    orchestrator = TaxCalculationOrchestrator.from_settings(settings)

    address = Address(
        country="US", state="TX", city="Houston", postal_code="77002"
    )

    # Tax for a $500 subscription in Houston, TX
    request = TaxCalculationRequest(
        customer_id="cus_001",
        line_items=[LineItem(id="sub-1", amount=Decimal("500.00"))],
        billing_address=address,
        currency="USD",
    )
    result = await orchestrator.calculate_tax(request)

    print(f"Provider:       {result.provider}")
    for line in result.tax_lines:
        print(f"  {line.jurisdiction:<20} {line.rate:>6}%  ${line.tax_amount:.2f}")
    print(f"Total Tax:      ${result.total_tax_amount:.2f}")
    print(f"Confidence:     {result.confidence}")

    # The same sale as an invoice
    print("\n--- Invoice ---")
    workflow = InvoiceWorkflow.from_settings(settings, orchestrator)
    invoice = await workflow.create_invoice(
        CustomerRef("cus_001", "Acme Corp", "billing@acme.example"),
        address,
        [InvoiceLineItem(id="sub-1", description="Pro plan", amount=Decimal("500.00"))],
        "USD",
    )
    workflow.finalize(invoice)
    print(f"Invoice:        {invoice.invoice_number}")
    print(f"Total:          ${invoice.amounts.total:.2f}")

    workflow.record_payment(invoice, invoice.amounts.amount_due, reference="pi_123")
    print(f"Status:         {invoice.status.value}")
    print(f"Remaining:      ${invoice.amounts.amount_remaining:.2f}")

    await orchestrator.registry.aclose()


if __name__ == "__main__":
    asyncio.run(main())
