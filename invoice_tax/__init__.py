"""
Invoice Tax Engine
==================

Tax calculation and invoice financial engine: jurisdiction rate
resolution, interchangeable tax providers, exemption certificates, EU
reverse charge, and invoice totals with a guarded lifecycle.

Modules:
    rates            - Jurisdiction tax rate store with default rate data
    models           - Canonical calculation request/result types
    jurisdiction     - Applicable rate resolution and ordering
    reverse_charge   - EU B2B reverse charge evaluation
    providers        - Manual, Stripe Tax, TaxJar and Avalara providers
    calculator       - Orchestrator: validation, dispatch, capping, exemptions
    invoice          - Invoice model and amount aggregation
    billing          - Invoice workflow, numbering and status guards
    report_generator - Invoice export and tax summaries (CSV/JSON)
    config           - Settings loaded from the environment
    cli              - Command-line interface
"""

__version__ = "1.0.0"

from invoice_tax.billing import InvoiceWorkflow
from invoice_tax.calculator import TaxCalculationOrchestrator
from invoice_tax.invoice import Invoice, InvoiceAggregator
from invoice_tax.jurisdiction import JurisdictionResolver
from invoice_tax.rates import TaxRate, TaxRateStore
from invoice_tax.report_generator import ReportGenerator
from invoice_tax.reverse_charge import ReverseChargeEvaluator

__all__ = [
    "TaxRate",
    "TaxRateStore",
    "JurisdictionResolver",
    "ReverseChargeEvaluator",
    "TaxCalculationOrchestrator",
    "Invoice",
    "InvoiceAggregator",
    "InvoiceWorkflow",
    "ReportGenerator",
]
