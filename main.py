#!/usr/bin/env python3
"""
Invoice Tax Engine - Entry Point

Calculates tax across jurisdictions and providers, and builds invoices
with derived totals.

Usage:
    python main.py rates --country US --state TX
    python main.py calculate --amount 500 --country US --state TX --city Houston --postal-code 77002
    python main.py calculate --amount 100 --country FR --city Paris --postal-code 75001 --vat-number FR123 --customer-type BUSINESS
    python main.py calculate --file requests.csv --export-json batch.json
    python main.py invoice --file items.csv --country US --state NY --city "New York" --postal-code 10001 --export-csv invoice.csv
    python main.py health
"""

from invoice_tax.cli import main

if __name__ == "__main__":
    main()
