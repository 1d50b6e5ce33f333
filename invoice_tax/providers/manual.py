"""
Manual tax provider backed by the local rate store.

Each line item is priced against every applicable rate, most specific
first; compound rates are levied on the line amount plus the tax of the
compound rates before them on the same line item.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from invoice_tax.jurisdiction import JurisdictionResolver, Location
from invoice_tax.models import (
    Confidence,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxLine,
    round_money,
)
from invoice_tax.providers.base import TaxProvider
from invoice_tax.rates import CustomerType
from invoice_tax.reverse_charge import ReverseChargeEvaluator

logger = logging.getLogger(__name__)


class ManualTaxProvider(TaxProvider):
    name = "MANUAL"

    def __init__(
        self,
        resolver: JurisdictionResolver,
        reverse_charge: Optional[ReverseChargeEvaluator] = None,
    ) -> None:
        self.resolver = resolver
        self.reverse_charge = reverse_charge or ReverseChargeEvaluator()

    async def calculate_tax(self, request: TaxCalculationRequest) -> TaxCalculationResult:
        location = Location.from_address(request.billing_address)
        customer_type = request.customer_type or CustomerType.INDIVIDUAL.value
        tax_lines: list[TaxLine] = []

        for item in request.line_items:
            rates = self.resolver.get_applicable_tax_rates(
                location, customer_type, item.product_type, item.amount
            )
            compounded = Decimal("0")
            for rate in rates:
                tax_amount = round_money(rate.calculate_tax(item.amount, compounded))
                tax_lines.append(
                    TaxLine(
                        jurisdiction=rate.jurisdiction_label,
                        tax_type=rate.tax_type,
                        rate=rate.rate,
                        taxable_amount=item.amount,
                        tax_amount=tax_amount,
                        tax_rate_id=rate.rate_id,
                        line_item_id=item.id,
                    )
                )
                if rate.compound_tax:
                    compounded += tax_amount

            if not rates:
                logger.debug(
                    "No applicable rates for line %s in %s", item.id, location.country
                )

        return TaxCalculationResult(
            provider=self.name,
            tax_lines=tax_lines,
            reverse_charge=self.reverse_charge.evaluate(request),
            confidence=Confidence.MEDIUM.value,
        )
