"""Avalara AvaTax adapter (POST /api/v2/transactions/create)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx

from invoice_tax.config import BusinessSettings
from invoice_tax.models import (
    Confidence,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxLine,
)
from invoice_tax.providers.base import HttpTaxProvider, to_decimal, to_json_amount
from invoice_tax.rates import TaxType, utcnow

AVALARA_TAX_CODES: dict[str, str] = {
    "DIGITAL_SERVICES": "D0000000",
    "SUBSCRIPTIONS": "D0000000",
    "LICENSES": "D0000000",
    "PHYSICAL_GOODS": "P0000000",
}
_GENERAL_GOODS = "P0000000"

_TAX_TYPES: dict[str, str] = {
    "Sales": TaxType.SALES_TAX.value,
    "Use": TaxType.SALES_TAX.value,
    "SellersUse": TaxType.SALES_TAX.value,
    "ConsumerUse": TaxType.SALES_TAX.value,
    "Output": TaxType.VAT.value,
    "Input": TaxType.VAT.value,
    "VAT": TaxType.VAT.value,
    "GST": TaxType.GST.value,
    "Excise": TaxType.EXCISE.value,
    "Withholding": TaxType.WITHHOLDING.value,
}


def avalara_tax_code(product_type: Optional[str]) -> str:
    return AVALARA_TAX_CODES.get(product_type or "", _GENERAL_GOODS)


class AvalaraProvider(HttpTaxProvider):
    name = "AVALARA"

    def __init__(
        self,
        username: Optional[str],
        password: Optional[str],
        api_url: str = "https://sandbox-rest.avatax.com",
        company_code: str = "DEFAULT",
        business: Optional[BusinessSettings] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_url, timeout=timeout, client=client)
        self.username = username
        self.password = password
        self.company_code = company_code
        self.business = business or BusinessSettings()

    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    def build_request(self, request: TaxCalculationRequest) -> dict[str, Any]:
        address = request.billing_address
        return {
            "companyCode": self.company_code,
            "type": "SalesInvoice",
            "customerCode": request.customer_id,
            "date": utcnow().date().isoformat(),
            "lines": [
                {
                    "number": str(index),
                    "quantity": float(item.quantity),
                    "amount": to_json_amount(item.amount),
                    "taxCode": avalara_tax_code(item.product_type),
                    "itemCode": item.id,
                    "description": item.description,
                }
                for index, item in enumerate(request.line_items, start=1)
            ],
            "addresses": {
                "shipFrom": {
                    "line1": self.business.line1,
                    "city": self.business.city,
                    "region": self.business.state,
                    "country": self.business.country,
                    "postalCode": self.business.postal_code,
                },
                "shipTo": {
                    "line1": address.line1,
                    "line2": address.line2,
                    "city": address.city,
                    "region": address.state,
                    "country": address.country,
                    "postalCode": address.postal_code,
                },
            },
            "commit": False,
            "currencyCode": request.currency,
        }

    async def _send(self, body: dict[str, Any]) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}/api/v2/transactions/create",
            json=body,
            auth=(self.username, self.password),
        )

    def parse_response(self, payload: dict[str, Any]) -> TaxCalculationResult:
        tax_lines: list[TaxLine] = []
        for line in payload.get("lines") or []:
            for detail in line.get("details") or []:
                tax_lines.append(
                    TaxLine(
                        jurisdiction=detail["jurisName"],
                        tax_type=_TAX_TYPES.get(detail.get("taxType", ""), TaxType.OTHER.value),
                        rate=to_decimal(detail.get("rate")) * Decimal("100"),
                        taxable_amount=to_decimal(detail.get("taxableAmount")),
                        tax_amount=to_decimal(detail.get("tax")),
                        exempt_amount=to_decimal(detail.get("exemptAmount")),
                        line_item_id=line.get("itemCode"),
                    )
                )

        return TaxCalculationResult(
            provider=self.name,
            tax_lines=tax_lines,
            confidence=Confidence.HIGH.value,
            external_id=payload.get("code"),
        )
