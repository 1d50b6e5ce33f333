"""TaxJar adapter (POST /v2/taxes)."""

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
from invoice_tax.rates import TaxType

TAXJAR_PRODUCT_CODES: dict[str, str] = {
    "DIGITAL_SERVICES": "31000",
    "SUBSCRIPTIONS": "31000",
    "LICENSES": "31000",
    "PHYSICAL_GOODS": "00000",
}
_GENERAL_GOODS = "00000"

# (breakdown field prefix, rate field, jurisdiction key, level label, tax type)
_LEVELS: list[tuple[str, str, str, str, str]] = [
    ("state", "state_tax_rate", "state", "State", TaxType.SALES_TAX.value),
    ("county", "county_tax_rate", "county", "County", TaxType.SALES_TAX.value),
    ("city", "city_tax_rate", "city", "City", TaxType.SALES_TAX.value),
    ("special_district", "special_tax_rate", "", "Special District", TaxType.SALES_TAX.value),
    ("country", "country_tax_rate", "country", "Country", TaxType.VAT.value),
]


def taxjar_product_code(product_type: Optional[str]) -> str:
    return TAXJAR_PRODUCT_CODES.get(product_type or "", _GENERAL_GOODS)


class TaxJarProvider(HttpTaxProvider):
    name = "TAXJAR"

    def __init__(
        self,
        api_key: Optional[str],
        business: Optional[BusinessSettings] = None,
        api_url: str = "https://api.taxjar.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_url, timeout=timeout, client=client)
        self.api_key = api_key
        self.business = business or BusinessSettings()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_request(self, request: TaxCalculationRequest) -> dict[str, Any]:
        address = request.billing_address
        return {
            "from_country": self.business.country,
            "from_zip": self.business.postal_code,
            "from_state": self.business.state,
            "from_city": self.business.city,
            "to_country": address.country,
            "to_zip": address.postal_code,
            "to_state": address.state,
            "to_city": address.city,
            "amount": to_json_amount(request.transaction_total),
            "shipping": 0,
            "line_items": [
                {
                    "id": item.id,
                    "quantity": float(item.quantity),
                    "product_tax_code": taxjar_product_code(item.product_type),
                    "unit_price": to_json_amount(item.unit_price),
                    "discount": to_json_amount(item.discount_amount),
                }
                for item in request.line_items
            ],
        }

    async def _send(self, body: dict[str, Any]) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}/v2/taxes",
            json=body,
            headers={"Authorization": f'Token token="{self.api_key}"'},
        )

    def parse_response(self, payload: dict[str, Any]) -> TaxCalculationResult:
        tax = payload["tax"]
        breakdown = tax.get("breakdown") or {}
        jurisdictions = tax.get("jurisdictions") or {}

        tax_lines: list[TaxLine] = []
        for prefix, rate_field, jur_key, label, tax_type in _LEVELS:
            taxable = to_decimal(breakdown.get(f"{prefix}_taxable_amount"))
            if taxable <= 0:
                continue
            place = jurisdictions.get(jur_key) if jur_key else None
            tax_lines.append(
                TaxLine(
                    jurisdiction=f"{place} - {label}" if place else label,
                    tax_type=tax_type,
                    rate=to_decimal(breakdown.get(rate_field)) * Decimal("100"),
                    taxable_amount=taxable,
                    tax_amount=to_decimal(breakdown.get(f"{prefix}_tax_collectable")),
                )
            )

        return TaxCalculationResult(
            provider=self.name,
            tax_lines=tax_lines,
            confidence=Confidence.HIGH.value,
        )
