"""Stripe Tax adapter (POST /v1/tax/calculations)."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from invoice_tax.models import (
    Confidence,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxLine,
)
from invoice_tax.providers.base import (
    HttpTaxProvider,
    from_minor_units,
    to_decimal,
    to_minor_units,
)
from invoice_tax.rates import TaxType

STRIPE_TAX_CODES: dict[str, str] = {
    "DIGITAL_SERVICES": "txcd_10103001",
    "SUBSCRIPTIONS": "txcd_10103001",
    "LICENSES": "txcd_10103001",
    "PHYSICAL_GOODS": "txcd_99999999",
}
_GENERAL_GOODS = "txcd_99999999"

_TAX_TYPES: dict[str, str] = {
    "vat": TaxType.VAT.value,
    "gst": TaxType.GST.value,
    "hst": TaxType.GST.value,
    "sales_tax": TaxType.SALES_TAX.value,
    "rst": TaxType.SALES_TAX.value,
    "qst": TaxType.SALES_TAX.value,
    "pst": TaxType.SALES_TAX.value,
}


def stripe_tax_code(product_type: Optional[str]) -> str:
    return STRIPE_TAX_CODES.get(product_type or "", _GENERAL_GOODS)


def _flatten_form(data: Any, prefix: str = "") -> list[tuple[str, str]]:
    """Encode nested data the way Stripe's form API expects (a[b][0][c]=v)."""
    pairs: list[tuple[str, str]] = []
    if isinstance(data, dict):
        for key, value in data.items():
            pairs.extend(_flatten_form(value, f"{prefix}[{key}]" if prefix else key))
    elif isinstance(data, list):
        for index, value in enumerate(data):
            pairs.extend(_flatten_form(value, f"{prefix}[{index}]"))
    elif data is not None and data != "":
        pairs.append((prefix, str(data)))
    return pairs


class StripeTaxProvider(HttpTaxProvider):
    name = "STRIPE_TAX"

    def __init__(
        self,
        secret_key: Optional[str],
        api_url: str = "https://api.stripe.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_url, timeout=timeout, client=client)
        self.secret_key = secret_key

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def build_request(self, request: TaxCalculationRequest) -> dict[str, Any]:
        address = request.billing_address
        return {
            "currency": request.currency.lower(),
            "line_items": [
                {
                    "amount": to_minor_units(item.amount),
                    "reference": item.id,
                    "tax_behavior": "exclusive",
                    "tax_code": stripe_tax_code(item.product_type),
                }
                for item in request.line_items
            ],
            "customer_details": {
                "address": {
                    "country": address.country,
                    "state": address.state,
                    "city": address.city,
                    "postal_code": address.postal_code,
                    "line1": address.line1,
                    "line2": address.line2,
                },
                "address_source": "billing",
            },
            "expand": ["line_items.data.tax_breakdown"],
        }

    async def _send(self, body: dict[str, Any]) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}/v1/tax/calculations",
            data=dict(_flatten_form(body)),
            headers={"Authorization": f"Bearer {self.secret_key}"},
        )

    def parse_response(self, payload: dict[str, Any]) -> TaxCalculationResult:
        tax_lines: list[TaxLine] = []
        for line_item in payload["line_items"]["data"]:
            for breakdown in line_item.get("tax_breakdown") or []:
                details = breakdown["tax_rate_details"]
                tax_lines.append(
                    TaxLine(
                        jurisdiction=breakdown["jurisdiction"]["display_name"],
                        tax_type=_TAX_TYPES.get(
                            details.get("tax_type", ""), TaxType.OTHER.value
                        ),
                        # percentage_decimal is already a percentage ("7.25")
                        rate=to_decimal(details.get("percentage_decimal")),
                        taxable_amount=from_minor_units(breakdown["taxable_amount"]),
                        tax_amount=from_minor_units(breakdown["amount"]),
                        line_item_id=line_item.get("reference"),
                    )
                )

        return TaxCalculationResult(
            provider=self.name,
            tax_lines=tax_lines,
            confidence=Confidence.HIGH.value,
            external_id=payload.get("id"),
        )
