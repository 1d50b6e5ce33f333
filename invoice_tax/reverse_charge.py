"""EU cross-border B2B reverse charge check."""

from __future__ import annotations

from invoice_tax.models import ReverseCharge, TaxCalculationRequest

EU_COUNTRIES: frozenset[str] = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
    "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
    "PL", "PT", "RO", "SK", "SI", "ES", "SE",
})

REVERSE_CHARGE_REASON = "EU B2B reverse charge mechanism"


class ReverseChargeEvaluator:
    """
    Flags transactions where the EU buyer self-assesses VAT.

    Applies when seller and buyer are both in the EU, in different member
    states, and the buyer supplied a VAT number. Only the flag is set;
    callers decide what to do with the tax lines.
    """

    def __init__(self, business_country: str = "US") -> None:
        self.business_country = business_country.upper()

    def evaluate(self, request: TaxCalculationRequest) -> ReverseCharge:
        address = request.billing_address
        if address is None:
            return ReverseCharge(applicable=False)

        customer_country = (address.country or "").upper()
        vat_number = (address.vat_number or "").strip()

        if (
            self.business_country in EU_COUNTRIES
            and customer_country in EU_COUNTRIES
            and self.business_country != customer_country
            and vat_number
        ):
            return ReverseCharge(
                applicable=True,
                reason=REVERSE_CHARGE_REASON,
                vat_number=vat_number,
            )
        return ReverseCharge(applicable=False)
