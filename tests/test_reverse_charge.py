"""Tests for the ReverseChargeEvaluator."""

from decimal import Decimal

import pytest

from invoice_tax.models import Address, LineItem, TaxCalculationRequest
from invoice_tax.reverse_charge import (
    EU_COUNTRIES,
    REVERSE_CHARGE_REASON,
    ReverseChargeEvaluator,
)


def _request(country: str, vat_number: str | None = "FR12345678901") -> TaxCalculationRequest:
    return TaxCalculationRequest(
        customer_id="cus_1",
        line_items=[LineItem(id="1", amount=Decimal("100"))],
        billing_address=Address(
            country=country, city="Paris", postal_code="75001", vat_number=vat_number
        ),
        currency="EUR",
        customer_type="BUSINESS",
    )


@pytest.fixture
def german_seller() -> ReverseChargeEvaluator:
    return ReverseChargeEvaluator("DE")


def test_eu_cross_border_with_vat_number(german_seller):
    rc = german_seller.evaluate(_request("FR"))
    assert rc.applicable is True
    assert rc.reason == REVERSE_CHARGE_REASON
    assert rc.vat_number == "FR12345678901"


def test_non_eu_customer(german_seller):
    assert german_seller.evaluate(_request("US")).applicable is False


def test_same_country(german_seller):
    assert german_seller.evaluate(_request("DE")).applicable is False


def test_missing_vat_number(german_seller):
    assert german_seller.evaluate(_request("FR", vat_number=None)).applicable is False


def test_blank_vat_number(german_seller):
    assert german_seller.evaluate(_request("FR", vat_number="   ")).applicable is False


def test_non_eu_seller():
    assert ReverseChargeEvaluator("US").evaluate(_request("FR")).applicable is False


def test_uk_is_not_eu():
    assert "GB" not in EU_COUNTRIES
    assert ReverseChargeEvaluator("GB").evaluate(_request("FR")).applicable is False


def test_lowercase_countries():
    assert ReverseChargeEvaluator("de").evaluate(_request("fr")).applicable is True


def test_missing_address(german_seller):
    request = _request("FR")
    request.billing_address = None
    assert german_seller.evaluate(request).applicable is False


def test_eu_has_27_members():
    assert len(EU_COUNTRIES) == 27
