"""Tests for the JurisdictionResolver."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from invoice_tax.jurisdiction import JurisdictionResolver, Location
from invoice_tax.models import Address
from invoice_tax.rates import (
    RateThresholds,
    TaxRate,
    TaxRateStore,
    TaxType,
)

NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


def _rate(
    name: str,
    rate: str = "5",
    country: str = "US",
    state: str | None = None,
    city: str | None = None,
    **kwargs,
) -> TaxRate:
    return TaxRate(
        name=name,
        country=country,
        state=state,
        city=city,
        tax_type=TaxType.SALES_TAX,
        rate=Decimal(rate),
        effective_from=date(2024, 1, 1),
        **kwargs,
    )


@pytest.fixture
def resolver() -> JurisdictionResolver:
    return JurisdictionResolver(TaxRateStore())


def _applies(resolver, rate, location=Location("US", "TX", "Houston"),
             customer="INDIVIDUAL", product="SUBSCRIPTIONS", amount="100"):
    return resolver.is_applicable(rate, location, customer, product, Decimal(amount), NOW)


# ── is_applicable ────────────────────────────────────────────────────


def test_country_mismatch(resolver):
    assert not _applies(resolver, _rate("CA", country="CA"))


def test_country_match_case_insensitive(resolver):
    assert _applies(resolver, _rate("US"), location=Location("us"))


def test_state_mismatch(resolver):
    assert not _applies(resolver, _rate("CA", state="CA"))


def test_state_rate_needs_location_state(resolver):
    assert not _applies(resolver, _rate("TX", state="TX"), location=Location("US"))


def test_country_rate_applies_to_any_state(resolver):
    assert _applies(resolver, _rate("US"))


def test_rate_city_not_checked_by_is_applicable(resolver):
    rate = _rate("Houston", state="TX", city="Houston")
    assert _applies(resolver, rate, location=Location("US", "TX", "Dallas"))
    assert _applies(resolver, rate, location=Location("US", "TX"))


def test_inactive_rate(resolver):
    assert not _applies(resolver, _rate("US", active=False))


def test_rate_outside_window(resolver):
    assert not _applies(resolver, _rate("US", effective_to=date(2024, 3, 31)))


def test_customer_type_restriction(resolver):
    rate = _rate("B2B", customer_types=["BUSINESS"])
    assert not _applies(resolver, rate, customer="INDIVIDUAL")
    assert _applies(resolver, rate, customer="BUSINESS")


def test_all_customer_types_unrestricted(resolver):
    rate = _rate("Any", customer_types=["ALL"])
    assert _applies(resolver, rate, customer="GOVERNMENT")


def test_product_type_restriction(resolver):
    rate = _rate("Digital", applicable_to_products=["DIGITAL_SERVICES"])
    assert not _applies(resolver, rate, product="PHYSICAL_GOODS")
    assert _applies(resolver, rate, product="DIGITAL_SERVICES")


def test_minimum_amount(resolver):
    rate = _rate("Min", thresholds=RateThresholds(minimum_amount=Decimal("50")))
    assert not _applies(resolver, rate, amount="49.99")
    assert _applies(resolver, rate, amount="50")


def test_maximum_amount(resolver):
    rate = _rate("Max", thresholds=RateThresholds(maximum_amount=Decimal("1000")))
    assert _applies(resolver, rate, amount="1000")
    assert not _applies(resolver, rate, amount="1000.01")


# ── get_applicable_tax_rates ─────────────────────────────────────────


def test_most_specific_first():
    country = _rate("Country", "2")
    city = _rate("City", "1", state="TX", city="Houston")
    store = TaxRateStore([country, city])
    rates = JurisdictionResolver(store).get_applicable_tax_rates(
        Location("US", "TX", "Houston"), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("100"), NOW
    )
    assert [r.name for r in rates] == ["City", "Country"]


def test_full_ordering_city_state_country():
    store = TaxRateStore([
        _rate("Country"),
        _rate("State", state="TX"),
        _rate("City", state="TX", city="Houston"),
    ])
    rates = JurisdictionResolver(store).get_applicable_tax_rates(
        Location("US", "TX", "Houston"), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("100"), NOW
    )
    assert [r.name for r in rates] == ["City", "State", "Country"]


def _tx_city_rates(city: str | None) -> list[str]:
    store = TaxRateStore([
        _rate("State", state="TX"),
        _rate("Houston", state="TX", city="Houston"),
        _rate("Dallas", state="TX", city="Dallas"),
    ])
    rates = JurisdictionResolver(store).get_applicable_tax_rates(
        Location("US", "TX", city), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("100"), NOW
    )
    return [r.name for r in rates]


def test_city_rates_drawn_for_own_city_only():
    assert _tx_city_rates("Dallas") == ["Dallas", "State"]
    assert _tx_city_rates("houston") == ["Houston", "State"]


def test_city_rates_skipped_without_location_city():
    assert _tx_city_rates(None) == ["State"]


def test_all_applicable_rates_retained():
    store = TaxRateStore([_rate("A", "1"), _rate("B", "2"), _rate("Other", country="CA")])
    rates = JurisdictionResolver(store).get_applicable_tax_rates(
        Location("US"), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("100"), NOW
    )
    assert {r.name for r in rates} == {"A", "B"}


def test_no_rates_for_unknown_country():
    resolver = JurisdictionResolver(TaxRateStore.with_defaults())
    assert resolver.get_applicable_tax_rates(
        Location("ZZ"), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("100")
    ) == []


def test_default_houston_rates():
    resolver = JurisdictionResolver(TaxRateStore.with_defaults())
    rates = resolver.get_applicable_tax_rates(
        Location("US", "TX", "Houston"), "INDIVIDUAL", "SUBSCRIPTIONS", Decimal("500")
    )
    assert [r.rate for r in rates] == [Decimal("2"), Decimal("6.25")]


def test_location_from_address():
    loc = Location.from_address(
        Address(country="us", state="ny", city="Buffalo", postal_code="14201")
    )
    assert loc == Location("US", "NY", "Buffalo", "14201")
