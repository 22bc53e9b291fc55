"""Financial derivation tests."""
from decimal import Decimal

import pytest

from inward.core.exceptions import PreconditionError
from inward.services.financials import (
    FinancialSummary, apply_discount, compute_totals, discount_percentage,
    parse_products, summarize, to_money, validate_discount,
)


def _items(*prices):
    return parse_products([{"product": f"Item {i}", "price": p} for i, p in enumerate(prices)])


def test_gross_total_without_discount():
    items = _items(1000, 2000, 500)
    gross = compute_totals(items)
    amounts = apply_discount(gross, None)

    assert gross == Decimal("3500")
    assert amounts.final_amount == Decimal("3500")
    assert amounts.discount_percentage == Decimal("0")


def test_discount_percentage_and_final_amount():
    gross = compute_totals(_items(1000, 2000, 500))
    amounts = apply_discount(gross, Decimal("500"))

    assert amounts.discount_percentage == Decimal("14.29")
    assert amounts.final_amount == Decimal("3000")


def test_discount_percentage_of_empty_total_is_zero():
    assert discount_percentage(Decimal("0"), Decimal("0")) == Decimal("0")


def test_over_discount_is_rejected():
    with pytest.raises(PreconditionError) as exc:
        validate_discount(Decimal("3500"), Decimal("3500.01"))
    assert exc.value.code == "discount_exceeds_total"


def test_discount_equal_to_total_is_allowed():
    assert validate_discount(Decimal("3500"), Decimal("3500")) == Decimal("3500")


def test_negative_discount_is_rejected():
    with pytest.raises(PreconditionError) as exc:
        validate_discount(Decimal("100"), Decimal("-1"))
    assert exc.value.code == "negative_discount"


@pytest.mark.parametrize("raw", [
    "not json",
    '{"product": "Dashcam"}',
    [{"product": "Dashcam", "price": "abc"}],
    [{"product": "Dashcam", "price": -5}],
    ["Dashcam"],
])
def test_malformed_product_data_degrades_to_empty(raw):
    assert parse_products(raw) == []


def test_product_data_stored_as_json_string_is_parsed():
    items = parse_products('[{"product": "Dashcam", "price": "2499.5"}]')
    assert len(items) == 1
    assert items[0].price == Decimal("2499.50")


def test_to_money_rounds_to_cents():
    assert to_money("10.005") == Decimal("10.01")
    assert to_money(None) == Decimal("0")
    with pytest.raises(ValueError):
        to_money("NaN")


def test_summary_of_nothing_is_all_zero():
    assert summarize([]) == FinancialSummary()


def test_summary_averages_and_adoption():
    gross = compute_totals(_items(1000, 2000, 500))
    summary = summarize([
        apply_discount(gross, None),
        apply_discount(gross, Decimal("500")),
    ])

    assert summary.count == 2
    assert summary.gross_total == Decimal("7000")
    assert summary.final_total == Decimal("6500")
    assert summary.discount_total == Decimal("500")
    assert summary.average_order_value == Decimal("3250.00")
    assert summary.average_discount == Decimal("250.00")
    assert summary.average_discount_percentage == Decimal("7.14")
    assert summary.discount_adoption_ratio == Decimal("0.5000")
    assert summary.entries_with_discount == 1
