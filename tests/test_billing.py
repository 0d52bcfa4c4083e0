"""Tests for the in-memory invoice model."""

from decimal import Decimal

import pytest

from billing import LineItem
from errors import AmountOutOfRange, InvalidLineItem
from money import MAX_MINOR_UNITS, Money


def test_line_total_is_rounded_product(item) -> None:
    li = item(quantity="2.5", cents=333)
    # 832.5 -> 832 (half to even)
    assert li.line_total == Money(832, "USD")
    assert li.quantity == Decimal("2.50")


def test_quantity_is_fixed_precision(item) -> None:
    assert item(quantity="1.005").quantity == Decimal("1.00")
    assert item(quantity="1.015").quantity == Decimal("1.02")


def test_negative_quantity_is_rejected() -> None:
    with pytest.raises(InvalidLineItem):
        LineItem("Refund", Decimal("-1"), Money(100, "USD"))


def test_non_decimal_quantity_is_rejected() -> None:
    with pytest.raises(InvalidLineItem):
        LineItem("Bad", 1.5, Money(100, "USD"))
    with pytest.raises(InvalidLineItem):
        LineItem("Bad", "lots", Money(100, "USD"))


def test_unit_price_must_be_money() -> None:
    with pytest.raises(InvalidLineItem):
        LineItem("Bad", 1, 100)


def test_subtotal_is_sum_of_rounded_line_totals(make_invoice, item) -> None:
    items = [item(quantity="0.5", cents=5), item(quantity="0.5", cents=15), item(quantity="3", cents=1999)]
    inv = make_invoice(items)
    # 2.5 -> 2, 7.5 -> 8, 5997
    assert inv.subtotal() == Money(2 + 8 + 5997, "USD")
    assert inv.subtotal() == Money.sum((li.line_total for li in items), "USD")


def test_tax_and_grand_total(make_invoice, item) -> None:
    inv = make_invoice([item(cents=1000), item(cents=50)], tax_rate="8.25")
    totals = inv.totals()
    assert totals.subtotal == Money(1050, "USD")
    # 86.625 -> 87
    assert totals.tax == Money(87, "USD")
    assert totals.grand_total == Money(1137, "USD")
    assert inv.tax_amount() == totals.tax
    assert inv.grand_total() == totals.grand_total


def test_totals_are_idempotent(make_invoice, item) -> None:
    inv = make_invoice([item(quantity="1.33", cents=777) for _ in range(5)], tax_rate="10")
    assert inv.totals() == inv.totals()
    assert inv.grand_total() == inv.grand_total()


def test_zero_items_means_zero_totals(make_invoice) -> None:
    totals = make_invoice([], tax_rate="10").totals()
    assert totals.subtotal.is_zero()
    assert totals.tax.is_zero()
    assert totals.grand_total.is_zero()


def test_totals_follow_item_mutations(make_invoice, item) -> None:
    inv = make_invoice([item(cents=1000)])
    inv.add_line_item(item(cents=500))
    assert inv.subtotal() == Money(1500, "USD")
    removed = inv.remove_line_item(0)
    assert removed.unit_price == Money(1000, "USD")
    assert inv.subtotal() == Money(500, "USD")


def test_line_items_view_is_read_only(make_invoice, item) -> None:
    inv = make_invoice([item()])
    with pytest.raises(AttributeError):
        inv.line_items.append(item())
    assert len(inv.line_items) == 1


def test_currency_mismatch_is_rejected(make_invoice, item) -> None:
    with pytest.raises(InvalidLineItem) as excinfo:
        make_invoice([item(), item(currency="AUD")])
    assert excinfo.value.index == 1

    inv = make_invoice([item()])
    with pytest.raises(InvalidLineItem):
        inv.add_line_item(item(currency="EUR"))
    assert len(inv.line_items) == 1


def test_amount_due_is_zero_once_paid(make_invoice, item) -> None:
    inv = make_invoice([item(cents=1000)], paid=True)
    assert inv.amount_due().is_zero()
    assert inv.grand_total() == Money(1000, "USD")


def test_negative_tax_rate_is_rejected(make_invoice) -> None:
    with pytest.raises(ValueError):
        make_invoice([], tax_rate="-1")


@pytest.mark.parametrize("quantity", ["NaN", "Infinity", "1e40"])
def test_non_finite_quantity_is_rejected(quantity) -> None:
    with pytest.raises(InvalidLineItem):
        LineItem("Bad", quantity, Money(100, "USD"))


def test_total_beyond_display_limit_is_rejected(make_invoice, item) -> None:
    big = item(cents=MAX_MINOR_UNITS)
    invoice = make_invoice([big])
    with pytest.raises(AmountOutOfRange):
        invoice.add_line_item(item(cents=1))
    assert invoice.line_items == (big,)
    with pytest.raises(AmountOutOfRange):
        make_invoice([big], tax_rate="0.01")
