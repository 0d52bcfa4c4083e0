# billing.py
"""
In-memory invoice model handed to the layout engine.

Totals are never stored: subtotal, tax and grand total are derived from the
current line items and tax rate every time they are asked for.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Iterable

from errors import AmountOutOfRange, InvalidLineItem
from money import MAX_MINOR_UNITS, Money, to_decimal

QUANTITY_STEP = Decimal("0.01")
TAX_RATE_STEP = Decimal("0.0001")


def quantize(value, step: Decimal) -> Decimal:
    try:
        return to_decimal(value).quantize(step, rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        raise ValueError(f"Not a decimal number: {value!r}") from None


@dataclass(frozen=True)
class Party:
    """A name plus the display lines printed under it (address, phone, ...)."""
    name: str
    lines: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "name", (self.name or "").strip())
        object.__setattr__(self, "lines", tuple(ln for ln in (self.lines or ()) if ln is not None))


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Money

    def __post_init__(self):
        try:
            qty = quantize(self.quantity, QUANTITY_STEP)
        except (TypeError, ValueError) as e:
            raise InvalidLineItem(f"invalid quantity ({e})") from None
        if qty < 0:
            raise InvalidLineItem(f"quantity must not be negative, got {qty}")
        if not isinstance(self.unit_price, Money):
            raise InvalidLineItem("unit price must be a Money value")
        object.__setattr__(self, "quantity", qty)
        object.__setattr__(self, "description", "" if self.description is None else str(self.description))

    @property
    def line_total(self) -> Money:
        return self.unit_price.multiply(self.quantity)


@dataclass(frozen=True)
class Totals:
    subtotal: Money
    tax: Money
    grand_total: Money


class Invoice:
    def __init__(
        self,
        invoice_id: str,
        customer: Party,
        issue_date: date,
        due_date: date,
        *,
        currency: str = "USD",
        tax_rate=Decimal("0"),
        line_items: Iterable[LineItem] = (),
        issuer: Party | None = None,
        notes: str = "",
        payment_terms: str = "",
        paid: bool = False,
    ):
        self.invoice_id = str(invoice_id)
        self.customer = customer
        self.issuer = issuer
        self.issue_date = issue_date
        self.due_date = due_date
        self.currency = (currency or "").strip().upper()
        if not self.currency:
            raise ValueError("Invoice needs a currency")
        self.tax_rate = quantize(tax_rate, TAX_RATE_STEP)
        if self.tax_rate < 0:
            raise ValueError(f"Tax rate must not be negative, got {self.tax_rate}")
        self.notes = notes or ""
        self.payment_terms = payment_terms or ""
        self.paid = bool(paid)

        self._items: list[LineItem] = []
        for item in line_items:
            self.add_line_item(item)

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_id} items={len(self._items)} {self.currency}>"

    # -----------------------------
    # Line items
    # -----------------------------
    @property
    def line_items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    def _check_item(self, item, index: int) -> None:
        if not isinstance(item, LineItem):
            raise InvalidLineItem(f"expected LineItem, got {type(item).__name__}", index)
        if item.unit_price.currency != self.currency:
            raise InvalidLineItem(
                f"unit price currency {item.unit_price.currency} does not match invoice currency {self.currency}",
                index,
            )

    def add_line_item(self, item: LineItem) -> None:
        self._check_item(item, len(self._items))
        self._items.append(item)
        try:
            self._check_amounts()
        except AmountOutOfRange:
            self._items.pop()
            raise

    def remove_line_item(self, index: int) -> LineItem:
        return self._items.pop(index)

    def _check_amounts(self) -> None:
        amounts = []
        for i, item in enumerate(self._items, start=1):
            amounts += [(f"Line item {i} rate", item.unit_price), (f"Line item {i} amount", item.line_total)]
        totals = self.totals()
        amounts += [("Subtotal", totals.subtotal), ("Tax", totals.tax), ("Total", totals.grand_total)]
        for label, amount in amounts:
            if abs(amount.amount) > MAX_MINOR_UNITS:
                raise AmountOutOfRange(f"{label} {amount.amount} minor units exceeds the largest displayable amount")

    def validate(self) -> None:
        for i, item in enumerate(self._items):
            self._check_item(item, i)
        self._check_amounts()

    # -----------------------------
    # Totals (computed, not stored)
    # -----------------------------
    def subtotal(self) -> Money:
        return Money.sum((item.line_total for item in self._items), self.currency)

    def tax_amount(self) -> Money:
        return self.subtotal().multiply(self.tax_rate / 100)

    def grand_total(self) -> Money:
        return self.totals().grand_total

    def totals(self) -> Totals:
        subtotal = self.subtotal()
        tax = subtotal.multiply(self.tax_rate / 100)
        return Totals(subtotal=subtotal, tax=tax, grand_total=subtotal + tax)

    def amount_due(self) -> Money:
        if self.paid:
            return Money.zero(self.currency)
        return self.grand_total()
