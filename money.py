# money.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, DecimalException, InvalidOperation, ROUND_HALF_EVEN
from typing import Iterable

from errors import AmountOutOfRange, IncompatibleCurrency

# 10 integer digits + 2 minor digits
MAX_MINOR_UNITS = 10**12 - 1

CURRENCY_SYMBOLS = {
    "USD": "$",
    "AUD": "AU $",
    "CAD": "CA $",
    "NZD": "NZ $",
    "GBP": "£",
    "EUR": "€",
}


def to_decimal(value) -> Decimal:
    """Exact conversion to Decimal. Floats and non-finite values are refused."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Expected int, Decimal or decimal string, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            raise ValueError(f"Not a decimal number: {value!r}") from None
    else:
        raise TypeError(f"Expected int, Decimal or decimal string, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_half_even(value: Decimal, factor=1) -> int:
    """value * factor rounded to a whole number, ties to even."""
    try:
        return int((value * factor).quantize(Decimal(1), rounding=ROUND_HALF_EVEN))
    except DecimalException:
        raise ValueError(f"Amount out of range: {value} x {factor}") from None


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency, f"{currency} ")


@dataclass(frozen=True, order=False)
class Money:
    amount: int
    currency: str

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Money amount must be an int of minor units, got {type(self.amount).__name__}")
        cur = (self.currency or "").strip().upper()
        if not cur:
            raise ValueError("Money needs a currency tag")
        object.__setattr__(self, "currency", cur)

    # -----------------------------
    # Constructors
    # -----------------------------
    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    @classmethod
    def parse(cls, text, currency: str) -> "Money":
        """Parse a major-unit amount like "1,234.50" into minor units."""
        return cls(round_half_even(to_decimal(text), 100), currency)

    @classmethod
    def sum(cls, values: Iterable["Money"], currency: str) -> "Money":
        total = cls.zero(currency)
        for v in values:
            total = total + v
        return total

    # -----------------------------
    # Arithmetic
    # -----------------------------
    def _check(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise IncompatibleCurrency(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check(other)
        return self.amount >= other.amount

    def multiply(self, scalar) -> "Money":
        """Scale by an exact decimal; the fractional cent is rounded half-to-even, once."""
        return Money(round_half_even(Decimal(self.amount), to_decimal(scalar)), self.currency)

    def __mul__(self, scalar) -> "Money":
        return self.multiply(scalar)

    __rmul__ = __mul__

    def is_zero(self) -> bool:
        return self.amount == 0

    # -----------------------------
    # Display
    # -----------------------------
    def format(self, width: int | None = None) -> str:
        magnitude = abs(self.amount)
        if magnitude > MAX_MINOR_UNITS:
            raise AmountOutOfRange(f"Amount {self.amount} exceeds the displayable magnitude")
        major, minor = divmod(magnitude, 100)
        sign = "-" if self.amount < 0 else ""
        text = f"{sign}{currency_symbol(self.currency)}{major:,}.{minor:02d}"
        if width is None:
            return text
        if len(text) > width:
            raise ValueError(f"{text!r} does not fit in {width} characters")
        return text.rjust(width)

    def __str__(self) -> str:
        return self.format()


def display_width(currency: str) -> int:
    """Characters needed for the widest displayable amount, sign included."""
    return len(Money(-MAX_MINOR_UNITS, currency).format())
