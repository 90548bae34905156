from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

_NON_NUMERIC = re.compile(r"[^0-9.]")


class Currency(str, Enum):
    USD = "USD"
    INR = "INR"
    EUR = "EUR"
    GBP = "GBP"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    @staticmethod
    def parse(code: str) -> "Currency":
        """Raises ValueError for codes the checkout does not sell in."""
        return Currency(code.strip().upper())


_SYMBOLS = {
    Currency.USD: "$",
    Currency.INR: "₹",
    Currency.EUR: "€",
    Currency.GBP: "£",
}


class CurrencyMismatch(ValueError):
    pass


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw: object) -> Decimal | None:
    """
    Lenient price parsing for CMS values such as "$1,299.00" or "₹ 10,000".
    Returns None for empty or unparseable input.
    """
    if raw is None:
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    cleaned = _NON_NUMERIC.sub("", str(raw))
    if not cleaned or cleaned.count(".") > 1:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: Currency

    @staticmethod
    def of(amount: Decimal | int | str, currency: Currency) -> "Money":
        return Money(quantize(Decimal(str(amount))), currency)

    @staticmethod
    def zero(currency: Currency) -> "Money":
        return Money.of(0, currency)

    def __add__(self, other: "Money") -> "Money":
        self._assert_same_currency(other)
        return Money(quantize(self.amount + other.amount), self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._assert_same_currency(other)
        return Money(quantize(self.amount - other.amount), self.currency)

    def scaled(self, rate: Decimal) -> "Money":
        return Money(quantize(self.amount * rate), self.currency)

    def percent(self, percent: Decimal) -> "Money":
        return self.scaled(percent / HUNDRED)

    def is_positive(self) -> bool:
        return self.amount > 0

    def gateway_value(self) -> str:
        # gateways exchange amounts as fixed two-decimal strings
        return f"{quantize(self.amount):.2f}"

    def _assert_same_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(
                f"currency_mismatch: {self.currency.value} vs {other.currency.value}"
            )
