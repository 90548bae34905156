from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterator, Mapping

from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, parse_amount

logger = logging.getLogger(__name__)

RateKey = tuple[LicenseTier, Currency]

_COUPON_KEY = re.compile(
    r"^(?P<tier>single|team|enterprise)_license_offer_code_(?P<code>[A-Za-z0-9-]+)_in_(?P<cur>[A-Z]{3})$"
)


def price_key(kind: str, tier: LicenseTier, currency: Currency) -> str:
    """kind: "actual" (list price) or "offer"."""
    return f"{tier.value}_license_{kind}_price_in_{currency.value}"


def discount_key(tier: LicenseTier, currency: Currency | None = None) -> str:
    if currency is None:
        return f"{tier.value}_license_discount_percent"
    return f"{tier.value}_license_discount_percent_in_{currency.value}"


def tax_key(component: str, tier: LicenseTier, currency: Currency) -> str:
    return f"{tier.value}_license_{component}_percent_in_{currency.value}"


def coupon_key(tier: LicenseTier, currency: Currency, code: str) -> str:
    return f"{tier.value}_license_offer_code_{code.upper()}_in_{currency.value}"


@dataclass(frozen=True)
class RateRow:
    tier: LicenseTier
    currency: Currency
    title: str
    list_price: Decimal | None = None
    offer_price: Decimal | None = None
    discount_percent: Decimal | None = None
    cgst_rate: Decimal | None = None
    sgst_rate: Decimal | None = None
    igst_rate: Decimal | None = None

    @property
    def has_price(self) -> bool:
        return self.list_price is not None or self.offer_price is not None


@dataclass(frozen=True)
class RateFlag:
    tier: LicenseTier
    currency: Currency
    problem: str


@dataclass(frozen=True)
class RateTable:
    """Read-only (tier, currency) -> RateRow lookup built once per payload."""

    rows: Mapping[RateKey, RateRow]
    currencies: tuple[Currency, ...]
    coupons: Mapping[str, Decimal] = field(default_factory=dict)
    flags: tuple[RateFlag, ...] = ()

    def row(self, tier: LicenseTier, currency: Currency) -> RateRow | None:
        return self.rows.get((tier, currency))

    def coupon_total(
        self, tier: LicenseTier, currency: Currency, code: str
    ) -> Decimal | None:
        return self.coupons.get(coupon_key(tier, currency, code))

    def title(self, tier: LicenseTier) -> str:
        for (t, _), r in self.rows.items():
            if t is tier:
                return r.title
        return tier.default_title

    def __iter__(self) -> Iterator[RateRow]:
        return iter(self.rows.values())

    @staticmethod
    def from_payload(payload: Mapping[str, Any]) -> "RateTable":
        currencies = _offered_currencies(payload.get("currency_dropdown"))
        coupons = _collect_coupons(payload)

        rows: dict[RateKey, RateRow] = {}
        flags: list[RateFlag] = []
        for tier in LicenseTier:
            title = str(payload.get(f"{tier.value}_license_heading") or tier.default_title)
            for cur in Currency:
                row = RateRow(
                    tier=tier,
                    currency=cur,
                    title=title,
                    list_price=parse_amount(payload.get(price_key("actual", tier, cur))),
                    offer_price=parse_amount(payload.get(price_key("offer", tier, cur))),
                    discount_percent=parse_amount(
                        payload.get(discount_key(tier, cur))
                        or payload.get(discount_key(tier))
                    ),
                    cgst_rate=parse_amount(payload.get(tax_key("cgst", tier, cur))),
                    sgst_rate=parse_amount(payload.get(tax_key("sgst", tier, cur))),
                    igst_rate=parse_amount(payload.get(tax_key("igst", tier, cur))),
                )

                if not row.has_price:
                    if cur in currencies:
                        flags.append(RateFlag(tier, cur, "missing"))
                    continue

                if (
                    row.list_price is not None
                    and row.offer_price is not None
                    and row.offer_price > row.list_price
                ):
                    flags.append(RateFlag(tier, cur, "offer_above_list"))
                    continue

                rows[(tier, cur)] = row

        for f in flags:
            logger.warning(
                "rate table: %s/%s %s", f.tier.value, f.currency.value, f.problem
            )

        return RateTable(
            rows=rows, currencies=currencies, coupons=coupons, flags=tuple(flags)
        )


def _offered_currencies(raw: object) -> tuple[Currency, ...]:
    if not raw:
        return (Currency.USD,)
    found: list[Currency] = []
    for part in str(raw).split(","):
        try:
            cur = Currency.parse(part)
        except ValueError:
            logger.warning("rate table: unsupported currency %r in dropdown", part)
            continue
        if cur not in found:
            found.append(cur)
    return tuple(found) or (Currency.USD,)


def _collect_coupons(payload: Mapping[str, Any]) -> dict[str, Decimal]:
    out: dict[str, Decimal] = {}
    for key, value in payload.items():
        m = _COUPON_KEY.match(key)
        if m is None:
            if "_offer_code_" in key:
                logger.warning("rate table: unreadable coupon key %r skipped", key)
            continue
        try:
            cur = Currency(m.group("cur"))
        except ValueError:
            continue
        amount = parse_amount(value)
        if amount is None:
            continue
        tier = LicenseTier(m.group("tier"))
        out[coupon_key(tier, cur, m.group("code"))] = amount
    return out
