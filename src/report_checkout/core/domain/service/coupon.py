from __future__ import annotations

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import (
    CouponEmpty,
    CouponError,
    CouponInvalidOrUnsupported,
)
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.quote import Coupon
from report_checkout.core.domain.model.rates import RateTable


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def apply_coupon(
    code: str | None,
    tier: LicenseTier,
    currency: Currency,
    base_total: Money,
    rates: RateTable,
) -> Result[Coupon, CouponError]:
    """
    A coupon is only valid for the (tier, currency) pair it is looked up
    with; the same inputs always give the same coupon.
    """
    normalized = normalize_code(code)
    if not normalized:
        return Failure(CouponEmpty(message="offer code is empty"))

    resulting = rates.coupon_total(tier, currency, normalized)
    if resulting is None:
        return Failure(
            CouponInvalidOrUnsupported(
                message=f"not valid for {tier.value} license in {currency.value}",
                code=normalized,
            )
        )

    new_total = Money.of(resulting, base_total.currency)
    if not new_total.is_positive() or new_total.amount >= base_total.amount:
        return Failure(
            CouponInvalidOrUnsupported(
                message="offer code does not reduce the price", code=normalized
            )
        )

    return Success(
        Coupon(
            code=normalized,
            tier=tier,
            currency=currency,
            resulting_total=new_total,
            discount_amount=base_total - new_total,
        )
    )
