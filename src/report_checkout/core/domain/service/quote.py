from __future__ import annotations

from dataclasses import dataclass

from returns.pipeline import flow
from returns.pointfree import bind, map_
from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.billing import Region
from report_checkout.core.domain.model.errors import CouponError, PricingUnavailable
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency
from report_checkout.core.domain.model.quote import (
    TAX_CGST_SGST,
    TAX_IGST,
    CustomPricing,
    PricedLicense,
    Quote,
    TaxBreakdown,
)
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.domain.service.coupon import apply_coupon
from report_checkout.core.domain.service.pricing import resolve
from report_checkout.core.domain.service.tax import compute_tax


@dataclass(frozen=True)
class QuoteOutcome:
    quote: Quote
    coupon_error: CouponError | None = None


def build_quote(
    tier: LicenseTier,
    currency: Currency,
    rates: RateTable,
    region: Region | None = None,
    coupon_code: str | None = None,
    require_exact_currency: bool = False,
) -> Result[QuoteOutcome, PricingUnavailable]:
    """
    resolve -> coupon -> tax -> total, always from scratch.

    A rejected coupon never fails the quote; the outcome carries the error
    and the undiscounted quote.
    """
    return flow(
        resolve(tier, currency, rates),
        bind(lambda p: _check_currency(p, currency, require_exact_currency)),
        map_(lambda p: _assemble(p, currency, rates, region, coupon_code)),
    )


def quote_from_custom_pricing(custom: CustomPricing) -> Quote:
    amount = custom.amount
    if custom.igst.is_positive():
        label = TAX_IGST
    elif custom.cgst.is_positive() or custom.sgst.is_positive():
        label = TAX_CGST_SGST
    else:
        label = TaxBreakdown.none(amount.currency).label
    tax = TaxBreakdown(cgst=custom.cgst, sgst=custom.sgst, igst=custom.igst, label=label)
    return Quote(
        tier=custom.tier,
        license_title=custom.license_label,
        requested_currency=amount.currency,
        list_price=amount,
        offer_price=amount,
        discount=amount - amount,
        subtotal=amount,
        tax=tax,
        total=amount + tax.total,
    )


def _check_currency(
    priced: PricedLicense, currency: Currency, require_exact: bool
) -> Result[PricedLicense, PricingUnavailable]:
    if require_exact and priced.fallback_from is not None:
        return Failure(
            PricingUnavailable(
                message="currency is locked and has no own price row",
                tier=priced.tier.value,
                currency=currency.value,
            )
        )
    return Success(priced)


def _assemble(
    priced: PricedLicense,
    requested: Currency,
    rates: RateTable,
    region: Region | None,
    coupon_code: str | None,
) -> QuoteOutcome:
    priced_currency = priced.offer_price.currency
    subtotal = priced.offer_price
    discount = priced.discount
    coupon = None
    coupon_error: CouponError | None = None

    if coupon_code:
        applied = apply_coupon(coupon_code, priced.tier, priced_currency, subtotal, rates)
        if isinstance(applied, Success):
            coupon = applied.unwrap()
            subtotal = coupon.resulting_total
            discount = discount + coupon.discount_amount
        else:
            coupon_error = applied.failure()

    tax = compute_tax(
        subtotal, region, priced_currency, rates.row(priced.tier, priced_currency)
    )
    quote = Quote(
        tier=priced.tier,
        license_title=priced.title,
        requested_currency=requested,
        list_price=priced.list_price,
        offer_price=priced.offer_price,
        discount=discount,
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax.total,
        coupon=coupon,
    )
    return QuoteOutcome(quote=quote, coupon_error=coupon_error)
