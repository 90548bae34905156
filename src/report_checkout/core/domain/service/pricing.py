from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import PricingUnavailable
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import HUNDRED, Currency, Money
from report_checkout.core.domain.model.quote import PricedLicense
from report_checkout.core.domain.model.rates import RateRow, RateTable

logger = logging.getLogger(__name__)

FALLBACK_CURRENCY = Currency.USD


def resolve(
    tier: LicenseTier, currency: Currency, rates: RateTable
) -> Result[PricedLicense, PricingUnavailable]:
    """
    Price one license tier in one currency.

    A row without any price falls back to the USD row of the same tier; the
    result then carries ``fallback_from`` and is denominated in USD. Zero
    priced licenses are never returned.
    """
    row = rates.row(tier, currency)
    fallback_from: Currency | None = None

    if (row is None or not row.has_price) and currency is not FALLBACK_CURRENCY:
        row = rates.row(tier, FALLBACK_CURRENCY)
        fallback_from = currency
        if row is not None and row.has_price:
            logger.warning(
                "pricing: %s has no %s row, using %s",
                tier.value,
                currency.value,
                FALLBACK_CURRENCY.value,
            )

    if row is None or not row.has_price:
        return Failure(
            PricingUnavailable(
                message="no rate row for tier/currency",
                tier=tier.value,
                currency=currency.value,
            )
        )

    return _price_row(row, fallback_from)


def license_options(currency: Currency, rates: RateTable) -> Sequence[PricedLicense]:
    return tuple(
        r.unwrap()
        for r in (resolve(t, currency, rates) for t in LicenseTier)
        if isinstance(r, Success)
    )


def _price_row(
    row: RateRow, fallback_from: Currency | None
) -> Result[PricedLicense, PricingUnavailable]:
    percent = row.discount_percent or Decimal(0)
    list_amount = row.list_price
    offer_amount = row.offer_price

    if offer_amount is None and list_amount is not None:
        offer_amount = list_amount * (1 - percent / HUNDRED)
    elif list_amount is None and offer_amount is not None:
        if 0 < percent < HUNDRED:
            list_amount = offer_amount / (1 - percent / HUNDRED)
        else:
            list_amount = offer_amount

    assert list_amount is not None and offer_amount is not None

    offer = Money.of(offer_amount, row.currency)
    listed = Money.of(list_amount, row.currency)
    if not offer.is_positive():
        return Failure(
            PricingUnavailable(
                message="offer price must be positive",
                tier=row.tier.value,
                currency=row.currency.value,
            )
        )
    if offer.amount > listed.amount:
        listed = offer

    return Success(
        PricedLicense(
            tier=row.tier,
            title=row.title,
            list_price=listed,
            offer_price=offer,
            discount_percent=percent,
            fallback_from=fallback_from,
        )
    )
