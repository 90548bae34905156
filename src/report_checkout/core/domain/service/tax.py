from __future__ import annotations

from decimal import Decimal

from report_checkout.core.domain.model.billing import Region
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.quote import (
    TAX_CGST_SGST,
    TAX_IGST,
    TaxBreakdown,
)
from report_checkout.core.domain.model.rates import RateRow

# GST defaults used when the rate source carries no rate for the row
DEFAULT_CGST_PERCENT = Decimal("9")
DEFAULT_SGST_PERCENT = Decimal("9")
DEFAULT_IGST_PERCENT = Decimal("18")


def compute_tax(
    subtotal: Money,
    region: Region | None,
    currency: Currency,
    rates: RateRow | None = None,
) -> TaxBreakdown:
    """
    GST applies to INR sales billed to India only. Maharashtra buyers pay
    IGST, every other Indian state pays CGST + SGST. Without a region yet
    (license step) the CGST + SGST rule is shown.
    """
    if currency is not Currency.INR:
        return TaxBreakdown.none(subtotal.currency)
    if region is not None and not region.is_india:
        return TaxBreakdown.none(subtotal.currency)

    zero = Money.zero(subtotal.currency)

    if region is not None and region.is_maharashtra:
        igst = _rate(rates.igst_rate if rates else None, DEFAULT_IGST_PERCENT)
        return TaxBreakdown(
            cgst=zero, sgst=zero, igst=subtotal.percent(igst), label=TAX_IGST
        )

    cgst = _rate(rates.cgst_rate if rates else None, DEFAULT_CGST_PERCENT)
    sgst = _rate(rates.sgst_rate if rates else None, DEFAULT_SGST_PERCENT)
    return TaxBreakdown(
        cgst=subtotal.percent(cgst),
        sgst=subtotal.percent(sgst),
        igst=zero,
        label=TAX_CGST_SGST,
    )


def _rate(configured: Decimal | None, default: Decimal) -> Decimal:
    if configured is None or configured <= 0:
        return default
    return configured
