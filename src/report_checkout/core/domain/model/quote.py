from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, Money

TAX_NOT_APPLICABLE = "Not Applicable"
TAX_IGST = "IGST"
TAX_CGST_SGST = "CGST+SGST"


@dataclass(frozen=True)
class PricedLicense:
    tier: LicenseTier
    title: str
    list_price: Money
    offer_price: Money
    discount_percent: Decimal
    fallback_from: Currency | None = None

    @property
    def discount(self) -> Money:
        return self.list_price - self.offer_price


@dataclass(frozen=True)
class TaxBreakdown:
    cgst: Money
    sgst: Money
    igst: Money
    label: str

    @property
    def total(self) -> Money:
        return self.cgst + self.sgst + self.igst

    @staticmethod
    def none(currency: Currency) -> "TaxBreakdown":
        zero = Money.zero(currency)
        return TaxBreakdown(cgst=zero, sgst=zero, igst=zero, label=TAX_NOT_APPLICABLE)


@dataclass(frozen=True)
class Coupon:
    code: str
    tier: LicenseTier
    currency: Currency
    resulting_total: Money
    discount_amount: Money


@dataclass(frozen=True)
class Quote:
    tier: LicenseTier
    license_title: str
    requested_currency: Currency
    list_price: Money
    offer_price: Money
    discount: Money
    subtotal: Money
    tax: TaxBreakdown
    total: Money
    coupon: Coupon | None = None

    @property
    def currency(self) -> Currency:
        return self.total.currency

    @property
    def priced_in_fallback(self) -> bool:
        return self.currency is not self.requested_currency

    @property
    def coupon_applied(self) -> bool:
        return self.coupon is not None


@dataclass(frozen=True)
class CustomPricing:
    """Fixed pricing carried by a custom payment link."""

    token: str
    report_title: str
    license_label: str
    amount: Money
    cgst: Money
    sgst: Money
    igst: Money

    @property
    def tier(self) -> LicenseTier:
        return LicenseTier.from_label(self.license_label)
