from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import CheckoutError, CustomLinkNotFound
from report_checkout.core.domain.model.quote import CustomPricing
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.ports.outbound.content import CustomPaymentSource, RateSource

# Demo pricing used when running against fakes.
DEMO_CHECKOUT_PAGE: Dict[str, Any] = {
    "currency_dropdown": "USD,INR,EUR,GBP",
    "single_license_heading": "Single License",
    "team_license_heading": "Team License",
    "enterprise_license_heading": "Enterprise License",
    "single_license_actual_price_in_USD": "4,999",
    "single_license_offer_price_in_USD": "3,999",
    "team_license_actual_price_in_USD": "6,999",
    "team_license_offer_price_in_USD": "5,599",
    "enterprise_license_actual_price_in_USD": "9,999",
    "enterprise_license_offer_price_in_USD": "7,999",
    "single_license_actual_price_in_INR": "₹ 4,15,000",
    "single_license_offer_price_in_INR": "₹ 3,32,000",
    "team_license_actual_price_in_INR": "₹ 5,81,000",
    "team_license_offer_price_in_INR": "₹ 4,65,000",
    "enterprise_license_actual_price_in_INR": "₹ 8,30,000",
    "enterprise_license_offer_price_in_INR": "₹ 6,64,000",
    "single_license_actual_price_in_EUR": "4,599",
    "single_license_discount_percent": "20",
    "single_license_offer_code_WELCOME10_in_USD": "3,599",
}


@dataclass
class InMemoryRateSource(RateSource):
    """One checkout payload per language id; unknown ids fall back to ``default``."""

    default: Mapping[str, Any] = field(default_factory=lambda: dict(DEMO_CHECKOUT_PAGE))
    by_language: Dict[int, Mapping[str, Any]] = field(default_factory=dict)
    loads: int = 0

    def load(self, language_id: int) -> Result[RateTable, CheckoutError]:
        self.loads += 1
        return Success(RateTable.from_payload(self.by_language.get(language_id, self.default)))


@dataclass
class InMemoryCustomPaymentSource(CustomPaymentSource):
    links: Dict[str, CustomPricing] = field(default_factory=dict)

    def fetch(self, token: str) -> Result[CustomPricing, CheckoutError]:
        found = self.links.get(token)
        if found is None:
            return Failure(CustomLinkNotFound("payment link not found", token=token))
        return Success(found)
