from __future__ import annotations

from typing import Protocol

from returns.result import Result

from report_checkout.core.domain.model.errors import CheckoutError
from report_checkout.core.domain.model.quote import CustomPricing
from report_checkout.core.domain.model.rates import RateTable


class RateSource(Protocol):
    """Checkout pricing payload from the content API, per UI language."""

    def load(self, language_id: int) -> Result[RateTable, CheckoutError]: ...


class CustomPaymentSource(Protocol):
    """Pre-priced custom payment links issued by the sales team."""

    def fetch(self, token: str) -> Result[CustomPricing, CheckoutError]: ...
