from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from returns.result import Result

from report_checkout.core.domain.model.billing import BillingDetails, Region
from report_checkout.core.domain.model.errors import CheckoutError
from report_checkout.core.domain.model.quote import PricedLicense
from report_checkout.core.domain.model.session import CheckoutSession


@dataclass(frozen=True)
class StartCheckoutCommand:
    report_id: str
    report_title: str
    language_id: int = 1
    currency: str | None = None


@dataclass(frozen=True)
class StartCustomCheckoutCommand:
    token: str
    language_id: int = 1


@dataclass(frozen=True)
class LicenseOptionsView:
    currency: str
    currencies: Sequence[str]
    options: Sequence[PricedLicense]


class CheckoutUseCase(Protocol):
    def start_session(
        self, command: StartCheckoutCommand
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def start_custom_session(
        self, command: StartCustomCheckoutCommand
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def get_session(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...

    def discard_session(self, session_id: str) -> Result[None, CheckoutError]: ...

    def license_options(
        self, session_id: str
    ) -> Result[LicenseOptionsView, CheckoutError]: ...

    def choose_tier(
        self, session_id: str, tier: str
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def change_currency(
        self, session_id: str, currency: str
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def apply_coupon(
        self, session_id: str, code: str
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def remove_coupon(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...

    def set_region(
        self, session_id: str, region: Region
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def submit_billing(
        self, session_id: str, billing: BillingDetails
    ) -> Result[CheckoutSession, CheckoutError]: ...

    def back(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...
