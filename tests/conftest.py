from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import MagicMock
from urllib.parse import urlencode

import pytest
from returns.result import Failure, Result, Success

from report_checkout.adapters.outbound.fake_gateways import (
    FakeRedirectGateway,
    FakeThreePhaseGateway,
)
from report_checkout.adapters.outbound.in_memory_content import (
    InMemoryCustomPaymentSource,
    InMemoryRateSource,
)
from report_checkout.adapters.outbound.in_memory_ledger import InMemoryOrderLedger
from report_checkout.adapters.outbound.in_memory_sessions import InMemorySessionRepository
from report_checkout.adapters.outbound.in_memory_settlements import InMemorySettlementStore
from report_checkout.core.domain.model.billing import BillingDetails
from report_checkout.core.domain.model.errors import PublishError
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.domain.model.session import CheckoutSession
from report_checkout.core.domain.service.checkout_service import (
    CheckoutDeps,
    CheckoutService,
)
from report_checkout.core.domain.service.payment_service import (
    PaymentDeps,
    PaymentService,
)
from report_checkout.core.ports.inbound.checkout import StartCheckoutCommand
from report_checkout.core.ports.outbound.events import CheckoutEvent

PUBLIC_URL = "https://shop.example.com"

CHECKOUT_PAGE: dict[str, Any] = {
    "currency_dropdown": "USD, INR, EUR",
    "single_license_heading": "Single User License",
    "team_license_heading": "Team License",
    "enterprise_license_heading": "Enterprise License",
    "single_license_actual_price_in_USD": "$4,999",
    "single_license_offer_price_in_USD": "3999",
    "team_license_actual_price_in_USD": "6999",
    "team_license_offer_price_in_USD": "5599",
    "enterprise_license_actual_price_in_USD": "9999",
    "enterprise_license_offer_price_in_USD": "7999",
    "single_license_actual_price_in_INR": "₹ 1,00,000",
    "single_license_offer_price_in_INR": "80,000",
    "team_license_actual_price_in_INR": "150000",
    "team_license_offer_price_in_INR": "120000",
    "single_license_igst_percent_in_INR": "18",
    "single_license_actual_price_in_EUR": "4500",
    "single_license_discount_percent": "20",
    "single_license_offer_code_SAVE10_in_USD": "3599",
    "single_license_offer_code_SAVE10_in_INR": "72000",
}


def us_billing(**overrides: Any) -> BillingDetails:
    fields: dict[str, Any] = dict(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        country="United States",
        phone_number="5550100",
        phone_code="+1",
    )
    fields.update(overrides)
    return BillingDetails(**fields)


def india_billing(**overrides: Any) -> BillingDetails:
    fields: dict[str, Any] = dict(
        first_name="Ravi",
        last_name="Kumar",
        email="ravi@example.in",
        country="India",
        phone_number="9800000000",
        phone_code="+91",
        street_address="12 MG Road",
        state="Karnataka",
        city="Bengaluru",
        postal_code="560001",
    )
    fields.update(overrides)
    return BillingDetails(**fields)


@dataclass
class RecordingEvents:
    fail: bool = False
    published: list[CheckoutEvent] = field(default_factory=list)

    def publish(self, event: CheckoutEvent) -> Result[None, PublishError]:
        if self.fail:
            return Failure(PublishError("publisher is down"))
        self.published.append(event)
        return Success(None)

    def names(self) -> list[str]:
        return [type(e).__name__ for e in self.published]


@dataclass
class Harness:
    sessions: InMemorySessionRepository
    rates: InMemoryRateSource
    custom: InMemoryCustomPaymentSource
    ledger: InMemoryOrderLedger
    paypal: FakeThreePhaseGateway
    redirect: FakeRedirectGateway
    settlements: InMemorySettlementStore
    events: RecordingEvents
    checkout: CheckoutService
    payment: PaymentService

    def start(self, currency: str | None = None) -> CheckoutSession:
        return self.checkout.start_session(
            StartCheckoutCommand(
                report_id="r-1042", report_title="Global Widget Market", currency=currency
            )
        ).unwrap()

    def to_payment_pending(
        self,
        tier: str = "single",
        currency: str | None = None,
        billing: BillingDetails | None = None,
        coupon: str | None = None,
    ) -> CheckoutSession:
        s = self.start(currency)
        self.checkout.choose_tier(s.session_id, tier).unwrap()
        if coupon:
            self.checkout.apply_coupon(s.session_id, coupon).unwrap()
        return self.checkout.submit_billing(s.session_id, billing or us_billing()).unwrap()


def build_harness(page: dict[str, Any] | None = None) -> Harness:
    sessions = InMemorySessionRepository()
    rates = InMemoryRateSource(default=dict(page or CHECKOUT_PAGE))
    custom = InMemoryCustomPaymentSource()
    ledger = InMemoryOrderLedger()
    paypal = FakeThreePhaseGateway()
    redirect = FakeRedirectGateway()
    settlements = InMemorySettlementStore()
    events = RecordingEvents()
    checkout = CheckoutService(
        CheckoutDeps(sessions=sessions, rates=rates, custom_payments=custom)
    )
    payment = PaymentService(
        PaymentDeps(
            sessions=sessions,
            ledger=ledger,
            three_phase=paypal,
            redirect=redirect,
            settlements=settlements,
            events=events,
            public_url=PUBLIC_URL,
        )
    )
    return Harness(
        sessions=sessions,
        rates=rates,
        custom=custom,
        ledger=ledger,
        paypal=paypal,
        redirect=redirect,
        settlements=settlements,
        events=events,
        checkout=checkout,
        payment=payment,
    )


@pytest.fixture
def page() -> dict[str, Any]:
    return dict(CHECKOUT_PAGE)


@pytest.fixture
def rates(page: dict[str, Any]) -> RateTable:
    return RateTable.from_payload(page)


@pytest.fixture
def harness() -> Harness:
    return build_harness()


def http_response(status: int = 200, body: Any = None) -> MagicMock:
    """Stand-in for ``requests.Response``; ``body=ValueError`` makes ``json()`` fail."""
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    if body is ValueError:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = {} if body is None else body
    return resp


def settlement_response(
    order_id: str, return_url: str | None = None, **overrides: str
) -> str:
    """Callback payload in the shape ``FakeRedirectGateway.decode_response`` reads."""
    fields = {
        "order_id": order_id,
        "order_status": "Success",
        "tracking_id": "TRK-1",
        "amount": "3999.00",
        "currency": "USD",
    }
    if return_url:
        fields["merchant_param1"] = return_url
    fields.update(overrides)
    return urlencode(fields)
