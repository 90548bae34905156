from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Protocol

from returns.result import Result

from report_checkout.core.domain.model.errors import CheckoutError
from report_checkout.core.domain.model.session import CheckoutSession, Confirmation
from report_checkout.core.ports.outbound.gateway import RedirectForm


@dataclass(frozen=True)
class BeginPaymentCommand:
    session_id: str
    gateway: str
    return_url: str | None = None


@dataclass(frozen=True)
class PaymentBegun:
    session: CheckoutSession
    internal_order_id: str
    gateway_order_id: str | None = None
    redirect_form: RedirectForm | None = None


@dataclass(frozen=True)
class PaymentOutcome:
    session: CheckoutSession
    confirmation: Confirmation | None = None
    reconciled: bool = True


@dataclass(frozen=True)
class RedirectReturn:
    session_id: str
    status: str | None = None
    order_id: str | None = None
    transaction_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CreateOrderCommand:
    report_id: str
    license_type: str
    currency: str
    amount: Decimal
    internal_order_id: str


@dataclass(frozen=True)
class VerifyOrderCommand:
    gateway_order_id: str
    report_id: str
    license_type: str
    amount: Decimal
    currency: str
    internal_order_id: str | None = None


@dataclass(frozen=True)
class VerifiedOrder:
    gateway_order_id: str
    capture_id: str | None
    payer: Mapping[str, Any] = field(default_factory=dict)


class PaymentUseCase(Protocol):
    def begin_payment(
        self, command: BeginPaymentCommand
    ) -> Result[PaymentBegun, CheckoutError]: ...

    def approve_payment(
        self, session_id: str, gateway_order_id: str
    ) -> Result[PaymentOutcome, CheckoutError]: ...

    def cancel_payment(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...

    def retry_payment(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...

    def handle_redirect_callback(self, enc_response: str) -> Result[str, CheckoutError]: ...

    def handle_redirect_return(
        self, command: RedirectReturn
    ) -> Result[PaymentOutcome, CheckoutError]: ...

    def reconcile_redirect(self, session_id: str) -> Result[PaymentOutcome, CheckoutError]: ...

    def create_gateway_order(
        self, command: CreateOrderCommand
    ) -> Result[str, CheckoutError]: ...

    def verify_order(
        self, command: VerifyOrderCommand
    ) -> Result[VerifiedOrder, CheckoutError]: ...
