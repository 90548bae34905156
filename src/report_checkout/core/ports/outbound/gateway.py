from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from returns.result import Result

from report_checkout.core.domain.model.billing import BillingDetails
from report_checkout.core.domain.model.errors import GatewayError
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Money

STATUS_COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class CreateGatewayOrder:
    report_id: str
    tier: LicenseTier
    amount: Money
    internal_order_id: str


@dataclass(frozen=True)
class GatewayOrderSnapshot:
    gateway_order_id: str
    status: str
    amount: str
    currency: str
    capture_id: str | None = None
    payer: Mapping[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED


class ThreePhaseGateway(Protocol):
    """create -> (buyer approves in hosted UI) -> capture -> server-side fetch"""

    def create_order(self, order: CreateGatewayOrder) -> Result[str, GatewayError]: ...

    def capture_order(
        self, gateway_order_id: str
    ) -> Result[GatewayOrderSnapshot, GatewayError]: ...

    def fetch_order(
        self, gateway_order_id: str
    ) -> Result[GatewayOrderSnapshot, GatewayError]: ...


@dataclass(frozen=True)
class RedirectPaymentRequest:
    internal_order_id: str
    amount: Money
    billing: BillingDetails
    return_url: str


@dataclass(frozen=True)
class RedirectForm:
    action: str
    enc_request: str
    access_code: str


@dataclass(frozen=True)
class RedirectSettlement:
    """Server-side view of a redirect gateway result, decoded from its callback."""

    internal_order_id: str
    order_status: str
    tracking_id: str
    amount: str
    currency: str
    return_url: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.order_status == "Success"


class RedirectGateway(Protocol):
    def build_request(
        self, request: RedirectPaymentRequest
    ) -> Result[RedirectForm, GatewayError]: ...

    def decode_response(
        self, enc_response: str
    ) -> Result[RedirectSettlement, GatewayError]: ...
