from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import parse_qsl, urlencode

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import GatewayError, GatewayNetworkError
from report_checkout.core.ports.outbound.gateway import (
    STATUS_COMPLETED,
    CreateGatewayOrder,
    GatewayOrderSnapshot,
    RedirectForm,
    RedirectGateway,
    RedirectPaymentRequest,
    RedirectSettlement,
    ThreePhaseGateway,
)


@dataclass
class FakeThreePhaseGateway(ThreePhaseGateway):
    """
    In-process stand-in for the hosted three-phase gateway.

    ``captured_amount`` overrides what the gateway reports back so tests can
    simulate a buyer paying a different amount than was quoted.
    """

    create_error: GatewayError | None = None
    capture_error: GatewayError | None = None
    capture_status: str = STATUS_COMPLETED
    captured_amount: str | None = None
    orders: Dict[str, CreateGatewayOrder] = field(default_factory=dict)
    _captured: Dict[str, GatewayOrderSnapshot] = field(default_factory=dict)

    def create_order(self, order: CreateGatewayOrder) -> Result[str, GatewayError]:
        if self.create_error is not None:
            return Failure(self.create_error)
        gateway_order_id = f"PAY-{len(self.orders) + 1:04d}"
        self.orders[gateway_order_id] = order
        return Success(gateway_order_id)

    def capture_order(self, gateway_order_id: str) -> Result[GatewayOrderSnapshot, GatewayError]:
        if self.capture_error is not None:
            return Failure(self.capture_error)
        order = self.orders.get(gateway_order_id)
        if order is None:
            return Failure(GatewayNetworkError(f"unknown order {gateway_order_id}"))
        snap = GatewayOrderSnapshot(
            gateway_order_id=gateway_order_id,
            status=self.capture_status,
            amount=self.captured_amount or order.amount.gateway_value(),
            currency=order.amount.currency.value,
            capture_id=f"CAP-{gateway_order_id}",
            payer={"email_address": "buyer@example.com"},
        )
        self._captured[gateway_order_id] = snap
        return Success(snap)

    def fetch_order(self, gateway_order_id: str) -> Result[GatewayOrderSnapshot, GatewayError]:
        snap = self._captured.get(gateway_order_id)
        if snap is not None:
            return Success(snap)
        order = self.orders.get(gateway_order_id)
        if order is None:
            return Failure(GatewayNetworkError(f"unknown order {gateway_order_id}"))
        return Success(
            GatewayOrderSnapshot(
                gateway_order_id=gateway_order_id,
                status="APPROVED",
                amount=order.amount.gateway_value(),
                currency=order.amount.currency.value,
            )
        )


@dataclass
class FakeRedirectGateway(RedirectGateway):
    """Redirect gateway double; the "encrypted" payload is a plain query string."""

    action: str = "https://gateway.invalid/transaction"
    access_code: str = "FAKE-ACCESS"
    build_error: GatewayError | None = None

    def build_request(self, request: RedirectPaymentRequest) -> Result[RedirectForm, GatewayError]:
        if self.build_error is not None:
            return Failure(self.build_error)
        payload = urlencode(
            {
                "order_id": request.internal_order_id,
                "amount": request.amount.gateway_value(),
                "currency": request.amount.currency.value,
                "merchant_param1": request.return_url,
            }
        )
        return Success(
            RedirectForm(action=self.action, enc_request=payload, access_code=self.access_code)
        )

    def decode_response(self, enc_response: str) -> Result[RedirectSettlement, GatewayError]:
        fields = dict(parse_qsl(enc_response))
        if "order_id" not in fields:
            return Failure(GatewayNetworkError("response carries no order_id"))
        return Success(
            RedirectSettlement(
                internal_order_id=fields["order_id"],
                order_status=fields.get("order_status", ""),
                tracking_id=fields.get("tracking_id", ""),
                amount=fields.get("amount", ""),
                currency=fields.get("currency", ""),
                return_url=fields.get("merchant_param1") or None,
            )
        )
