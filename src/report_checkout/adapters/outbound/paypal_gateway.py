from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests
from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import (
    GatewayAuthError,
    GatewayDeclined,
    GatewayError,
    GatewayNetworkError,
)
from report_checkout.core.ports.outbound.gateway import (
    CreateGatewayOrder,
    GatewayOrderSnapshot,
    ThreePhaseGateway,
)

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://api-m.sandbox.paypal.com"
LIVE_URL = "https://api-m.paypal.com"

# refresh a little before PayPal expires the token
_TOKEN_SLACK_SECONDS = 60


@dataclass
class PayPalGateway(ThreePhaseGateway):
    client_id: str
    secret: str
    base_url: str = SANDBOX_URL
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)
    _token: str | None = field(default=None, repr=False)
    _token_expires_at: float = field(default=0.0, repr=False)

    def create_order(self, order: CreateGatewayOrder) -> Result[str, GatewayError]:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": f"{order.report_id}_{order.tier.value}",
                    "custom_id": order.internal_order_id,
                    "amount": {
                        "currency_code": order.amount.currency.value,
                        "value": order.amount.gateway_value(),
                    },
                }
            ],
        }
        return self._call(
            "POST",
            "/v2/checkout/orders",
            json=body,
            request_id=order.internal_order_id,
        ).bind(_order_id)

    def capture_order(self, gateway_order_id: str) -> Result[GatewayOrderSnapshot, GatewayError]:
        return self._call(
            "POST",
            f"/v2/checkout/orders/{gateway_order_id}/capture",
            json={},
            request_id=f"capture-{gateway_order_id}",
        ).map(snapshot_from_order)

    def fetch_order(self, gateway_order_id: str) -> Result[GatewayOrderSnapshot, GatewayError]:
        return self._call("GET", f"/v2/checkout/orders/{gateway_order_id}").map(
            snapshot_from_order
        )

    # ---- transport ---------------------------------------------------------

    def _call(
        self,
        method: str,
        path: str,
        json: Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> Result[dict[str, Any], GatewayError]:
        token = self._access_token()
        if isinstance(token, Failure):
            return token

        headers = {
            "Authorization": f"Bearer {token.unwrap()}",
            "Content-Type": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        try:
            resp = self.session.request(
                method,
                self._url(path),
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return Failure(GatewayNetworkError(f"paypal unreachable: {e}"))

        data = _json(resp)
        if resp.ok:
            return Success(data)
        logger.warning("paypal %s %s -> HTTP %s", method, path, resp.status_code)
        if resp.status_code == 401:
            self._token = None
            return Failure(GatewayAuthError("paypal rejected the access token"))
        if method == "POST" and 400 <= resp.status_code < 500:
            return Failure(
                GatewayDeclined(
                    str(data.get("message") or "paypal rejected the request"),
                    status=str(data.get("name") or resp.status_code),
                )
            )
        return Failure(GatewayNetworkError(f"paypal returned HTTP {resp.status_code}"))

    def _access_token(self) -> Result[str, GatewayError]:
        if self._token and time.monotonic() < self._token_expires_at:
            return Success(self._token)
        try:
            resp = self.session.post(
                self._url("/v1/oauth2/token"),
                auth=(self.client_id, self.secret),
                data={"grant_type": "client_credentials"},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return Failure(GatewayNetworkError(f"paypal unreachable: {e}"))
        if not resp.ok:
            logger.warning("paypal auth failed: HTTP %s", resp.status_code)
            return Failure(GatewayAuthError("failed to authenticate with paypal"))

        data = _json(resp)
        token = data.get("access_token")
        if not token:
            return Failure(GatewayAuthError("paypal returned no access token"))
        expires_in = int(data.get("expires_in") or 0)
        self._token = str(token)
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_SLACK_SECONDS, 0)
        return Success(self._token)

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path


def snapshot_from_order(data: Mapping[str, Any]) -> GatewayOrderSnapshot:
    """
    Reads status, amount and capture id from a v2 order body. Capture
    responses carry the amount on the capture rather than the purchase unit.
    """
    units = data.get("purchase_units") or [{}]
    unit = units[0] or {}
    captures = ((unit.get("payments") or {}).get("captures")) or []
    capture = captures[0] if captures else {}
    amount = unit.get("amount") or capture.get("amount") or {}
    return GatewayOrderSnapshot(
        gateway_order_id=str(data.get("id", "")),
        status=str(data.get("status", "")),
        amount=str(amount.get("value", "")),
        currency=str(amount.get("currency_code", "")),
        capture_id=capture.get("id"),
        payer=data.get("payer") or {},
    )


def _order_id(data: Mapping[str, Any]) -> Result[str, GatewayError]:
    order_id = data.get("id")
    if not order_id:
        return Failure(GatewayNetworkError("paypal returned no order id"))
    return Success(str(order_id))


def _json(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
