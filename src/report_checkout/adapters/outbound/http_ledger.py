from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests
from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import LedgerCreateError, LedgerUpdateError
from report_checkout.core.domain.model.session import LedgerRef
from report_checkout.core.ports.outbound.ledger import (
    LedgerCreateRequest,
    LedgerUpdateRequest,
    LedgerUpdateResult,
    OrderLedger,
)

logger = logging.getLogger(__name__)

CREATE_PATH = "/customer-orders"
UPDATE_PATH = "/customer-orders/update"


@dataclass
class HttpOrderLedger(OrderLedger):
    """
    Order ledger over HTTP. Both calls carry ``Idempotency-Key`` set to the
    attempt's internal order id.
    """

    base_url: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def create_order(
        self, request: LedgerCreateRequest
    ) -> Result[LedgerRef, LedgerCreateError]:
        body = create_payload(request)
        try:
            resp = self.session.post(
                self._url(CREATE_PATH),
                json=body,
                headers={"Idempotency-Key": request.internal_order_id},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return Failure(LedgerCreateError(f"ledger unreachable: {e}"))

        data = _json(resp)
        if not resp.ok or not data.get("success"):
            logger.warning(
                "ledger create rejected for %s: HTTP %s",
                request.internal_order_id,
                resp.status_code,
            )
            return Failure(
                LedgerCreateError(str(data.get("message") or f"ledger returned HTTP {resp.status_code}"))
            )
        user_id = data.get("user_id")
        if user_id in (None, ""):
            return Failure(LedgerCreateError("ledger response carries no user_id"))
        return Success(
            LedgerRef(
                user_id=str(user_id),
                language_id=int(data.get("language_id") or request.language_id),
            )
        )

    def update_order(
        self, request: LedgerUpdateRequest
    ) -> Result[LedgerUpdateResult, LedgerUpdateError]:
        try:
            resp = self.session.post(
                self._url(UPDATE_PATH),
                json=update_payload(request),
                headers={"Idempotency-Key": request.internal_order_id},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return Failure(LedgerUpdateError(f"ledger unreachable: {e}"))

        data = _json(resp)
        if not resp.ok or data.get("success") is False:
            return Failure(
                LedgerUpdateError(str(data.get("message") or f"ledger returned HTTP {resp.status_code}"))
            )
        return Success(LedgerUpdateResult(invoice_file=data.get("invoice_file") or None))

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path


def create_payload(request: LedgerCreateRequest) -> dict[str, Any]:
    b, q = request.billing, request.quote
    body: dict[str, Any] = {
        "language_id": request.language_id,
        "first_name": b.first_name,
        "last_name": b.last_name,
        "email": b.email,
        "residence": b.country,
        "phone": b.phone,
        "license_type": q.license_title,
        "discount": q.discount.gateway_value(),
        "subtotal": q.subtotal.gateway_value(),
        "cgst": q.tax.cgst.gateway_value(),
        "sgst": q.tax.sgst.gateway_value(),
        "igst": q.tax.igst.gateway_value(),
        "total": q.total.gateway_value(),
    }
    optional = {
        "first_line_add": b.street_address,
        "state_province": b.state,
        "city": b.city,
        "postal_zipcode": b.postal_code,
        "offer_code": q.coupon.code if q.coupon else None,
    }
    body.update({k: v for k, v in optional.items() if v})
    return body


def update_payload(request: LedgerUpdateRequest) -> dict[str, Any]:
    return {
        "user_id": request.ref.user_id,
        "language_id": request.ref.language_id,
        "order_id": request.internal_order_id,
        "transaction_id": request.transaction_id,
        "payment_method": request.payment_method,
        "purchase_date": request.purchase_date.isoformat(),
        "report_title": request.report_title,
        "currency": request.quote.currency.value,
        "payment_status": request.payment_status,
    }


def _json(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
