from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests
from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import (
    CheckoutError,
    ContentUnavailable,
    CustomLinkNotFound,
    ValidationError,
)
from report_checkout.core.domain.model.money import Currency, Money, parse_amount
from report_checkout.core.domain.model.quote import CustomPricing
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.ports.outbound.content import CustomPaymentSource, RateSource

logger = logging.getLogger(__name__)


@dataclass
class HttpRateSource(RateSource):
    """``POST {base}/api/checkout/{language_id}``; prices live under ``checkout_page``."""

    base_url: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def load(self, language_id: int) -> Result[RateTable, CheckoutError]:
        url = f"{self.base_url.rstrip('/')}/api/checkout/{language_id}"
        try:
            resp = self.session.post(url, json={}, timeout=self.timeout)
        except requests.RequestException as e:
            return Failure(ContentUnavailable(f"content api unreachable: {e}"))
        if not resp.ok:
            logger.warning("checkout data for language %s: HTTP %s", language_id, resp.status_code)
            return Failure(ContentUnavailable(f"content api returned HTTP {resp.status_code}"))

        data = _json(resp)
        page = data.get("checkout_page")
        if not isinstance(page, Mapping):
            return Failure(ContentUnavailable("checkout payload has no checkout_page"))
        return Success(RateTable.from_payload(page))


@dataclass
class HttpCustomPaymentSource(CustomPaymentSource):
    """``GET {base}/api/custom-payment/{token}``."""

    base_url: str
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def fetch(self, token: str) -> Result[CustomPricing, CheckoutError]:
        url = f"{self.base_url.rstrip('/')}/api/custom-payment/{token}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            return Failure(ContentUnavailable(f"content api unreachable: {e}"))
        if resp.status_code == 404:
            return Failure(CustomLinkNotFound("payment link not found", token=token))
        if not resp.ok:
            return Failure(ContentUnavailable(f"content api returned HTTP {resp.status_code}"))

        body = _json(resp)
        if not body.get("status") or not isinstance(body.get("data"), Mapping):
            return Failure(CustomLinkNotFound("payment link is invalid or expired", token=token))
        return custom_pricing_from(token, body["data"])


def custom_pricing_from(
    token: str, data: Mapping[str, Any]
) -> Result[CustomPricing, CheckoutError]:
    try:
        currency = Currency.parse(str(data.get("currency") or "USD"))
    except ValueError:
        return Failure(
            ValidationError(f"unsupported currency {data.get('currency')!r}", ("currency",))
        )
    amount = parse_amount(data.get("amount"))
    if amount is None:
        return Failure(ValidationError("payment link has no amount", ("amount",)))

    def money(key: str) -> Money:
        return Money.of(parse_amount(data.get(key)) or 0, currency)

    return Success(
        CustomPricing(
            token=token,
            report_title=str(data.get("report_title") or ""),
            license_label=str(data.get("license_type") or "Single License"),
            amount=Money.of(amount, currency),
            cgst=money("cgst"),
            sgst=money("sgst"),
            igst=money("igst"),
        )
    )


def _json(resp: requests.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
