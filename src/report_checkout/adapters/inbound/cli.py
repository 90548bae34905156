from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from returns.result import Success

from report_checkout.core.domain.model.billing import Region
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency
from report_checkout.core.domain.model.quote import Quote
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.domain.service.quote import build_quote


def run_quote(
    rates_path: str,
    tier: str,
    currency: str,
    country: str | None = None,
    state: str | None = None,
    coupon: str | None = None,
) -> int:
    """
    Prints the quote for one license as JSON. ``rates_path`` is a checkout
    payload as served by the content API (either the whole response or its
    ``checkout_page`` object).
    """
    try:
        payload = json.loads(Path(rates_path).read_text(encoding="utf-8"))
        page = payload.get("checkout_page", payload)
        rates = RateTable.from_payload(page)
        chosen_tier = LicenseTier.parse(tier)
        chosen_currency = Currency.parse(currency)
    except (OSError, ValueError, AttributeError) as e:
        print(f"invalid_input: {e}")
        return 2

    region = Region(country=country, state=state) if country else None
    if region is not None and region.is_india:
        chosen_currency = Currency.INR
    result = build_quote(
        chosen_tier,
        chosen_currency,
        rates,
        region=region,
        coupon_code=coupon,
        require_exact_currency=bool(region and region.is_india),
    )

    if isinstance(result, Success):
        outcome = result.unwrap()
        out = _quote_json(outcome.quote)
        if outcome.coupon_error is not None:
            out["coupon_error"] = str(outcome.coupon_error)
        print(json.dumps(out, ensure_ascii=False, indent=2))
        return 0

    print("[ng]", str(result.failure()))
    return 1


def _quote_json(q: Quote) -> dict[str, Any]:
    return {
        "tier": q.tier.value,
        "license_title": q.license_title,
        "currency": q.currency.value,
        "priced_in_fallback": q.priced_in_fallback,
        "list_price": q.list_price.gateway_value(),
        "offer_price": q.offer_price.gateway_value(),
        "discount": q.discount.gateway_value(),
        "subtotal": q.subtotal.gateway_value(),
        "tax": {
            "label": q.tax.label,
            "cgst": q.tax.cgst.gateway_value(),
            "sgst": q.tax.sgst.gateway_value(),
            "igst": q.tax.igst.gateway_value(),
        },
        "total": q.total.gateway_value(),
        "coupon": q.coupon.code if q.coupon else None,
    }
