from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from report_checkout.adapters.outbound.cached_rates import CachedRateSource
from report_checkout.adapters.outbound.ccavenue_gateway import CCAvenueGateway
from report_checkout.adapters.outbound.fake_gateways import (
    FakeRedirectGateway,
    FakeThreePhaseGateway,
)
from report_checkout.adapters.outbound.http_content import (
    HttpCustomPaymentSource,
    HttpRateSource,
)
from report_checkout.adapters.outbound.http_ledger import HttpOrderLedger
from report_checkout.adapters.outbound.in_memory_content import (
    InMemoryCustomPaymentSource,
    InMemoryRateSource,
)
from report_checkout.adapters.outbound.in_memory_ledger import InMemoryOrderLedger
from report_checkout.adapters.outbound.in_memory_sessions import InMemorySessionRepository
from report_checkout.adapters.outbound.in_memory_settlements import InMemorySettlementStore
from report_checkout.adapters.outbound.logging_events import LoggingEventPublisher
from report_checkout.adapters.outbound.paypal_gateway import PayPalGateway
from report_checkout.config import ConfigError, Settings
from report_checkout.core.domain.service.checkout_service import (
    CheckoutDeps,
    CheckoutService,
)
from report_checkout.core.domain.service.payment_service import (
    PaymentDeps,
    PaymentService,
)
from report_checkout.core.ports.outbound.content import CustomPaymentSource, RateSource
from report_checkout.core.ports.outbound.gateway import RedirectGateway, ThreePhaseGateway
from report_checkout.core.ports.outbound.ledger import OrderLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UseCases:
    checkout: CheckoutService
    payment: PaymentService
    settings: Settings


@dataclass(frozen=True)
class _Outbound:
    rates: RateSource
    custom_payments: CustomPaymentSource
    ledger: OrderLedger
    three_phase: ThreePhaseGateway
    redirect: RedirectGateway


def build_usecases(settings: Settings | None = None) -> UseCases:
    settings = settings or Settings.from_env()
    outbound = _fakes() if settings.use_fakes else _live(settings)

    sessions = InMemorySessionRepository(idle_seconds=settings.session_idle_seconds)
    rates = CachedRateSource(outbound.rates, ttl_seconds=settings.rate_cache_seconds)

    checkout = CheckoutService(
        CheckoutDeps(
            sessions=sessions,
            rates=rates,
            custom_payments=outbound.custom_payments,
        )
    )
    payment = PaymentService(
        PaymentDeps(
            sessions=sessions,
            ledger=outbound.ledger,
            three_phase=outbound.three_phase,
            redirect=outbound.redirect,
            settlements=InMemorySettlementStore(),
            events=LoggingEventPublisher(),
            public_url=settings.public_url,
        )
    )
    return UseCases(checkout=checkout, payment=payment, settings=settings)


def _fakes() -> _Outbound:
    logger.warning("CHECKOUT_USE_FAKES is set: ledger and gateways are in-memory fakes")
    return _Outbound(
        rates=InMemoryRateSource(),
        custom_payments=InMemoryCustomPaymentSource(),
        ledger=InMemoryOrderLedger(),
        three_phase=FakeThreePhaseGateway(),
        redirect=FakeRedirectGateway(),
    )


def _live(settings: Settings) -> _Outbound:
    missing = settings.missing_for_live()
    if missing:
        raise ConfigError(
            "missing configuration: " + ", ".join(missing) + " (set CHECKOUT_USE_FAKES=1 for a demo)"
        )
    assert settings.ledger_api_url and settings.paypal_client_id and settings.paypal_secret
    assert (
        settings.ccavenue_merchant_id
        and settings.ccavenue_access_code
        and settings.ccavenue_working_key
    )

    http = requests.Session()
    timeout = settings.http_timeout
    return _Outbound(
        rates=HttpRateSource(settings.content_api_url, timeout=timeout, session=http),
        custom_payments=HttpCustomPaymentSource(
            settings.content_api_url, timeout=timeout, session=http
        ),
        ledger=HttpOrderLedger(settings.ledger_api_url, timeout=timeout, session=http),
        three_phase=PayPalGateway(
            client_id=settings.paypal_client_id,
            secret=settings.paypal_secret,
            base_url=settings.paypal_base_url,
            timeout=timeout,
        ),
        redirect=CCAvenueGateway(
            merchant_id=settings.ccavenue_merchant_id,
            access_code=settings.ccavenue_access_code,
            working_key=settings.ccavenue_working_key,
            callback_base_url=settings.public_url,
        ),
    )
