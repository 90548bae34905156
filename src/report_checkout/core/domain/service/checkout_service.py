from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
from uuid import uuid4

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.billing import BillingDetails, Region
from report_checkout.core.domain.model.errors import CheckoutError, ValidationError
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.domain.model.session import CheckoutSession, ReportRef
from report_checkout.core.domain.service.pricing import license_options
from report_checkout.core.domain.service.state_machine import (
    CheckoutStateMachine,
    SessionResult,
)
from report_checkout.core.ports.inbound.checkout import (
    CheckoutUseCase,
    LicenseOptionsView,
    StartCheckoutCommand,
    StartCustomCheckoutCommand,
)
from report_checkout.core.ports.outbound.content import CustomPaymentSource, RateSource
from report_checkout.core.ports.outbound.sessions import SessionRepository


def _new_session_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class CheckoutDeps:
    sessions: SessionRepository
    rates: RateSource
    custom_payments: CustomPaymentSource
    machine: CheckoutStateMachine = field(default_factory=CheckoutStateMachine)
    new_session_id: Callable[[], str] = _new_session_id


@dataclass(frozen=True)
class CheckoutService(CheckoutUseCase):
    deps: CheckoutDeps

    def start_session(
        self, command: StartCheckoutCommand
    ) -> Result[CheckoutSession, CheckoutError]:
        if not command.report_id.strip():
            return Failure(ValidationError("report_id is required", ("report_id",)))
        currency = None
        if command.currency:
            parsed = _parse_currency(command.currency)
            if isinstance(parsed, Failure):
                return parsed
            currency = parsed.unwrap()

        report = ReportRef(report_id=command.report_id, title=command.report_title)
        return (
            self.deps.rates.load(command.language_id)
            .bind(
                lambda rates: self.deps.machine.start(
                    self.deps.new_session_id(),
                    report,
                    command.language_id,
                    rates,
                    currency=currency,
                )
            )
            .bind(self.deps.sessions.save)
        )

    def start_custom_session(
        self, command: StartCustomCheckoutCommand
    ) -> Result[CheckoutSession, CheckoutError]:
        if not command.token.strip():
            return Failure(ValidationError("token is required", ("token",)))
        return (
            self.deps.custom_payments.fetch(command.token)
            .bind(
                lambda custom: self.deps.machine.start_custom(
                    self.deps.new_session_id(),
                    ReportRef(report_id=f"custom-{custom.token}", title=custom.report_title),
                    command.language_id,
                    custom,
                )
            )
            .bind(self.deps.sessions.save)
        )

    def get_session(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        return self.deps.sessions.get(session_id)

    def discard_session(self, session_id: str) -> Result[None, CheckoutError]:
        return self.deps.sessions.delete(session_id)

    def license_options(self, session_id: str) -> Result[LicenseOptionsView, CheckoutError]:
        def view(s: CheckoutSession) -> Result[LicenseOptionsView, CheckoutError]:
            return self.deps.rates.load(s.language_id).map(
                lambda rates: LicenseOptionsView(
                    currency=s.currency.value,
                    currencies=tuple(c.value for c in rates.currencies),
                    options=license_options(s.currency, rates),
                )
            )

        return self.deps.sessions.get(session_id).bind(view)

    def choose_tier(self, session_id: str, tier: str) -> Result[CheckoutSession, CheckoutError]:
        try:
            chosen = LicenseTier.parse(tier)
        except ValueError:
            return Failure(ValidationError(f"unknown license tier {tier!r}", ("tier",)))
        return self._step(
            session_id, lambda s, rates: self.deps.machine.choose_tier(s, chosen, rates)
        )

    def change_currency(
        self, session_id: str, currency: str
    ) -> Result[CheckoutSession, CheckoutError]:
        parsed = _parse_currency(currency)
        if isinstance(parsed, Failure):
            return parsed
        cur = parsed.unwrap()
        return self._step(
            session_id, lambda s, rates: self.deps.machine.change_currency(s, cur, rates)
        )

    def apply_coupon(self, session_id: str, code: str) -> Result[CheckoutSession, CheckoutError]:
        return self._step(
            session_id, lambda s, rates: self.deps.machine.apply_coupon(s, code, rates)
        )

    def remove_coupon(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        return self._step(
            session_id, lambda s, rates: self.deps.machine.remove_coupon(s, rates)
        )

    def set_region(self, session_id: str, region: Region) -> Result[CheckoutSession, CheckoutError]:
        return self._step(
            session_id, lambda s, rates: self.deps.machine.set_region(s, region, rates)
        )

    def submit_billing(
        self, session_id: str, billing: BillingDetails
    ) -> Result[CheckoutSession, CheckoutError]:
        return self._step(
            session_id,
            lambda s, rates: self.deps.machine.submit_billing(s, billing, rates),
        )

    def back(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        return self._step(session_id, lambda s, _: self.deps.machine.back(s))

    # ---- helpers -----------------------------------------------------------

    def _step(
        self,
        session_id: str,
        transition: Callable[[CheckoutSession, RateTable], SessionResult],
    ) -> Result[CheckoutSession, CheckoutError]:
        """load -> transition -> save; a failed transition leaves the stored session as is."""

        def run(s: CheckoutSession) -> SessionResult:
            return self.deps.rates.load(s.language_id).bind(lambda rates: transition(s, rates))

        return self.deps.sessions.get(session_id).bind(run).bind(self.deps.sessions.save)


def _parse_currency(code: str) -> Result[Currency, CheckoutError]:
    try:
        return Success(Currency.parse(code))
    except ValueError:
        return Failure(ValidationError(f"unsupported currency {code!r}", ("currency",)))
