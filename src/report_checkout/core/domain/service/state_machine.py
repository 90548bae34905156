from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.billing import BillingDetails, Region
from report_checkout.core.domain.model.errors import (
    AttemptInProgress,
    CheckoutError,
    FailureReason,
    InvalidTransition,
    ValidationError,
)
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency
from report_checkout.core.domain.model.quote import CustomPricing
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.domain.model.session import (
    CheckoutSession,
    Confirmation,
    FailureInfo,
    LedgerRef,
    OrderState,
    PaymentAttempt,
    ReportRef,
)
from report_checkout.core.domain.service.coupon import apply_coupon
from report_checkout.core.domain.service.quote import (
    build_quote,
    quote_from_custom_pricing,
)
from report_checkout.core.domain.service.validation import validate_billing

logger = logging.getLogger(__name__)

SessionResult = Result[CheckoutSession, CheckoutError]

_ATTEMPT_STATES = (OrderState.PAYMENT_PENDING, OrderState.CAPTURED)


@dataclass(frozen=True)
class CheckoutStateMachine:
    """
    Owns the step sequence::

        SELECTING_LICENSE -> BILLING_ENTRY -> PAYMENT_PENDING
            -> [CAPTURED ->] VERIFIED | FAILED -> (retry) PAYMENT_PENDING

    Every method is a pure transition: it returns a new session or the
    reason the event is not allowed. Quotes are rebuilt from scratch on
    every tier, currency, coupon or region change.
    """

    # ---- session creation --------------------------------------------------

    def start(
        self,
        session_id: str,
        report: ReportRef,
        language_id: int,
        rates: RateTable,
        currency: Currency | None = None,
    ) -> SessionResult:
        chosen = currency or rates.currencies[0]
        if chosen not in rates.currencies:
            return Failure(
                ValidationError(f"currency {chosen.value} is not offered", ("currency",))
            )
        return Success(
            CheckoutSession(
                session_id=session_id,
                report=report,
                language_id=language_id,
                state=OrderState.SELECTING_LICENSE,
                currency=chosen,
            )
        )

    def start_custom(
        self,
        session_id: str,
        report: ReportRef,
        language_id: int,
        custom: CustomPricing,
    ) -> SessionResult:
        if not custom.amount.is_positive():
            return Failure(ValidationError("custom payment amount must be > 0", ("amount",)))
        return Success(
            CheckoutSession(
                session_id=session_id,
                report=report,
                language_id=language_id,
                state=OrderState.BILLING_ENTRY,
                currency=custom.amount.currency,
                tier=custom.tier,
                currency_locked=True,
                custom_pricing=custom,
                quote=quote_from_custom_pricing(custom),
            )
        )

    # ---- license / pricing steps ------------------------------------------

    def choose_tier(
        self, s: CheckoutSession, tier: LicenseTier, rates: RateTable
    ) -> SessionResult:
        if s.state is OrderState.BILLING_ENTRY:
            return self.change_tier(s, tier, rates)
        guard = _require(s, "choose_tier", OrderState.SELECTING_LICENSE)
        if guard is not None:
            return guard
        return self._requote(
            replace(s, tier=tier, coupon_code=None, coupon_error=None), rates
        ).map(lambda n: self._moved(n, OrderState.BILLING_ENTRY, "choose_tier"))

    def change_tier(
        self, s: CheckoutSession, tier: LicenseTier, rates: RateTable
    ) -> SessionResult:
        guard = _require(s, "change_tier", OrderState.BILLING_ENTRY) or _not_custom(s)
        if guard is not None:
            return guard
        return self._requote(
            replace(s, tier=tier, coupon_code=None, coupon_error=None), rates
        )

    def change_currency(
        self, s: CheckoutSession, currency: Currency, rates: RateTable
    ) -> SessionResult:
        guard = (
            _require(s, "change_currency", OrderState.SELECTING_LICENSE, OrderState.BILLING_ENTRY)
            or _not_custom(s)
        )
        if guard is not None:
            return guard
        if s.currency_locked and currency is not s.currency:
            return Failure(
                ValidationError(
                    f"currency is locked to {s.currency.value} for this region",
                    ("currency",),
                )
            )
        if currency not in rates.currencies:
            return Failure(
                ValidationError(f"currency {currency.value} is not offered", ("currency",))
            )
        return self._requote(
            replace(s, currency=currency, coupon_code=None, coupon_error=None), rates
        )

    def apply_coupon(
        self, s: CheckoutSession, code: str, rates: RateTable
    ) -> SessionResult:
        guard = _require(s, "apply_coupon", OrderState.BILLING_ENTRY) or _not_custom(s)
        if guard is not None:
            return guard
        if s.tier is None or s.quote is None:
            return Failure(InvalidTransition("no license chosen", s.state.value, "apply_coupon"))

        offer = s.quote.offer_price
        checked = apply_coupon(code, s.tier, offer.currency, offer, rates)
        if isinstance(checked, Failure):
            return checked
        return self._requote(
            replace(s, coupon_code=checked.unwrap().code, coupon_error=None), rates
        )

    def remove_coupon(self, s: CheckoutSession, rates: RateTable) -> SessionResult:
        guard = _require(s, "remove_coupon", OrderState.BILLING_ENTRY) or _not_custom(s)
        if guard is not None:
            return guard
        return self._requote(replace(s, coupon_code=None, coupon_error=None), rates)

    def set_region(
        self, s: CheckoutSession, region: Region, rates: RateTable
    ) -> SessionResult:
        guard = _require(s, "set_region", OrderState.BILLING_ENTRY)
        if guard is not None:
            return guard
        if s.is_custom:
            return Success(_with_custom_region(s, region))
        return self._requote(_with_region(s, region), rates)

    def submit_billing(
        self, s: CheckoutSession, billing: BillingDetails, rates: RateTable
    ) -> SessionResult:
        guard = _require(s, "submit_billing", OrderState.BILLING_ENTRY)
        if guard is not None:
            return guard
        valid = validate_billing(billing)
        if isinstance(valid, Failure):
            return valid

        if s.is_custom:
            updated: SessionResult = Success(
                replace(_with_custom_region(s, billing.region), billing=billing)
            )
        else:
            updated = self._requote(
                replace(_with_region(s, billing.region), billing=billing), rates
            )
        return updated.bind(_require_payable).map(
            lambda n: self._moved(n, OrderState.PAYMENT_PENDING, "submit_billing")
        )

    def back(self, s: CheckoutSession) -> SessionResult:
        guard = _require(s, "back", OrderState.BILLING_ENTRY) or _not_custom(s)
        if guard is not None:
            return guard
        cleared = replace(s, tier=None, coupon_code=None, coupon_error=None, quote=None)
        return Success(self._moved(cleared, OrderState.SELECTING_LICENSE, "back"))

    # ---- payment steps -----------------------------------------------------

    def begin_attempt(self, s: CheckoutSession, attempt: PaymentAttempt) -> SessionResult:
        guard = _require(s, "begin_attempt", OrderState.PAYMENT_PENDING, OrderState.CAPTURED)
        if guard is not None:
            return guard
        if s.attempt is not None or s.state is OrderState.CAPTURED:
            active = s.attempt.internal_order_id if s.attempt else ""
            return Failure(
                AttemptInProgress("a payment attempt is already running", active)
            )
        if attempt.internal_order_id in s.used_order_ids:
            return Failure(
                InvalidTransition(
                    "internal order id was already used", s.state.value, "begin_attempt"
                )
            )
        if s.ledger_ref is not None and attempt.ledger_ref is None:
            attempt = replace(attempt, ledger_ref=s.ledger_ref)
        logger.info(
            "session %s: attempt %s started via %s",
            s.session_id,
            attempt.internal_order_id,
            attempt.gateway.value,
        )
        return Success(replace(s, attempt=attempt, failure=None))

    def attach_ledger(self, s: CheckoutSession, ref: LedgerRef) -> SessionResult:
        if s.attempt is None:
            return Failure(InvalidTransition("no payment attempt", s.state.value, "attach_ledger"))
        return Success(
            replace(s, ledger_ref=ref, attempt=replace(s.attempt, ledger_ref=ref))
        )

    def attach_gateway_order(self, s: CheckoutSession, gateway_order_id: str) -> SessionResult:
        guard = _require(s, "attach_gateway_order", OrderState.PAYMENT_PENDING)
        if guard is not None:
            return guard
        if s.attempt is None:
            return Failure(
                InvalidTransition("no payment attempt", s.state.value, "attach_gateway_order")
            )
        return Success(
            replace(s, attempt=replace(s.attempt, gateway_order_id=gateway_order_id))
        )

    def captured(self, s: CheckoutSession, transaction_id: str | None) -> SessionResult:
        guard = _require(s, "captured", OrderState.PAYMENT_PENDING)
        if guard is not None:
            return guard
        if s.attempt is None:
            return Failure(InvalidTransition("no payment attempt", s.state.value, "captured"))
        moved = replace(s, attempt=replace(s.attempt, transaction_id=transaction_id))
        return Success(self._moved(moved, OrderState.CAPTURED, "captured"))

    def verified(
        self, s: CheckoutSession, transaction_id: str, confirmation: Confirmation
    ) -> SessionResult:
        guard = _require(s, "verified", *_ATTEMPT_STATES)
        if guard is not None:
            return guard
        if s.attempt is None:
            return Failure(InvalidTransition("no payment attempt", s.state.value, "verified"))
        if not transaction_id or not transaction_id.strip():
            return Failure(
                InvalidTransition(
                    "verified state needs a transaction id", s.state.value, "verified"
                )
            )
        moved = replace(
            s,
            attempt=replace(s.attempt, transaction_id=transaction_id),
            confirmation=confirmation,
        )
        return Success(self._moved(moved, OrderState.VERIFIED, "verified"))

    def failed(
        self, s: CheckoutSession, reason: FailureReason, message: str
    ) -> SessionResult:
        guard = _require(s, "failed", *_ATTEMPT_STATES)
        if guard is not None:
            return guard
        info = FailureInfo(
            reason=reason,
            message=message,
            internal_order_id=s.attempt.internal_order_id if s.attempt else None,
        )
        return Success(self._moved(replace(s, failure=info), OrderState.FAILED, "failed"))

    def abandon(self, s: CheckoutSession) -> SessionResult:
        guard = _require(s, "abandon", OrderState.PAYMENT_PENDING)
        if guard is not None:
            return guard
        if s.attempt is None:
            return Failure(InvalidTransition("no payment attempt", s.state.value, "abandon"))
        return self.failed(s, FailureReason.ABANDONED, "payment window closed before capture")

    def retry(self, s: CheckoutSession) -> SessionResult:
        guard = _require(s, "retry", OrderState.FAILED)
        if guard is not None:
            return guard
        if s.failure is not None and not s.failure.retryable:
            return Failure(
                InvalidTransition(
                    f"{s.failure.reason.value} failures cannot be retried",
                    s.state.value,
                    "retry",
                )
            )
        history = s.previous_attempts + ((s.attempt,) if s.attempt else ())
        reset = replace(s, attempt=None, previous_attempts=history, failure=None)
        return Success(self._moved(reset, OrderState.PAYMENT_PENDING, "retry"))

    # ---- helpers -----------------------------------------------------------

    def _requote(self, s: CheckoutSession, rates: RateTable) -> SessionResult:
        if s.tier is None:
            return Success(replace(s, quote=None))
        return build_quote(
            s.tier,
            s.currency,
            rates,
            region=s.region,
            coupon_code=s.coupon_code,
            require_exact_currency=s.currency_locked,
        ).map(
            lambda o: replace(
                s,
                quote=o.quote,
                coupon_code=o.quote.coupon.code if o.quote.coupon else None,
                coupon_error=str(o.coupon_error) if o.coupon_error else None,
            )
        )

    def _moved(self, s: CheckoutSession, state: OrderState, event: str) -> CheckoutSession:
        logger.info(
            "session %s: %s -> %s (%s)", s.session_id, s.state.value, state.value, event
        )
        return replace(s, state=state)


def _require(s: CheckoutSession, event: str, *allowed: OrderState) -> SessionResult | None:
    if s.state in allowed:
        return None
    return Failure(
        InvalidTransition(
            f"allowed in {', '.join(a.value for a in allowed)}", s.state.value, event
        )
    )


def _not_custom(s: CheckoutSession) -> SessionResult | None:
    if s.is_custom:
        return Failure(ValidationError("custom payment link pricing is fixed"))
    return None


def _with_region(s: CheckoutSession, region: Region) -> CheckoutSession:
    if region.is_india:
        if s.currency is not Currency.INR:
            # forced currency switch invalidates any coupon
            return replace(
                s,
                region=region,
                currency=Currency.INR,
                currency_locked=True,
                coupon_code=None,
                coupon_error=None,
            )
        return replace(s, region=region, currency_locked=True)
    return replace(s, region=region, currency_locked=False)


def _require_payable(s: CheckoutSession) -> SessionResult:
    if s.quote is None or not s.quote.total.is_positive():
        return Failure(ValidationError("order total must be greater than zero"))
    return Success(s)


def _with_custom_region(s: CheckoutSession, region: Region) -> CheckoutSession:
    # custom link pricing is fixed; an India buyer keeps the link's currency and taxes
    if region.is_india and s.currency is not Currency.INR:
        logger.warning(
            "session %s: custom link priced in %s billed to India, GST not applied",
            s.session_id,
            s.currency.value,
        )
    return replace(s, region=region)
