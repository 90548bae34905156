from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable
from urllib.parse import urlencode

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import (
    CheckoutError,
    GatewayDeclined,
    InvalidTransition,
    OrderMismatch,
    PaymentFailed,
    ValidationError,
    failure_reason_for,
)
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, Money, parse_amount
from report_checkout.core.domain.model.session import (
    CheckoutSession,
    Confirmation,
    GatewayKind,
    OrderState,
    PaymentAttempt,
    new_internal_order_id,
    now_utc,
)
from report_checkout.core.domain.service.state_machine import CheckoutStateMachine
from report_checkout.core.domain.service.validation import validate_billing
from report_checkout.core.ports.inbound.payment import (
    BeginPaymentCommand,
    CreateOrderCommand,
    PaymentBegun,
    PaymentOutcome,
    PaymentUseCase,
    RedirectReturn,
    VerifiedOrder,
    VerifyOrderCommand,
)
from report_checkout.core.ports.outbound.events import (
    CheckoutEvent,
    EventPublisher,
    PaymentAttemptFailed,
    PaymentStarted,
    PaymentVerified,
)
from report_checkout.core.ports.outbound.gateway import (
    CreateGatewayOrder,
    GatewayOrderSnapshot,
    RedirectGateway,
    RedirectPaymentRequest,
    RedirectSettlement,
    ThreePhaseGateway,
)
from report_checkout.core.ports.outbound.ledger import (
    LedgerCreateRequest,
    LedgerUpdateRequest,
    OrderLedger,
)
from report_checkout.core.ports.outbound.sessions import SessionRepository
from report_checkout.core.ports.outbound.settlements import SettlementStore

logger = logging.getLogger(__name__)

RETURN_PATH = "/checkout/sessions/{session_id}/payments/return"


@dataclass(frozen=True)
class PaymentDeps:
    sessions: SessionRepository
    ledger: OrderLedger
    three_phase: ThreePhaseGateway
    redirect: RedirectGateway
    settlements: SettlementStore
    events: EventPublisher
    public_url: str = "http://localhost:8000"
    machine: CheckoutStateMachine = field(default_factory=CheckoutStateMachine)
    new_order_id: Callable[[], str] = new_internal_order_id
    clock: Callable[[], datetime] = now_utc


@dataclass(frozen=True)
class PaymentService(PaymentUseCase):
    """
    Drives one payment attempt against the ledger and a gateway.

    Ordering per attempt::

        ledger create -> gateway create -> (buyer) -> capture -> verify
            -> ledger update -> VERIFIED

    Every failure after ``begin_attempt`` moves the session to FAILED and is
    returned as ``PaymentFailed`` carrying the attempt's internal order id.
    """

    deps: PaymentDeps

    # ---- begin -------------------------------------------------------------

    def begin_payment(
        self, command: BeginPaymentCommand
    ) -> Result[PaymentBegun, CheckoutError]:
        try:
            gateway = GatewayKind(command.gateway.strip().lower())
        except ValueError:
            return Failure(
                ValidationError(f"unknown gateway {command.gateway!r}", ("gateway",))
            )

        # claim the session in one step so concurrent begins cannot both start
        started = self.deps.sessions.update(
            command.session_id,
            lambda current: _payable(current).bind(
                lambda s: self.deps.machine.begin_attempt(s, self._new_attempt(s, gateway))
            ),
        )
        if isinstance(started, Failure):
            return started
        s = started.unwrap()
        assert s.attempt is not None and s.quote is not None and s.billing is not None

        if s.ledger_ref is None:
            created = self.deps.ledger.create_order(
                LedgerCreateRequest(
                    internal_order_id=s.attempt.internal_order_id,
                    language_id=s.language_id,
                    billing=s.billing,
                    quote=s.quote,
                )
            )
            if isinstance(created, Failure):
                return self._fail(s, created.failure())
            s = self.deps.machine.attach_ledger(s, created.unwrap()).unwrap()
        else:
            logger.info(
                "session %s: reusing ledger order for user %s",
                s.session_id,
                s.ledger_ref.user_id,
            )

        if gateway is GatewayKind.THREE_PHASE:
            return self._begin_three_phase(s)
        return self._begin_redirect(s, command.return_url)

    def _new_attempt(self, s: CheckoutSession, gateway: GatewayKind) -> PaymentAttempt:
        assert s.quote is not None
        return PaymentAttempt(
            internal_order_id=self.deps.new_order_id(),
            gateway=gateway,
            amount=s.quote.total,
            started_at=self.deps.clock(),
        )

    def _begin_three_phase(self, s: CheckoutSession) -> Result[PaymentBegun, CheckoutError]:
        assert s.attempt is not None and s.quote is not None
        order = CreateGatewayOrder(
            report_id=s.report.report_id,
            tier=s.quote.tier,
            amount=s.quote.total,
            internal_order_id=s.attempt.internal_order_id,
        )
        created = self.deps.three_phase.create_order(order)
        if isinstance(created, Failure):
            return self._fail(s, created.failure())
        gateway_order_id = created.unwrap()

        saved = self.deps.machine.attach_gateway_order(s, gateway_order_id).bind(
            self.deps.sessions.save
        )
        return saved.map(
            lambda n: self._started(n, PaymentBegun(n, order.internal_order_id, gateway_order_id))
        )

    def _begin_redirect(
        self, s: CheckoutSession, return_url: str | None
    ) -> Result[PaymentBegun, CheckoutError]:
        assert s.attempt is not None and s.quote is not None and s.billing is not None
        request = RedirectPaymentRequest(
            internal_order_id=s.attempt.internal_order_id,
            amount=s.quote.total,
            billing=s.billing,
            return_url=return_url or self._return_url(s.session_id),
        )
        built = self.deps.redirect.build_request(request)
        if isinstance(built, Failure):
            return self._fail(s, built.failure())

        return self.deps.sessions.save(s).map(
            lambda n: self._started(
                n,
                PaymentBegun(n, request.internal_order_id, redirect_form=built.unwrap()),
            )
        )

    def _started(self, s: CheckoutSession, begun: PaymentBegun) -> PaymentBegun:
        assert s.attempt is not None
        self._publish(
            PaymentStarted(
                session_id=s.session_id,
                internal_order_id=s.attempt.internal_order_id,
                gateway=s.attempt.gateway.value,
                amount=s.attempt.amount.gateway_value(),
                currency=s.attempt.amount.currency.value,
            )
        )
        return begun

    # ---- three-phase completion --------------------------------------------

    def approve_payment(
        self, session_id: str, gateway_order_id: str
    ) -> Result[PaymentOutcome, CheckoutError]:
        loaded = self.deps.sessions.get(session_id)
        if isinstance(loaded, Failure):
            return loaded
        s = loaded.unwrap()
        guard = _active_attempt(s, GatewayKind.THREE_PHASE, "approve_payment")
        if guard is not None:
            return guard
        assert s.attempt is not None and s.quote is not None
        if gateway_order_id != s.attempt.gateway_order_id:
            return Failure(
                ValidationError(
                    "gateway order id does not belong to the active attempt",
                    ("gateway_order_id",),
                )
            )

        captured = (
            self.deps.three_phase.capture_order(gateway_order_id)
            .bind(_require_completed)
            .bind(lambda snap: _check_snapshot(snap, s.quote.total))
        )
        if isinstance(captured, Failure):
            return self._fail(s, captured.failure())
        snapshot = captured.unwrap()
        transaction_id = snapshot.capture_id or snapshot.gateway_order_id

        moved = self._capture(s, transaction_id)
        if isinstance(moved, Failure):
            return moved
        s = moved.unwrap()

        # the capture response is buyer-visible; settle on the server-side read
        verified = self.deps.three_phase.fetch_order(gateway_order_id).bind(
            lambda snap: _check_snapshot(snap, s.quote.total)
        )
        if isinstance(verified, Failure):
            return self._fail(s, verified.failure())
        return self._settle(s, transaction_id)

    # ---- cancel / retry ----------------------------------------------------

    def cancel_payment(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        cancelled = self.deps.sessions.update(session_id, self.deps.machine.abandon)
        if isinstance(cancelled, Success):
            s = cancelled.unwrap()
            self._publish(
                PaymentAttemptFailed(
                    session_id=s.session_id,
                    internal_order_id=s.failure.internal_order_id if s.failure else None,
                    reason=s.failure.reason.value if s.failure else "abandoned",
                )
            )
        return cancelled

    def retry_payment(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        return self.deps.sessions.update(session_id, self.deps.machine.retry)

    # ---- redirect gateway --------------------------------------------------

    def handle_redirect_callback(self, enc_response: str) -> Result[str, CheckoutError]:
        if not enc_response or not enc_response.strip():
            return Failure(ValidationError("encResp is required", ("encResp",)))
        decoded = self.deps.redirect.decode_response(enc_response)
        if isinstance(decoded, Failure):
            return decoded
        settlement = decoded.unwrap()
        self.deps.settlements.record(settlement)
        logger.info(
            "redirect settlement for %s: %s (tracking %s)",
            settlement.internal_order_id,
            settlement.order_status,
            settlement.tracking_id,
        )
        self._settle_from_callback(settlement)

        base = settlement.return_url or self.deps.public_url
        if settlement.succeeded:
            query = {
                "orderId": settlement.internal_order_id,
                "status": "success",
                "transactionId": settlement.tracking_id,
            }
        else:
            query = {"error": f"Payment_{settlement.order_status}"}
        sep = "&" if "?" in base else "?"
        return Success(f"{base}{sep}{urlencode(query)}")

    def _settle_from_callback(self, settlement: RedirectSettlement) -> None:
        """
        Finalize the attempt without waiting for the buyer's return. The
        session is kept so the return page can still show the outcome.
        """
        s = self.deps.sessions.find_by_order_id(settlement.internal_order_id)
        if s is None or s.attempt is None or s.attempt.gateway is not GatewayKind.REDIRECT:
            logger.info("no open session for %s", settlement.internal_order_id)
            return

        outcome: Result[PaymentOutcome, CheckoutError]
        if s.state is OrderState.CAPTURED:
            outcome = self._reconcile(s, discard_session=False)
        elif s.state is not OrderState.PAYMENT_PENDING:
            return
        elif not settlement.succeeded:
            outcome = self._fail(
                s,
                GatewayDeclined(
                    f"gateway reported {settlement.order_status}",
                    status=settlement.order_status,
                ),
            )
        else:
            outcome = self._capture(s, settlement.tracking_id).bind(
                lambda moved: self._reconcile(moved, discard_session=False)
            )

        if isinstance(outcome, Failure):
            logger.warning(
                "callback for %s did not settle session %s: %s",
                settlement.internal_order_id,
                s.session_id,
                outcome.failure().message,
            )

    def handle_redirect_return(
        self, command: RedirectReturn
    ) -> Result[PaymentOutcome, CheckoutError]:
        loaded = self.deps.sessions.get(command.session_id)
        if isinstance(loaded, Failure):
            return loaded
        s = loaded.unwrap()
        decided = self._decided(s, command.order_id)
        if decided is not None:
            return decided
        if (
            s.state is OrderState.CAPTURED
            and s.attempt is not None
            and s.attempt.gateway is GatewayKind.REDIRECT
        ):
            # buyer reloaded the return page
            return self._reconcile(s)
        guard = _active_attempt(s, GatewayKind.REDIRECT, "redirect_return")
        if guard is not None:
            return guard
        assert s.attempt is not None

        if command.error:
            return self._fail(s, GatewayDeclined(command.error, status=command.error))
        if (command.status or "").lower() != "success":
            return Failure(
                ValidationError("return carries neither status=success nor error", ("status",))
            )
        if command.order_id and command.order_id != s.attempt.internal_order_id:
            return self._fail(
                s,
                OrderMismatch(
                    "returned order id does not match the attempt",
                    field="order_id",
                    expected=s.attempt.internal_order_id,
                    actual=command.order_id,
                ),
            )

        # status=success is provisional until the server-side settlement agrees
        moved = self._capture(s, command.transaction_id)
        if isinstance(moved, Failure):
            return moved
        return self._reconcile(moved.unwrap())

    def reconcile_redirect(self, session_id: str) -> Result[PaymentOutcome, CheckoutError]:
        loaded = self.deps.sessions.get(session_id)
        if isinstance(loaded, Failure):
            return loaded
        s = loaded.unwrap()
        decided = self._decided(s, None)
        if decided is not None:
            return decided
        if s.state is not OrderState.CAPTURED or s.attempt is None:
            return Failure(
                InvalidTransition("allowed in CAPTURED", s.state.value, "reconcile_redirect")
            )
        if s.attempt.gateway is not GatewayKind.REDIRECT:
            return Failure(
                InvalidTransition(
                    "attempt did not use the redirect gateway", s.state.value, "reconcile_redirect"
                )
            )
        return self._reconcile(s)

    def _reconcile(
        self, s: CheckoutSession, discard_session: bool = True
    ) -> Result[PaymentOutcome, CheckoutError]:
        assert s.attempt is not None and s.quote is not None
        order_id = s.attempt.internal_order_id
        settlement = self.deps.settlements.find(order_id)
        if settlement is None:
            logger.info(
                "session %s: no settlement yet for %s, staying provisional",
                s.session_id,
                order_id,
            )
            return Success(PaymentOutcome(session=s, reconciled=False))

        checked = _check_settlement(settlement, s.attempt.transaction_id, s.quote.total)
        if isinstance(checked, Failure):
            return self._fail(s, checked.failure())
        settled = self._settle(s, settlement.tracking_id, discard_session)
        if isinstance(settled, Success):
            self.deps.settlements.discard(order_id)
        return settled

    def _decided(
        self, s: CheckoutSession, order_id: str | None
    ) -> Result[PaymentOutcome, CheckoutError] | None:
        """Outcome the callback already reached for this redirect attempt, if any."""
        if s.attempt is None or s.attempt.gateway is not GatewayKind.REDIRECT:
            return None
        if order_id and order_id != s.attempt.internal_order_id:
            return None
        if s.state is OrderState.VERIFIED and s.confirmation is not None:
            self._discard(s.session_id)
            return Success(PaymentOutcome(session=s, confirmation=s.confirmation))
        if s.state is OrderState.FAILED and s.failure is not None:
            return Failure(
                PaymentFailed(
                    s.failure.message,
                    reason=s.failure.reason,
                    internal_order_id=s.failure.internal_order_id,
                )
            )
        return None

    # ---- standalone gateway operations -------------------------------------

    def create_gateway_order(self, command: CreateOrderCommand) -> Result[str, CheckoutError]:
        if not command.report_id.strip():
            return Failure(ValidationError("reportId is required", ("reportId",)))
        try:
            tier = LicenseTier.parse(command.license_type)
            currency = Currency.parse(command.currency)
        except ValueError as e:
            return Failure(ValidationError(str(e), ("licenseType", "currency")))
        if command.amount <= 0:
            return Failure(ValidationError("amount must be > 0", ("amount",)))

        return self.deps.three_phase.create_order(
            CreateGatewayOrder(
                report_id=command.report_id,
                tier=tier,
                amount=Money.of(command.amount, currency),
                internal_order_id=command.internal_order_id or self.deps.new_order_id(),
            )
        )

    def verify_order(self, command: VerifyOrderCommand) -> Result[VerifiedOrder, CheckoutError]:
        if not command.gateway_order_id.strip():
            return Failure(ValidationError("orderID is required", ("orderID",)))
        try:
            expected = Money.of(command.amount, Currency.parse(command.currency))
        except ValueError as e:
            return Failure(ValidationError(str(e), ("currency",)))

        return (
            self.deps.three_phase.fetch_order(command.gateway_order_id)
            .bind(lambda snap: _check_snapshot(snap, expected))
            .map(
                lambda snap: VerifiedOrder(
                    gateway_order_id=snap.gateway_order_id,
                    capture_id=snap.capture_id,
                    payer=snap.payer,
                )
            )
        )

    # ---- finalize ----------------------------------------------------------

    def _settle(
        self, s: CheckoutSession, transaction_id: str, discard_session: bool = True
    ) -> Result[PaymentOutcome, CheckoutError]:
        assert s.attempt is not None and s.quote is not None and s.billing is not None
        attempt, quote = s.attempt, s.quote
        purchased_at = self.deps.clock()
        invoice_file: str | None = None

        ref = attempt.ledger_ref or s.ledger_ref
        if ref is None:
            logger.warning(
                "session %s: no ledger reference for %s, skipping ledger update",
                s.session_id,
                attempt.internal_order_id,
            )
        else:
            updated = self.deps.ledger.update_order(
                LedgerUpdateRequest(
                    internal_order_id=attempt.internal_order_id,
                    ref=ref,
                    transaction_id=transaction_id,
                    payment_method=attempt.gateway.payment_method,
                    purchase_date=purchased_at,
                    report_title=s.report.title,
                    quote=quote,
                )
            )
            if isinstance(updated, Failure):
                # payment is already settled; the confirmation goes out without an invoice
                logger.warning(
                    "ledger update failed for %s: %s",
                    attempt.internal_order_id,
                    updated.failure().message,
                )
            else:
                invoice_file = updated.unwrap().invoice_file

        confirmation = Confirmation(
            internal_order_id=attempt.internal_order_id,
            transaction_id=transaction_id,
            payment_method=attempt.gateway.payment_method,
            purchase_date=purchased_at,
            report_title=s.report.title,
            license_title=quote.license_title,
            original_price=quote.list_price,
            discount=quote.discount,
            subtotal=quote.subtotal,
            tax=quote.tax,
            total=quote.total,
            customer_email=s.billing.email,
            invoice_file=invoice_file,
        )
        order_id = attempt.internal_order_id
        return self.deps.sessions.update(
            s.session_id,
            lambda current: _still_running(current, order_id, "verified").bind(
                lambda c: self.deps.machine.verified(c, transaction_id, confirmation)
            ),
        ).map(lambda n: self._finish(n, discard_session))

    def _finish(self, s: CheckoutSession, discard_session: bool = True) -> PaymentOutcome:
        assert s.attempt is not None and s.confirmation is not None
        self._publish(
            PaymentVerified(
                session_id=s.session_id,
                internal_order_id=s.attempt.internal_order_id,
                transaction_id=s.confirmation.transaction_id,
                amount=s.confirmation.total.gateway_value(),
                currency=s.confirmation.total.currency.value,
            )
        )
        if discard_session:
            self._discard(s.session_id)
        return PaymentOutcome(session=s, confirmation=s.confirmation)

    def _capture(
        self, s: CheckoutSession, transaction_id: str | None
    ) -> Result[CheckoutSession, CheckoutError]:
        assert s.attempt is not None
        order_id = s.attempt.internal_order_id
        return self.deps.sessions.update(
            s.session_id,
            lambda current: _still_running(current, order_id, "captured").bind(
                lambda c: self.deps.machine.captured(c, transaction_id)
            ),
        )

    def _discard(self, session_id: str) -> None:
        dropped = self.deps.sessions.delete(session_id)
        if isinstance(dropped, Failure):
            logger.warning(
                "session %s: could not discard verified session: %s",
                session_id,
                dropped.failure().message,
            )

    def _fail(self, s: CheckoutSession, err: CheckoutError) -> Result[Any, CheckoutError]:
        reason = failure_reason_for(err)
        order_id = s.attempt.internal_order_id if s.attempt else None
        logger.warning(
            "session %s: attempt %s failed (%s): %s",
            s.session_id,
            order_id,
            reason.value,
            err.message,
        )
        moved = self.deps.machine.failed(s, reason, err.message).bind(self.deps.sessions.save)
        if isinstance(moved, Failure):
            return moved
        self._publish(
            PaymentAttemptFailed(
                session_id=s.session_id, internal_order_id=order_id, reason=reason.value
            )
        )
        return Failure(
            PaymentFailed(
                err.message,
                reason=reason,
                internal_order_id=order_id,
                cause=type(err).__name__,
            )
        )

    def _publish(self, event: CheckoutEvent) -> None:
        published = self.deps.events.publish(event)
        if isinstance(published, Failure):
            logger.warning(
                "event %s not published: %s",
                type(event).__name__,
                published.failure().message,
            )

    def _return_url(self, session_id: str) -> str:
        return self.deps.public_url.rstrip("/") + RETURN_PATH.format(session_id=session_id)


# ---- pure helpers ----------------------------------------------------------


def _payable(s: CheckoutSession) -> Result[CheckoutSession, CheckoutError]:
    if s.billing is None:
        return Failure(ValidationError("billing details are required", ("billing",)))
    if s.quote is None or not s.quote.total.is_positive():
        return Failure(ValidationError("order total must be greater than zero"))
    return validate_billing(s.billing).map(lambda _: s)


def _active_attempt(
    s: CheckoutSession, gateway: GatewayKind, event: str
) -> Failure[CheckoutError] | None:
    if s.state is not OrderState.PAYMENT_PENDING or s.attempt is None:
        return Failure(
            InvalidTransition("needs an active payment attempt", s.state.value, event)
        )
    if s.attempt.gateway is not gateway:
        return Failure(
            InvalidTransition(
                f"active attempt uses {s.attempt.gateway.value}", s.state.value, event
            )
        )
    return None


def _still_running(
    s: CheckoutSession, internal_order_id: str, event: str
) -> Result[CheckoutSession, CheckoutError]:
    if s.attempt is None or s.attempt.internal_order_id != internal_order_id:
        return Failure(
            InvalidTransition("payment attempt is no longer active", s.state.value, event)
        )
    return Success(s)


def _require_completed(
    snap: GatewayOrderSnapshot,
) -> Result[GatewayOrderSnapshot, CheckoutError]:
    if not snap.completed:
        return Failure(GatewayDeclined("capture was not completed", status=snap.status))
    return Success(snap)


def _check_snapshot(
    snap: GatewayOrderSnapshot, expected: Money
) -> Result[GatewayOrderSnapshot, CheckoutError]:
    if not snap.completed:
        return Failure(
            OrderMismatch(
                "payment not completed",
                field="status",
                expected="COMPLETED",
                actual=snap.status,
            )
        )
    return _check_amount(snap.amount, snap.currency, expected).map(lambda _: snap)


def _check_settlement(
    settlement: RedirectSettlement, transaction_id: str | None, expected: Money
) -> Result[RedirectSettlement, CheckoutError]:
    if not settlement.succeeded:
        return Failure(
            OrderMismatch(
                "gateway did not record a successful payment",
                field="order_status",
                expected="Success",
                actual=settlement.order_status,
            )
        )
    if transaction_id and transaction_id != settlement.tracking_id:
        return Failure(
            OrderMismatch(
                "returned transaction id does not match the gateway record",
                field="transaction_id",
                expected=settlement.tracking_id,
                actual=transaction_id,
            )
        )
    return _check_amount(settlement.amount, settlement.currency, expected).map(
        lambda _: settlement
    )


def _check_amount(
    amount: str, currency: str, expected: Money
) -> Result[Decimal, CheckoutError]:
    got = parse_amount(amount)
    if got is None or Money.of(got, expected.currency).amount != expected.amount:
        return Failure(
            OrderMismatch(
                "captured amount differs from the quote",
                field="amount",
                expected=expected.gateway_value(),
                actual=amount,
            )
        )
    if currency.strip().upper() != expected.currency.value:
        return Failure(
            OrderMismatch(
                "captured currency differs from the quote",
                field="currency",
                expected=expected.currency.value,
                actual=currency,
            )
        )
    return Success(got)
