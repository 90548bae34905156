from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Form, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from returns.result import Success

from report_checkout.core.domain.model.billing import BillingDetails, Region
from report_checkout.core.domain.model.errors import (
    AttemptInProgress,
    CheckoutError,
    ContentUnavailable,
    CouponError,
    CustomLinkNotFound,
    FailureReason,
    GatewayAuthError,
    GatewayDeclined,
    GatewayNetworkError,
    InvalidTransition,
    LedgerError,
    OrderMismatch,
    PaymentFailed,
    PricingUnavailable,
    SessionNotFound,
    ValidationError,
)
from report_checkout.core.domain.model.money import Money
from report_checkout.core.domain.model.quote import PricedLicense, Quote
from report_checkout.core.domain.model.session import (
    LANGUAGE_IDS,
    CheckoutSession,
    Confirmation,
)
from report_checkout.core.ports.inbound.checkout import (
    CheckoutUseCase,
    StartCheckoutCommand,
    StartCustomCheckoutCommand,
)
from report_checkout.core.ports.inbound.payment import (
    BeginPaymentCommand,
    CreateOrderCommand,
    PaymentOutcome,
    PaymentUseCase,
    RedirectReturn,
    VerifyOrderCommand,
)

logger = logging.getLogger(__name__)

# ---- HTTP DTOs (adapter layer) ---------------------------------------------


class StartSessionRequest(BaseModel):
    report_id: str = Field(min_length=1, examples=["1042"])
    report_title: str = Field(default="", examples=["Global Widget Market 2030"])
    language_id: int | None = Field(default=None, ge=1)
    lang: str | None = Field(default=None, examples=["en"])
    currency: str | None = Field(default=None, examples=["USD"])


class StartCustomSessionRequest(BaseModel):
    language_id: int = Field(default=1, ge=1)


class LicenseRequest(BaseModel):
    tier: str = Field(min_length=1, examples=["team"])


class CurrencyRequest(BaseModel):
    currency: str = Field(min_length=1, examples=["EUR"])


class CouponRequest(BaseModel):
    code: str = Field(default="", examples=["WELCOME10"])


class RegionRequest(BaseModel):
    country: str = Field(min_length=1, examples=["India"])
    state: str | None = Field(default=None, examples=["Maharashtra"])


class BillingRequest(BaseModel):
    # required fields are checked by the domain so every gap is reported at once
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    country: str = ""
    phone_number: str = ""
    phone_code: str = ""
    street_address: str | None = None
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None
    company_name: str | None = None
    gstin: str | None = None


class BeginPaymentRequest(BaseModel):
    gateway: str = Field(min_length=1, examples=["paypal", "ccavenue"])
    return_url: str | None = None


class ApprovePaymentRequest(BaseModel):
    order_id: str = Field(min_length=1, examples=["5O190127TN364715T"])


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId", min_length=1)
    license_type: str = Field(alias="licenseType", min_length=1)
    currency: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    internal_order_id: str = Field(default="", alias="internalOrderId")


class CreateOrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderID")


class VerifyOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderID", min_length=1)
    report_id: str = Field(alias="reportId", min_length=1)
    license_type: str = Field(alias="licenseType", min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=1)
    internal_order_id: str | None = Field(default=None, alias="internalOrderId")


class VerifyOrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    order_id: str = Field(alias="orderID")
    capture_id: str | None = Field(default=None, alias="captureID")
    payer: dict[str, Any] = Field(default_factory=dict)


class QuoteOut(BaseModel):
    tier: str
    license_title: str
    currency: str
    requested_currency: str
    priced_in_fallback: bool
    list_price: str
    offer_price: str
    discount: str
    subtotal: str
    cgst: str
    sgst: str
    igst: str
    tax_label: str
    tax_total: str
    total: str
    coupon_code: str | None = None


class AttemptOut(BaseModel):
    internal_order_id: str
    gateway: str
    amount: str
    currency: str
    gateway_order_id: str | None = None
    transaction_id: str | None = None


class FailureOut(BaseModel):
    reason: str
    message: str
    retryable: bool
    internal_order_id: str | None = None


class ConfirmationOut(BaseModel):
    internal_order_id: str
    transaction_id: str
    payment_method: str
    purchase_date: str
    report_title: str
    license_title: str
    currency: str
    original_price: str
    discount: str
    subtotal: str
    cgst: str
    sgst: str
    igst: str
    total: str
    customer_email: str
    invoice_file: str | None = None
    invoice_available: bool


class SessionResponse(BaseModel):
    session_id: str
    state: str
    report_id: str
    report_title: str
    language_id: int
    currency: str
    currency_locked: bool
    custom: bool
    tier: str | None = None
    coupon_code: str | None = None
    coupon_error: str | None = None
    quote: QuoteOut | None = None
    attempt: AttemptOut | None = None
    failure: FailureOut | None = None


class LicenseOptionOut(BaseModel):
    tier: str
    title: str
    currency: str
    list_price: str
    offer_price: str
    discount: str
    discount_percent: str
    fallback_from: str | None = None


class LicenseOptionsResponse(BaseModel):
    currency: str
    currencies: list[str]
    options: list[LicenseOptionOut]


class RedirectFormOut(BaseModel):
    action: str
    enc_request: str
    access_code: str


class PaymentBegunResponse(BaseModel):
    internal_order_id: str
    gateway_order_id: str | None = None
    redirect: RedirectFormOut | None = None
    session: SessionResponse


class PaymentOutcomeResponse(BaseModel):
    reconciled: bool
    session: SessionResponse
    confirmation: ConfirmationOut | None = None


class ErrorResponse(BaseModel):
    type: str
    message: str
    details: list[dict[str, Any]] | None = None


# ---- mapping ---------------------------------------------------------------


def _amount(m: Money) -> str:
    return m.gateway_value()


def _quote_out(q: Quote) -> QuoteOut:
    return QuoteOut(
        tier=q.tier.value,
        license_title=q.license_title,
        currency=q.currency.value,
        requested_currency=q.requested_currency.value,
        priced_in_fallback=q.priced_in_fallback,
        list_price=_amount(q.list_price),
        offer_price=_amount(q.offer_price),
        discount=_amount(q.discount),
        subtotal=_amount(q.subtotal),
        cgst=_amount(q.tax.cgst),
        sgst=_amount(q.tax.sgst),
        igst=_amount(q.tax.igst),
        tax_label=q.tax.label,
        tax_total=_amount(q.tax.total),
        total=_amount(q.total),
        coupon_code=q.coupon.code if q.coupon else None,
    )


def _session_out(s: CheckoutSession) -> SessionResponse:
    attempt = None
    if s.attempt is not None:
        attempt = AttemptOut(
            internal_order_id=s.attempt.internal_order_id,
            gateway=s.attempt.gateway.value,
            amount=_amount(s.attempt.amount),
            currency=s.attempt.amount.currency.value,
            gateway_order_id=s.attempt.gateway_order_id,
            transaction_id=s.attempt.transaction_id,
        )
    failure = None
    if s.failure is not None:
        failure = FailureOut(
            reason=s.failure.reason.value,
            message=s.failure.message,
            retryable=s.failure.retryable,
            internal_order_id=s.failure.internal_order_id,
        )
    return SessionResponse(
        session_id=s.session_id,
        state=s.state.value,
        report_id=s.report.report_id,
        report_title=s.report.title,
        language_id=s.language_id,
        currency=s.currency.value,
        currency_locked=s.currency_locked,
        custom=s.is_custom,
        tier=s.tier.value if s.tier else None,
        coupon_code=s.coupon_code,
        coupon_error=s.coupon_error,
        quote=_quote_out(s.quote) if s.quote else None,
        attempt=attempt,
        failure=failure,
    )


def _option_out(p: PricedLicense) -> LicenseOptionOut:
    return LicenseOptionOut(
        tier=p.tier.value,
        title=p.title,
        currency=p.offer_price.currency.value,
        list_price=_amount(p.list_price),
        offer_price=_amount(p.offer_price),
        discount=_amount(p.discount),
        discount_percent=str(p.discount_percent),
        fallback_from=p.fallback_from.value if p.fallback_from else None,
    )


def _confirmation_out(c: Confirmation) -> ConfirmationOut:
    return ConfirmationOut(
        internal_order_id=c.internal_order_id,
        transaction_id=c.transaction_id,
        payment_method=c.payment_method,
        purchase_date=c.purchase_date.isoformat(),
        report_title=c.report_title,
        license_title=c.license_title,
        currency=c.total.currency.value,
        original_price=_amount(c.original_price),
        discount=_amount(c.discount),
        subtotal=_amount(c.subtotal),
        cgst=_amount(c.tax.cgst),
        sgst=_amount(c.tax.sgst),
        igst=_amount(c.tax.igst),
        total=_amount(c.total),
        customer_email=c.customer_email,
        invoice_file=c.invoice_file,
        invoice_available=c.invoice_available,
    )


def _outcome_out(o: PaymentOutcome) -> PaymentOutcomeResponse:
    return PaymentOutcomeResponse(
        reconciled=o.reconciled,
        session=_session_out(o.session),
        confirmation=_confirmation_out(o.confirmation) if o.confirmation else None,
    )


def _error_details(err: CheckoutError) -> list[dict[str, Any]] | None:
    if isinstance(err, ValidationError) and err.fields:
        return [{"field": f} for f in err.fields]
    if isinstance(err, OrderMismatch):
        return [{"field": err.field, "expected": err.expected, "actual": err.actual}]
    if isinstance(err, PaymentFailed):
        return [
            {
                "reason": err.reason.value,
                "retryable": err.reason.retryable,
                "internal_order_id": err.internal_order_id,
                "cause": err.cause,
            }
        ]
    return None


_PAYMENT_FAILED_STATUS = {
    FailureReason.ORDER_MISMATCH: 400,
    FailureReason.GATEWAY_DECLINED: 402,
    FailureReason.ABANDONED: 402,
    FailureReason.LEDGER_CREATE: 502,
}


def _map_error_to_http(err: CheckoutError) -> tuple[int, ErrorResponse]:
    body = ErrorResponse(
        type=type(err).__name__, message=str(err), details=_error_details(err)
    )

    if isinstance(err, (ValidationError, CouponError, OrderMismatch)):
        return 400, body

    if isinstance(err, (SessionNotFound, CustomLinkNotFound)):
        return 404, body

    if isinstance(err, (InvalidTransition, AttemptInProgress)):
        return 409, body

    if isinstance(err, GatewayDeclined):
        return 402, body

    if isinstance(err, PricingUnavailable):
        return 422, body

    if isinstance(err, PaymentFailed):
        return _PAYMENT_FAILED_STATUS.get(err.reason, 500), body

    # upstream auth/fetch failures surface as 500 like the verify endpoint
    if isinstance(err, (GatewayAuthError, GatewayNetworkError)):
        return 500, body

    if isinstance(err, (LedgerError, ContentUnavailable)):
        return 502, body

    return 500, body


_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (400, 402, 404, 409, 422, 500, 502)
}


def create_app(
    checkout_uc: CheckoutUseCase,
    payment_uc: PaymentUseCase,
    fallback_url: str = "/",
) -> FastAPI:
    app = FastAPI(title="report_checkout")

    # --- exception handlers -------------------------------------------------

    @app.exception_handler(CheckoutError)
    async def handle_domain_error(_: Request, exc: CheckoutError) -> JSONResponse:
        status, body = _map_error_to_http(exc)
        return JSONResponse(status_code=status, content=body.model_dump())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        body = ErrorResponse(
            type="RequestValidationError",
            message="invalid request",
            details=[
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in exc.errors()
            ],
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(Exception)
    async def handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error")
        body = ErrorResponse(type=type(exc).__name__, message="internal server error")
        return JSONResponse(status_code=500, content=body.model_dump())

    # --- routes: sessions ---------------------------------------------------

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(
        "/checkout/sessions",
        response_model=SessionResponse,
        status_code=201,
        responses=_ERROR_RESPONSES,
    )
    def start_session(req: StartSessionRequest) -> Any:
        language_id = req.language_id or LANGUAGE_IDS.get((req.lang or "en").lower(), 1)
        result = checkout_uc.start_session(
            StartCheckoutCommand(
                report_id=req.report_id,
                report_title=req.report_title,
                language_id=language_id,
                currency=req.currency,
            )
        )
        if isinstance(result, Success):
            return _session_out(result.unwrap())
        raise result.failure()

    @app.post(
        "/checkout/custom/{token}",
        response_model=SessionResponse,
        status_code=201,
        responses=_ERROR_RESPONSES,
    )
    def start_custom_session(token: str, req: StartCustomSessionRequest | None = None) -> Any:
        language_id = req.language_id if req else 1
        result = checkout_uc.start_custom_session(
            StartCustomCheckoutCommand(token=token, language_id=language_id)
        )
        if isinstance(result, Success):
            return _session_out(result.unwrap())
        raise result.failure()

    @app.get(
        "/checkout/sessions/{session_id}",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def get_session(session_id: str) -> Any:
        result = checkout_uc.get_session(session_id)
        if isinstance(result, Success):
            return _session_out(result.unwrap())
        raise result.failure()

    @app.delete(
        "/checkout/sessions/{session_id}", status_code=204, responses=_ERROR_RESPONSES
    )
    def discard_session(session_id: str) -> None:
        result = checkout_uc.discard_session(session_id)
        if not isinstance(result, Success):
            raise result.failure()

    @app.get(
        "/checkout/sessions/{session_id}/license-options",
        response_model=LicenseOptionsResponse,
        responses=_ERROR_RESPONSES,
    )
    def license_options(session_id: str) -> Any:
        result = checkout_uc.license_options(session_id)
        if isinstance(result, Success):
            view = result.unwrap()
            return LicenseOptionsResponse(
                currency=view.currency,
                currencies=list(view.currencies),
                options=[_option_out(o) for o in view.options],
            )
        raise result.failure()

    # --- routes: pricing and billing steps ----------------------------------

    def _session_step(result: Any) -> SessionResponse:
        if isinstance(result, Success):
            return _session_out(result.unwrap())
        raise result.failure()

    @app.post(
        "/checkout/sessions/{session_id}/license",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def choose_tier(session_id: str, req: LicenseRequest) -> Any:
        return _session_step(checkout_uc.choose_tier(session_id, req.tier))

    @app.post(
        "/checkout/sessions/{session_id}/currency",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def change_currency(session_id: str, req: CurrencyRequest) -> Any:
        return _session_step(checkout_uc.change_currency(session_id, req.currency))

    @app.post(
        "/checkout/sessions/{session_id}/coupon",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def apply_coupon(session_id: str, req: CouponRequest) -> Any:
        return _session_step(checkout_uc.apply_coupon(session_id, req.code))

    @app.delete(
        "/checkout/sessions/{session_id}/coupon",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def remove_coupon(session_id: str) -> Any:
        return _session_step(checkout_uc.remove_coupon(session_id))

    @app.post(
        "/checkout/sessions/{session_id}/region",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def set_region(session_id: str, req: RegionRequest) -> Any:
        region = Region(country=req.country, state=req.state)
        return _session_step(checkout_uc.set_region(session_id, region))

    @app.post(
        "/checkout/sessions/{session_id}/billing",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def submit_billing(session_id: str, req: BillingRequest) -> Any:
        billing = BillingDetails(**req.model_dump())
        return _session_step(checkout_uc.submit_billing(session_id, billing))

    @app.post(
        "/checkout/sessions/{session_id}/back",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def back(session_id: str) -> Any:
        return _session_step(checkout_uc.back(session_id))

    # --- routes: payment ----------------------------------------------------

    @app.post(
        "/checkout/sessions/{session_id}/payments",
        response_model=PaymentBegunResponse,
        status_code=201,
        responses=_ERROR_RESPONSES,
    )
    def begin_payment(session_id: str, req: BeginPaymentRequest) -> Any:
        result = payment_uc.begin_payment(
            BeginPaymentCommand(
                session_id=session_id, gateway=req.gateway, return_url=req.return_url
            )
        )
        if isinstance(result, Success):
            begun = result.unwrap()
            form = begun.redirect_form
            return PaymentBegunResponse(
                internal_order_id=begun.internal_order_id,
                gateway_order_id=begun.gateway_order_id,
                redirect=(
                    RedirectFormOut(
                        action=form.action,
                        enc_request=form.enc_request,
                        access_code=form.access_code,
                    )
                    if form
                    else None
                ),
                session=_session_out(begun.session),
            )
        raise result.failure()

    @app.post(
        "/checkout/sessions/{session_id}/payments/approve",
        response_model=PaymentOutcomeResponse,
        responses=_ERROR_RESPONSES,
    )
    def approve_payment(session_id: str, req: ApprovePaymentRequest) -> Any:
        result = payment_uc.approve_payment(session_id, req.order_id)
        if isinstance(result, Success):
            return _outcome_out(result.unwrap())
        raise result.failure()

    @app.post(
        "/checkout/sessions/{session_id}/payments/cancel",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def cancel_payment(session_id: str) -> Any:
        return _session_step(payment_uc.cancel_payment(session_id))

    @app.post(
        "/checkout/sessions/{session_id}/payments/retry",
        response_model=SessionResponse,
        responses=_ERROR_RESPONSES,
    )
    def retry_payment(session_id: str) -> Any:
        return _session_step(payment_uc.retry_payment(session_id))

    @app.get(
        "/checkout/sessions/{session_id}/payments/return",
        response_model=PaymentOutcomeResponse,
        responses=_ERROR_RESPONSES,
    )
    def redirect_return(
        session_id: str,
        status: str | None = Query(None),
        order_id: str | None = Query(None, alias="orderId"),
        transaction_id: str | None = Query(None, alias="transactionId"),
        error: str | None = Query(None),
    ) -> Any:
        result = payment_uc.handle_redirect_return(
            RedirectReturn(
                session_id=session_id,
                status=status,
                order_id=order_id,
                transaction_id=transaction_id,
                error=error,
            )
        )
        if isinstance(result, Success):
            return _outcome_out(result.unwrap())
        raise result.failure()

    @app.post(
        "/checkout/sessions/{session_id}/payments/reconcile",
        response_model=PaymentOutcomeResponse,
        responses=_ERROR_RESPONSES,
    )
    def reconcile_payment(session_id: str) -> Any:
        result = payment_uc.reconcile_redirect(session_id)
        if isinstance(result, Success):
            return _outcome_out(result.unwrap())
        raise result.failure()

    # --- routes: gateway endpoints ------------------------------------------

    @app.post(
        "/payments/create-order",
        response_model=CreateOrderResponse,
        responses=_ERROR_RESPONSES,
    )
    def create_order(req: CreateOrderRequest) -> Any:
        result = payment_uc.create_gateway_order(
            CreateOrderCommand(
                report_id=req.report_id,
                license_type=req.license_type,
                currency=req.currency,
                amount=req.amount,
                internal_order_id=req.internal_order_id,
            )
        )
        if isinstance(result, Success):
            return CreateOrderResponse(order_id=result.unwrap())
        raise result.failure()

    @app.post(
        "/payments/verify-order",
        response_model=VerifyOrderResponse,
        responses=_ERROR_RESPONSES,
    )
    def verify_order(req: VerifyOrderRequest) -> Any:
        result = payment_uc.verify_order(
            VerifyOrderCommand(
                gateway_order_id=req.order_id,
                report_id=req.report_id,
                license_type=req.license_type,
                amount=req.amount,
                currency=req.currency,
                internal_order_id=req.internal_order_id,
            )
        )
        if isinstance(result, Success):
            verified = result.unwrap()
            return VerifyOrderResponse(
                valid=True,
                order_id=verified.gateway_order_id,
                capture_id=verified.capture_id,
                payer=dict(verified.payer),
            )
        raise result.failure()

    @app.post("/payments/ccavenue/handle", response_class=RedirectResponse)
    def ccavenue_handle(encResp: str = Form("")) -> RedirectResponse:  # noqa: N803
        result = payment_uc.handle_redirect_callback(encResp)
        if isinstance(result, Success):
            return RedirectResponse(result.unwrap(), status_code=303)
        logger.warning("ccavenue callback rejected: %s", result.failure().message)
        sep = "&" if "?" in fallback_url else "?"
        return RedirectResponse(
            f"{fallback_url}{sep}error=Payment_response_invalid", status_code=303
        )

    return app
