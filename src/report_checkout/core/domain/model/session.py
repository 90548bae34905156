from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from report_checkout.core.domain.model.billing import BillingDetails, Region
from report_checkout.core.domain.model.errors import FailureReason
from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.quote import CustomPricing, Quote, TaxBreakdown


class OrderState(str, Enum):
    SELECTING_LICENSE = "SELECTING_LICENSE"
    BILLING_ENTRY = "BILLING_ENTRY"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CAPTURED = "CAPTURED"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


class GatewayKind(str, Enum):
    REDIRECT = "ccavenue"
    THREE_PHASE = "paypal"

    @property
    def payment_method(self) -> str:
        return "CCAvenue" if self is GatewayKind.REDIRECT else "PayPal"


# UI language code -> content API language id
LANGUAGE_IDS = {"en": 1, "de": 2, "ja": 3, "es": 4}


def new_internal_order_id() -> str:
    return uuid4().hex


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReportRef:
    report_id: str
    title: str


@dataclass(frozen=True)
class LedgerRef:
    user_id: str
    language_id: int


@dataclass(frozen=True)
class PaymentAttempt:
    internal_order_id: str
    gateway: GatewayKind
    amount: Money
    started_at: datetime
    ledger_ref: LedgerRef | None = None
    gateway_order_id: str | None = None
    transaction_id: str | None = None


@dataclass(frozen=True)
class FailureInfo:
    reason: FailureReason
    message: str
    internal_order_id: str | None = None

    @property
    def retryable(self) -> bool:
        return self.reason.retryable


@dataclass(frozen=True)
class Confirmation:
    internal_order_id: str
    transaction_id: str
    payment_method: str
    purchase_date: datetime
    report_title: str
    license_title: str
    original_price: Money
    discount: Money
    subtotal: Money
    tax: TaxBreakdown
    total: Money
    customer_email: str
    invoice_file: str | None = None

    @property
    def invoice_available(self) -> bool:
        return bool(self.invoice_file)


@dataclass(frozen=True)
class CheckoutSession:
    """
    One checkout attempt for one report. Never mutated: every transition
    produces a new instance through the state machine.
    """

    session_id: str
    report: ReportRef
    language_id: int
    state: OrderState
    currency: Currency
    tier: LicenseTier | None = None
    currency_locked: bool = False
    coupon_code: str | None = None
    coupon_error: str | None = None
    region: Region | None = None
    billing: BillingDetails | None = None
    quote: Quote | None = None
    attempt: PaymentAttempt | None = None
    previous_attempts: tuple[PaymentAttempt, ...] = ()
    ledger_ref: LedgerRef | None = None
    failure: FailureInfo | None = None
    custom_pricing: CustomPricing | None = None
    confirmation: Confirmation | None = None

    @property
    def is_custom(self) -> bool:
        return self.custom_pricing is not None

    @property
    def used_order_ids(self) -> frozenset[str]:
        ids = {a.internal_order_id for a in self.previous_attempts}
        if self.attempt is not None:
            ids.add(self.attempt.internal_order_id)
        return frozenset(ids)
