from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    LEDGER_CREATE = "ledger_create"
    GATEWAY_AUTH = "gateway_auth"
    GATEWAY_NETWORK = "gateway_network"
    GATEWAY_DECLINED = "gateway_declined"
    ORDER_MISMATCH = "order_mismatch"
    ABANDONED = "abandoned"

    @property
    def retryable(self) -> bool:
        # a mismatch may mean money moved; it needs manual reconciliation
        return self is not FailureReason.ORDER_MISMATCH


@dataclass(frozen=True)
class CheckoutError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return self.message


@dataclass(frozen=True)
class ValidationError(CheckoutError):
    fields: tuple[str, ...] = ()

    def __str__(self) -> str:  # pragma: no cover
        if self.fields:
            return f"{self.message}: {', '.join(self.fields)}"
        return self.message


@dataclass(frozen=True)
class PricingUnavailable(CheckoutError):
    tier: str
    currency: str

    def __str__(self) -> str:  # pragma: no cover
        return f"pricing_unavailable: {self.tier}/{self.currency} ({self.message})"


@dataclass(frozen=True)
class CouponError(CheckoutError):
    pass


@dataclass(frozen=True)
class CouponEmpty(CouponError):
    pass


@dataclass(frozen=True)
class CouponInvalidOrUnsupported(CouponError):
    code: str

    def __str__(self) -> str:  # pragma: no cover
        return f"coupon_invalid: {self.code} ({self.message})"


@dataclass(frozen=True)
class SessionNotFound(CheckoutError):
    session_id: str

    def __str__(self) -> str:  # pragma: no cover
        return f"session_not_found: {self.session_id} ({self.message})"


@dataclass(frozen=True)
class CustomLinkNotFound(CheckoutError):
    token: str

    def __str__(self) -> str:  # pragma: no cover
        return f"custom_link_not_found: {self.token} ({self.message})"


@dataclass(frozen=True)
class ContentUnavailable(CheckoutError):
    pass


@dataclass(frozen=True)
class InvalidTransition(CheckoutError):
    state: str
    event: str

    def __str__(self) -> str:  # pragma: no cover
        return f"invalid_transition: {self.event} in {self.state} ({self.message})"


@dataclass(frozen=True)
class AttemptInProgress(CheckoutError):
    internal_order_id: str

    def __str__(self) -> str:  # pragma: no cover
        return f"attempt_in_progress: {self.internal_order_id} ({self.message})"


@dataclass(frozen=True)
class GatewayError(CheckoutError):
    pass


@dataclass(frozen=True)
class GatewayAuthError(GatewayError):
    pass


@dataclass(frozen=True)
class GatewayNetworkError(GatewayError):
    pass


@dataclass(frozen=True)
class GatewayDeclined(GatewayError):
    status: str

    def __str__(self) -> str:  # pragma: no cover
        return f"gateway_declined: {self.status} ({self.message})"


@dataclass(frozen=True)
class OrderMismatch(CheckoutError):
    field: str
    expected: str
    actual: str

    def __str__(self) -> str:  # pragma: no cover
        return (
            f"order_mismatch: {self.field} expected={self.expected} "
            f"actual={self.actual} ({self.message})"
        )


@dataclass(frozen=True)
class LedgerError(CheckoutError):
    pass


@dataclass(frozen=True)
class LedgerCreateError(LedgerError):
    pass


@dataclass(frozen=True)
class LedgerUpdateError(LedgerError):
    pass


@dataclass(frozen=True)
class PaymentFailed(CheckoutError):
    reason: FailureReason
    internal_order_id: str | None = None
    cause: str | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"payment_failed: {self.reason.value} ({self.message})"


@dataclass(frozen=True)
class PublishError(CheckoutError):
    pass


def failure_reason_for(err: CheckoutError) -> FailureReason:
    if isinstance(err, LedgerCreateError):
        return FailureReason.LEDGER_CREATE
    if isinstance(err, GatewayAuthError):
        return FailureReason.GATEWAY_AUTH
    if isinstance(err, GatewayNetworkError):
        return FailureReason.GATEWAY_NETWORK
    if isinstance(err, OrderMismatch):
        return FailureReason.ORDER_MISMATCH
    return FailureReason.GATEWAY_DECLINED
