from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from returns.result import Result

from report_checkout.core.domain.model.errors import PublishError


@dataclass(frozen=True)
class PaymentStarted:
    session_id: str
    internal_order_id: str
    gateway: str
    amount: str
    currency: str


@dataclass(frozen=True)
class PaymentAttemptFailed:
    session_id: str
    internal_order_id: str | None
    reason: str


@dataclass(frozen=True)
class PaymentVerified:
    session_id: str
    internal_order_id: str
    transaction_id: str
    amount: str
    currency: str


CheckoutEvent = PaymentStarted | PaymentAttemptFailed | PaymentVerified


class EventPublisher(Protocol):
    def publish(self, event: CheckoutEvent) -> Result[None, PublishError]: ...
