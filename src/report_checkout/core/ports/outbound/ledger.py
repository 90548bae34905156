from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from returns.result import Result

from report_checkout.core.domain.model.billing import BillingDetails
from report_checkout.core.domain.model.errors import LedgerCreateError, LedgerUpdateError
from report_checkout.core.domain.model.quote import Quote
from report_checkout.core.domain.model.session import LedgerRef


@dataclass(frozen=True)
class LedgerCreateRequest:
    internal_order_id: str
    language_id: int
    billing: BillingDetails
    quote: Quote


@dataclass(frozen=True)
class LedgerUpdateRequest:
    internal_order_id: str
    ref: LedgerRef
    transaction_id: str
    payment_method: str
    purchase_date: datetime
    report_title: str
    quote: Quote
    payment_status: str = "Completed"


@dataclass(frozen=True)
class LedgerUpdateResult:
    invoice_file: str | None = None


class OrderLedger(Protocol):
    """
    Remote order ledger. Both calls carry the attempt's internal order id so
    the ledger can deduplicate replays.
    """

    def create_order(
        self, request: LedgerCreateRequest
    ) -> Result[LedgerRef, LedgerCreateError]: ...

    def update_order(
        self, request: LedgerUpdateRequest
    ) -> Result[LedgerUpdateResult, LedgerUpdateError]: ...
