from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import LedgerCreateError, LedgerUpdateError
from report_checkout.core.domain.model.session import LedgerRef
from report_checkout.core.ports.outbound.ledger import (
    LedgerCreateRequest,
    LedgerUpdateRequest,
    LedgerUpdateResult,
    OrderLedger,
)


@dataclass
class InMemoryOrderLedger(OrderLedger):
    """
    Ledger double. Replaying a create with the same internal order id returns
    the original reference, like the remote ledger's idempotency key handling.
    """

    fail_create: bool = False
    fail_update: bool = False
    invoice_file: str | None = "invoice.pdf"
    created: Dict[str, LedgerCreateRequest] = field(default_factory=dict)
    updates: List[LedgerUpdateRequest] = field(default_factory=list)
    _refs: Dict[str, LedgerRef] = field(default_factory=dict)

    def create_order(
        self, request: LedgerCreateRequest
    ) -> Result[LedgerRef, LedgerCreateError]:
        if self.fail_create:
            return Failure(LedgerCreateError("ledger is unavailable"))
        ref = self._refs.get(request.internal_order_id)
        if ref is None:
            ref = LedgerRef(user_id=f"user-{len(self._refs) + 1}", language_id=request.language_id)
            self._refs[request.internal_order_id] = ref
            self.created[request.internal_order_id] = request
        return Success(ref)

    def update_order(
        self, request: LedgerUpdateRequest
    ) -> Result[LedgerUpdateResult, LedgerUpdateError]:
        if self.fail_update:
            return Failure(LedgerUpdateError("ledger update rejected"))
        self.updates.append(request)
        return Success(LedgerUpdateResult(invoice_file=self.invoice_file))
