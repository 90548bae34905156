from __future__ import annotations

from typing import Protocol

from report_checkout.core.ports.outbound.gateway import RedirectSettlement


class SettlementStore(Protocol):
    """Redirect gateway results recorded by the server-side callback."""

    def record(self, settlement: RedirectSettlement) -> None: ...

    def find(self, internal_order_id: str) -> RedirectSettlement | None: ...

    def discard(self, internal_order_id: str) -> None:
        """Forget a settlement once its session has been reconciled."""
        ...
