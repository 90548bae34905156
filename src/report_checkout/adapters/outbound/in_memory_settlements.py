from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from report_checkout.core.ports.outbound.gateway import RedirectSettlement
from report_checkout.core.ports.outbound.settlements import SettlementStore


@dataclass
class InMemorySettlementStore(SettlementStore):
    """Unclaimed settlements are kept for ``ttl_seconds``."""

    ttl_seconds: float = 86400.0
    clock: Callable[[], float] = time.monotonic
    _store: Dict[str, tuple[float, RedirectSettlement]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, settlement: RedirectSettlement) -> None:
        with self._lock:
            now = self.clock()
            for order_id in [
                k for k, (at, _) in self._store.items() if now - at >= self.ttl_seconds
            ]:
                del self._store[order_id]
            self._store[settlement.internal_order_id] = (now, settlement)

    def find(self, internal_order_id: str) -> RedirectSettlement | None:
        with self._lock:
            entry = self._store.get(internal_order_id)
            if entry is None:
                return None
            if self.clock() - entry[0] >= self.ttl_seconds:
                del self._store[internal_order_id]
                return None
            return entry[1]

    def discard(self, internal_order_id: str) -> None:
        with self._lock:
            self._store.pop(internal_order_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._store)
