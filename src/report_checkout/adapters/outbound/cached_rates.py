from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from returns.result import Result, Success

from report_checkout.core.domain.model.errors import CheckoutError
from report_checkout.core.domain.model.rates import RateTable
from report_checkout.core.ports.outbound.content import RateSource

logger = logging.getLogger(__name__)


@dataclass
class CachedRateSource(RateSource):
    """Keeps each language's rate table for ``ttl_seconds``; failures are not cached."""

    inner: RateSource
    ttl_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _cache: Dict[int, tuple[float, RateTable]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def load(self, language_id: int) -> Result[RateTable, CheckoutError]:
        now = self.clock()
        with self._lock:
            hit = self._cache.get(language_id)
        if hit is not None and now - hit[0] < self.ttl_seconds:
            return Success(hit[1])

        loaded = self.inner.load(language_id)
        if isinstance(loaded, Success):
            logger.debug("rate table for language %s refreshed", language_id)
            with self._lock:
                self._cache[language_id] = (now, loaded.unwrap())
        return loaded
