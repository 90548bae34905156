from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import CheckoutError, SessionNotFound
from report_checkout.core.domain.model.session import CheckoutSession
from report_checkout.core.ports.outbound.sessions import SessionChange, SessionRepository

logger = logging.getLogger(__name__)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """Sessions not written for ``idle_seconds`` are dropped."""

    idle_seconds: float = 3600.0
    sweep_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic
    _store: Dict[str, tuple[float, CheckoutSession]] = field(default_factory=dict)
    # sync endpoints run in a thread pool
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _last_sweep: float = 0.0

    def save(self, session: CheckoutSession) -> Result[CheckoutSession, CheckoutError]:
        with self._lock:
            now = self.clock()
            self._sweep(now)
            self._store[session.session_id] = (now, session)
        return Success(session)

    def get(self, session_id: str) -> Result[CheckoutSession, CheckoutError]:
        with self._lock:
            session = self._live(session_id)
        if session is None:
            return Failure(SessionNotFound("session not found", session_id=session_id))
        return Success(session)

    def update(
        self, session_id: str, change: SessionChange
    ) -> Result[CheckoutSession, CheckoutError]:
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return Failure(SessionNotFound("session not found", session_id=session_id))
            changed = change(session)
            if isinstance(changed, Success):
                self._store[session_id] = (self.clock(), changed.unwrap())
        return changed

    def find_by_order_id(self, internal_order_id: str) -> CheckoutSession | None:
        with self._lock:
            for session_id, (_, s) in list(self._store.items()):
                if s.attempt is not None and s.attempt.internal_order_id == internal_order_id:
                    return self._live(session_id)
        return None

    def delete(self, session_id: str) -> Result[None, CheckoutError]:
        with self._lock:
            removed = self._store.pop(session_id, None)
        if removed is None:
            return Failure(SessionNotFound("session not found", session_id=session_id))
        return Success(None)

    def count(self) -> int:
        with self._lock:
            return len(self._store)

    # callers hold the lock

    def _live(self, session_id: str) -> CheckoutSession | None:
        entry = self._store.get(session_id)
        if entry is None:
            return None
        touched, session = entry
        if self.clock() - touched >= self.idle_seconds:
            del self._store[session_id]
            logger.info("session %s expired in %s", session_id, session.state.value)
            return None
        return session

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.sweep_seconds:
            return
        self._last_sweep = now
        stale = [
            sid for sid, (touched, _) in self._store.items() if now - touched >= self.idle_seconds
        ]
        for sid in stale:
            del self._store[sid]
        if stale:
            logger.info("dropped %d idle checkout sessions", len(stale))
