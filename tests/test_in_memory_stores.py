from datetime import datetime, timezone

from returns.result import Failure, Success

from report_checkout.adapters.outbound.in_memory_sessions import InMemorySessionRepository
from report_checkout.adapters.outbound.in_memory_settlements import InMemorySettlementStore
from report_checkout.core.domain.model.errors import InvalidTransition, SessionNotFound
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.session import (
    CheckoutSession,
    GatewayKind,
    OrderState,
    PaymentAttempt,
    ReportRef,
)
from report_checkout.core.ports.outbound.gateway import RedirectSettlement


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def session(session_id="s-1", order_id=None):
    attempt = None
    if order_id:
        attempt = PaymentAttempt(
            internal_order_id=order_id,
            gateway=GatewayKind.REDIRECT,
            amount=Money.of("3999", Currency.USD),
            started_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
    return CheckoutSession(
        session_id=session_id,
        report=ReportRef("r-1042", "Global Widget Market"),
        language_id=1,
        state=OrderState.PAYMENT_PENDING if attempt else OrderState.BILLING_ENTRY,
        currency=Currency.USD,
        attempt=attempt,
    )


class TestSessionRepository:
    def test_idle_session_expires(self):
        clock = FakeClock()
        repo = InMemorySessionRepository(idle_seconds=60, clock=clock)
        repo.save(session())

        clock.now += 59
        assert isinstance(repo.get("s-1"), Success)
        clock.now += 1
        assert isinstance(repo.get("s-1").failure(), SessionNotFound)
        assert repo.count() == 0

    def test_writes_keep_a_session_alive(self):
        clock = FakeClock()
        repo = InMemorySessionRepository(idle_seconds=60, clock=clock)
        repo.save(session())
        for _ in range(3):
            clock.now += 50
            repo.update("s-1", Success)
        assert isinstance(repo.get("s-1"), Success)

    def test_save_sweeps_abandoned_sessions(self):
        clock = FakeClock()
        repo = InMemorySessionRepository(idle_seconds=60, sweep_seconds=10, clock=clock)
        for i in range(5):
            repo.save(session(f"old-{i}"))

        clock.now += 120
        repo.save(session("fresh"))
        assert repo.count() == 1

    def test_failed_update_leaves_session_untouched(self):
        repo = InMemorySessionRepository()
        original = session()
        repo.save(original)

        refused = repo.update(
            "s-1", lambda s: Failure(InvalidTransition("no", s.state.value, "test"))
        )
        assert isinstance(refused.failure(), InvalidTransition)
        assert repo.get("s-1").unwrap() is original

    def test_update_of_missing_session(self):
        repo = InMemorySessionRepository()
        result = repo.update("nope", Success)
        assert isinstance(result.failure(), SessionNotFound)

    def test_find_by_order_id(self):
        repo = InMemorySessionRepository()
        repo.save(session("s-1"))
        repo.save(session("s-2", order_id="ord-2"))
        assert repo.find_by_order_id("ord-2").session_id == "s-2"
        assert repo.find_by_order_id("ord-9") is None


class TestSettlementStore:
    def settlement(self, order_id="ord-1"):
        return RedirectSettlement(
            internal_order_id=order_id,
            order_status="Success",
            tracking_id="TRK-1",
            amount="3999.00",
            currency="USD",
        )

    def test_discard(self):
        store = InMemorySettlementStore()
        store.record(self.settlement())
        store.discard("ord-1")
        store.discard("ord-1")
        assert store.find("ord-1") is None

    def test_unclaimed_settlements_expire(self):
        clock = FakeClock()
        store = InMemorySettlementStore(ttl_seconds=100, clock=clock)
        store.record(self.settlement("ord-1"))
        clock.now += 100
        assert store.find("ord-1") is None

        store.record(self.settlement("ord-2"))
        clock.now += 50
        store.record(self.settlement("ord-3"))
        assert store.count() == 2
        clock.now += 50
        store.record(self.settlement("ord-4"))
        # ord-2 reached its ttl and is dropped on the next write
        assert store.count() == 2
        assert store.find("ord-3") is not None
