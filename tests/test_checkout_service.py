from decimal import Decimal

from returns.result import Failure

from report_checkout.core.domain.model.billing import Region
from report_checkout.core.domain.model.errors import (
    CouponInvalidOrUnsupported,
    CustomLinkNotFound,
    InvalidTransition,
    SessionNotFound,
    ValidationError,
)
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.quote import CustomPricing
from report_checkout.core.domain.model.session import OrderState
from report_checkout.core.ports.inbound.checkout import (
    StartCheckoutCommand,
    StartCustomCheckoutCommand,
)

from conftest import us_billing


class TestStartSession:
    def test_new_session_is_stored(self, harness):
        s = harness.start()
        assert harness.checkout.get_session(s.session_id).unwrap() == s
        assert s.report.report_id == "r-1042"

    def test_blank_report_id(self, harness):
        result = harness.checkout.start_session(StartCheckoutCommand(" ", "x"))
        assert isinstance(result.failure(), ValidationError)

    def test_unknown_currency_code(self, harness):
        result = harness.checkout.start_session(
            StartCheckoutCommand("r-1", "x", currency="JPY")
        )
        assert result.failure().fields == ("currency",)

    def test_language_selects_rate_payload(self, harness, page):
        german = dict(page, currency_dropdown="EUR")
        harness.rates.by_language[2] = german
        s = harness.checkout.start_session(
            StartCheckoutCommand("r-1", "x", language_id=2)
        ).unwrap()
        assert s.currency is Currency.EUR


class TestCustomSession:
    def test_link_skips_license_step(self, harness):
        harness.custom.links["tok-1"] = CustomPricing(
            token="tok-1",
            report_title="Battery Materials Outlook",
            license_label="Enterprise License",
            amount=Money.of("1200", Currency.USD),
            cgst=Money.zero(Currency.USD),
            sgst=Money.zero(Currency.USD),
            igst=Money.zero(Currency.USD),
        )
        s = harness.checkout.start_custom_session(StartCustomCheckoutCommand("tok-1")).unwrap()
        assert s.state is OrderState.BILLING_ENTRY
        assert s.report.report_id == "custom-tok-1"
        assert s.quote.total.amount == Decimal("1200.00")

        refused = harness.checkout.apply_coupon(s.session_id, "SAVE10")
        assert isinstance(refused.failure(), ValidationError)

        s = harness.checkout.submit_billing(s.session_id, us_billing()).unwrap()
        assert s.state is OrderState.PAYMENT_PENDING
        assert s.quote.total.amount == Decimal("1200.00")

    def test_unknown_link(self, harness):
        result = harness.checkout.start_custom_session(StartCustomCheckoutCommand("nope"))
        assert isinstance(result.failure(), CustomLinkNotFound)


class TestSteps:
    def test_failed_step_leaves_stored_session(self, harness):
        s = harness.start()
        harness.checkout.choose_tier(s.session_id, "single").unwrap()
        result = harness.checkout.apply_coupon(s.session_id, "BOGUS")
        assert isinstance(result.failure(), CouponInvalidOrUnsupported)
        stored = harness.checkout.get_session(s.session_id).unwrap()
        assert stored.coupon_code is None
        assert stored.state is OrderState.BILLING_ENTRY

    def test_unknown_tier(self, harness):
        s = harness.start()
        assert isinstance(harness.checkout.choose_tier(s.session_id, "galaxy").failure(), ValidationError)

    def test_coupon_apply_and_remove(self, harness):
        s = harness.start()
        harness.checkout.choose_tier(s.session_id, "single").unwrap()
        s = harness.checkout.apply_coupon(s.session_id, "save10").unwrap()
        assert s.quote.total.amount == Decimal("3599.00")
        s = harness.checkout.remove_coupon(s.session_id).unwrap()
        assert s.quote.total.amount == Decimal("3999.00")

    def test_region_then_billing(self, harness):
        s = harness.start()
        harness.checkout.choose_tier(s.session_id, "team").unwrap()
        s = harness.checkout.set_region(s.session_id, Region("India", "Maharashtra")).unwrap()
        assert s.quote.tax.igst.amount == Decimal("21600.00")

    def test_steps_reload_rates(self, harness):
        s = harness.start()
        before = harness.rates.loads
        harness.checkout.choose_tier(s.session_id, "single").unwrap()
        assert harness.rates.loads == before + 1

    def test_license_options_view(self, harness):
        s = harness.start("EUR")
        view = harness.checkout.license_options(s.session_id).unwrap()
        assert view.currency == "EUR"
        assert tuple(view.currencies) == ("USD", "INR", "EUR")
        assert [o.fallback_from for o in view.options] == [None, Currency.EUR, Currency.EUR]

    def test_billing_before_license_is_refused(self, harness):
        s = harness.start()
        result = harness.checkout.submit_billing(s.session_id, us_billing())
        assert isinstance(result.failure(), InvalidTransition)

    def test_discard(self, harness):
        s = harness.start()
        harness.checkout.discard_session(s.session_id).unwrap()
        assert isinstance(harness.checkout.get_session(s.session_id).failure(), SessionNotFound)
        assert isinstance(harness.checkout.discard_session(s.session_id), Failure)
