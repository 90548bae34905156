from decimal import Decimal

from report_checkout.core.domain.model.license import LicenseTier
from report_checkout.core.domain.model.money import Currency, parse_amount
from report_checkout.core.domain.model.rates import RateTable, coupon_key, price_key


class TestParseAmount:
    def test_strips_symbols_and_grouping(self):
        assert parse_amount("$4,999") == Decimal("4999")
        assert parse_amount("₹ 1,00,000") == Decimal("100000")
        assert parse_amount("1,299.50") == Decimal("1299.50")

    def test_blank_and_garbage_are_none(self):
        assert parse_amount(None) is None
        assert parse_amount("") is None
        assert parse_amount("n/a") is None
        assert parse_amount("1.2.3") is None


class TestRateTable:
    def test_offered_currencies_follow_dropdown_order(self, rates):
        assert rates.currencies == (Currency.USD, Currency.INR, Currency.EUR)

    def test_missing_dropdown_offers_usd_only(self):
        table = RateTable.from_payload({price_key("offer", LicenseTier.SINGLE, Currency.USD): "10"})
        assert table.currencies == (Currency.USD,)

    def test_rows_are_typed(self, rates):
        row = rates.row(LicenseTier.SINGLE, Currency.INR)
        assert row is not None
        assert row.list_price == Decimal("100000")
        assert row.offer_price == Decimal("80000")
        assert row.igst_rate == Decimal("18")
        assert row.title == "Single User License"

    def test_generic_discount_percent_applies_to_every_currency(self, rates):
        row = rates.row(LicenseTier.SINGLE, Currency.EUR)
        assert row is not None
        assert row.discount_percent == Decimal("20")
        assert row.offer_price is None

    def test_missing_rows_for_offered_currencies_are_flagged(self, rates):
        problems = {(f.tier, f.currency, f.problem) for f in rates.flags}
        assert (LicenseTier.ENTERPRISE, Currency.INR, "missing") in problems
        assert (LicenseTier.TEAM, Currency.EUR, "missing") in problems
        # GBP is not offered, so its gaps are not problems
        assert all(f.currency is not Currency.GBP for f in rates.flags)

    def test_offer_above_list_is_rejected(self, page):
        page["team_license_offer_price_in_USD"] = "8000"
        table = RateTable.from_payload(page)
        assert table.row(LicenseTier.TEAM, Currency.USD) is None
        assert any(f.problem == "offer_above_list" for f in table.flags)

    def test_coupons_are_keyed_by_tier_currency_and_code(self, rates):
        assert rates.coupons[coupon_key(LicenseTier.SINGLE, Currency.USD, "save10")] == Decimal("3599")
        assert rates.coupon_total(LicenseTier.SINGLE, Currency.INR, "SAVE10") == Decimal("72000")
        assert rates.coupon_total(LicenseTier.TEAM, Currency.USD, "SAVE10") is None

    def test_hyphenated_coupon_codes_are_kept(self, page):
        page["single_license_offer_code_SPRING-24_in_USD"] = "3499"
        table = RateTable.from_payload(page)
        assert table.coupon_total(LicenseTier.SINGLE, Currency.USD, "spring-24") == Decimal("3499")

    def test_unreadable_coupon_key_is_logged(self, page, caplog):
        page["single_license_offer_code_SAVE 5_in_USD"] = "3799"
        with caplog.at_level("WARNING", logger="report_checkout.core.domain.model.rates"):
            table = RateTable.from_payload(page)
        assert "SAVE 5" in caplog.text
        assert table.coupon_total(LicenseTier.SINGLE, Currency.USD, "SAVE 5") is None

    def test_unknown_dropdown_entries_are_skipped(self):
        table = RateTable.from_payload({"currency_dropdown": "USD,JPY,INR"})
        assert table.currencies == (Currency.USD, Currency.INR)
