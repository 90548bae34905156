from returns.result import Failure, Success

from report_checkout.core.domain.model.errors import ValidationError
from report_checkout.core.domain.service.validation import validate_billing

from conftest import india_billing, us_billing


class TestValidateBilling:
    def test_complete_us_billing_passes(self):
        assert isinstance(validate_billing(us_billing()), Success)

    def test_missing_required_fields_are_listed(self):
        result = validate_billing(us_billing(first_name=" ", phone_number=""))
        assert isinstance(result, Failure)
        err = result.failure()
        assert isinstance(err, ValidationError)
        assert err.fields == ("first_name", "phone_number")

    def test_email_needs_local_part_and_domain(self):
        for email in ("ada", "@example.com", "ada@localhost"):
            err = validate_billing(us_billing(email=email)).failure()
            assert err.fields == ("email",)

    def test_india_requires_full_address(self):
        err = validate_billing(india_billing(city=None, postal_code="")).failure()
        assert err.fields == ("city", "postal_code")

    def test_address_is_optional_outside_india(self):
        assert isinstance(validate_billing(us_billing(street_address=None)), Success)
