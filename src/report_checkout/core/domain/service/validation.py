from __future__ import annotations

from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.billing import BillingDetails
from report_checkout.core.domain.model.errors import CheckoutError, ValidationError

REQUIRED_FIELDS = ("first_name", "last_name", "email", "country", "phone_number")
INDIA_REQUIRED_FIELDS = ("street_address", "state", "city", "postal_code")


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_required(billing: BillingDetails) -> Result[BillingDetails, CheckoutError]:
    missing = tuple(f for f in REQUIRED_FIELDS if _blank(getattr(billing, f)))
    if missing:
        return Failure(ValidationError("required billing fields missing", fields=missing))
    return Success(billing)


def validate_email(billing: BillingDetails) -> Result[BillingDetails, CheckoutError]:
    local, _, domain = billing.email.strip().partition("@")
    if not local or "." not in domain:
        return Failure(ValidationError("email is not valid", fields=("email",)))
    return Success(billing)


def validate_india_address(
    billing: BillingDetails,
) -> Result[BillingDetails, CheckoutError]:
    if not billing.region.is_india:
        return Success(billing)
    missing = tuple(f for f in INDIA_REQUIRED_FIELDS if _blank(getattr(billing, f)))
    if missing:
        return Failure(
            ValidationError("address is required for buyers in India", fields=missing)
        )
    return Success(billing)


def validate_billing(billing: BillingDetails) -> Result[BillingDetails, CheckoutError]:
    return (
        Success(billing)
        .bind(validate_required)
        .bind(validate_email)
        .bind(validate_india_address)
    )
