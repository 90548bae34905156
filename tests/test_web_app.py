from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from report_checkout.adapters.inbound.web.fastapi_app import create_app
from report_checkout.core.domain.model.errors import GatewayAuthError
from report_checkout.core.domain.model.money import Currency, Money
from report_checkout.core.domain.model.quote import CustomPricing

from conftest import CHECKOUT_PAGE, PUBLIC_URL, build_harness, settlement_response

US_BILLING = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "country": "United States",
    "phone_code": "+1",
    "phone_number": "5550100",
}


def client_for(harness):
    return TestClient(create_app(harness.checkout, harness.payment, fallback_url=PUBLIC_URL))


@pytest.fixture
def client(harness):
    return client_for(harness)


def start(client, **body):
    payload = {"report_id": "r-1042", "report_title": "Global Widget Market"}
    payload.update(body)
    r = client.post("/checkout/sessions", json=payload)
    assert r.status_code == 201, r.text
    return r.json()["session_id"]


def to_payment_pending(client, tier="single"):
    sid = start(client)
    assert client.post(f"/checkout/sessions/{sid}/license", json={"tier": tier}).status_code == 200
    r = client.post(f"/checkout/sessions/{sid}/billing", json=US_BILLING)
    assert r.status_code == 200, r.text
    return sid


class TestSessions:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_start_and_read(self, client):
        sid = start(client)
        body = client.get(f"/checkout/sessions/{sid}").json()
        assert body["state"] == "SELECTING_LICENSE"
        assert body["currency"] == "USD"
        assert body["quote"] is None

    def test_lang_code_maps_to_language_id(self, client):
        sid = start(client, lang="de")
        assert client.get(f"/checkout/sessions/{sid}").json()["language_id"] == 2

    def test_missing_report_id_is_400(self, client):
        r = client.post("/checkout/sessions", json={"report_title": "x"})
        assert r.status_code == 400
        assert r.json()["type"] == "RequestValidationError"

    def test_unknown_session_is_404(self, client):
        r = client.get("/checkout/sessions/nope")
        assert r.status_code == 404
        assert r.json()["type"] == "SessionNotFound"

    def test_discard(self, client):
        sid = start(client)
        assert client.delete(f"/checkout/sessions/{sid}").status_code == 204
        assert client.get(f"/checkout/sessions/{sid}").status_code == 404

    def test_license_options(self, client):
        sid = start(client, currency="INR")
        body = client.get(f"/checkout/sessions/{sid}/license-options").json()
        assert body["currencies"] == ["USD", "INR", "EUR"]
        enterprise = body["options"][2]
        assert enterprise["currency"] == "USD"
        assert enterprise["fallback_from"] == "INR"

    def test_custom_link(self, harness, client):
        harness.custom.links["tok-1"] = CustomPricing(
            token="tok-1",
            report_title="Battery Materials Outlook",
            license_label="Single License",
            amount=Money.of("750", Currency.USD),
            cgst=Money.zero(Currency.USD),
            sgst=Money.zero(Currency.USD),
            igst=Money.zero(Currency.USD),
        )
        r = client.post("/checkout/custom/tok-1")
        assert r.status_code == 201
        assert r.json()["custom"] is True
        assert r.json()["quote"]["total"] == "750.00"
        assert client.post("/checkout/custom/missing").status_code == 404


class TestPricingSteps:
    def test_coupon_and_tax(self, client):
        sid = start(client)
        client.post(f"/checkout/sessions/{sid}/license", json={"tier": "single"})
        quote = client.post(f"/checkout/sessions/{sid}/coupon", json={"code": "save10"}).json()["quote"]
        assert quote["total"] == "3599.00"
        assert quote["coupon_code"] == "SAVE10"

        body = client.post(
            f"/checkout/sessions/{sid}/region", json={"country": "India", "state": "Maharashtra"}
        ).json()
        assert body["currency"] == "INR"
        assert body["currency_locked"] is True
        assert body["quote"]["tax_label"] == "IGST"
        assert body["quote"]["total"] == "94400.00"

    def test_bad_coupon_is_400(self, client):
        sid = start(client)
        client.post(f"/checkout/sessions/{sid}/license", json={"tier": "single"})
        r = client.post(f"/checkout/sessions/{sid}/coupon", json={"code": "BOGUS"})
        assert r.status_code == 400
        assert r.json()["type"] == "CouponInvalidOrUnsupported"

    def test_step_out_of_order_is_409(self, client):
        sid = start(client)
        r = client.post(f"/checkout/sessions/{sid}/billing", json=US_BILLING)
        assert r.status_code == 409
        assert r.json()["type"] == "InvalidTransition"

    def test_locked_currency_without_price_is_422(self, client):
        sid = start(client)
        client.post(f"/checkout/sessions/{sid}/license", json={"tier": "enterprise"})
        r = client.post(f"/checkout/sessions/{sid}/region", json={"country": "India"})
        assert r.status_code == 422
        assert r.json()["type"] == "PricingUnavailable"

    def test_billing_gaps_are_listed(self, client):
        sid = start(client)
        client.post(f"/checkout/sessions/{sid}/license", json={"tier": "single"})
        r = client.post(
            f"/checkout/sessions/{sid}/billing", json=dict(US_BILLING, email="", phone_number="")
        )
        assert r.status_code == 400
        assert r.json()["details"] == [{"field": "email"}, {"field": "phone_number"}]

    def test_back_to_license(self, client):
        sid = start(client)
        client.post(f"/checkout/sessions/{sid}/license", json={"tier": "team"})
        body = client.post(f"/checkout/sessions/{sid}/back").json()
        assert body["state"] == "SELECTING_LICENSE"
        assert body["tier"] is None


class TestThreePhasePayment:
    def test_approve_returns_confirmation(self, client):
        sid = to_payment_pending(client)
        r = client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        assert r.status_code == 201
        begun = r.json()
        assert begun["gateway_order_id"] == "PAY-0001"
        assert begun["redirect"] is None
        assert begun["session"]["attempt"]["internal_order_id"] == begun["internal_order_id"]

        r = client.post(f"/checkout/sessions/{sid}/payments/approve", json={"order_id": "PAY-0001"})
        assert r.status_code == 200
        body = r.json()
        assert body["session"]["state"] == "VERIFIED"
        assert body["confirmation"]["transaction_id"] == "CAP-PAY-0001"
        assert body["confirmation"]["total"] == "3999.00"
        assert body["confirmation"]["invoice_available"] is True
        assert client.get(f"/checkout/sessions/{sid}").status_code == 404

    def test_concurrent_begin_is_409(self, client):
        sid = to_payment_pending(client)
        client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        r = client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        assert r.status_code == 409
        assert r.json()["type"] == "AttemptInProgress"

    def test_amount_mismatch_is_400_and_final(self):
        harness = build_harness(
            dict(
                CHECKOUT_PAGE,
                single_license_actual_price_in_USD="69.99",
                single_license_offer_price_in_USD="59.99",
            )
        )
        harness.paypal.captured_amount = "49.99"
        client = client_for(harness)
        sid = to_payment_pending(client)
        client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})

        r = client.post(f"/checkout/sessions/{sid}/payments/approve", json={"order_id": "PAY-0001"})

        assert r.status_code == 400
        detail = r.json()["details"][0]
        assert detail["reason"] == "order_mismatch"
        assert detail["retryable"] is False
        assert harness.ledger.updates == []
        assert client.post(f"/checkout/sessions/{sid}/payments/retry").status_code == 409

    def test_ledger_down_is_502(self, harness, client):
        harness.ledger.fail_create = True
        sid = to_payment_pending(client)
        r = client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        assert r.status_code == 502
        assert r.json()["details"][0]["reason"] == "ledger_create"

    def test_declined_is_402(self, harness, client):
        harness.paypal.capture_status = "DECLINED"
        sid = to_payment_pending(client)
        client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        r = client.post(f"/checkout/sessions/{sid}/payments/approve", json={"order_id": "PAY-0001"})
        assert r.status_code == 402

    def test_cancel_then_retry(self, client):
        sid = to_payment_pending(client)
        client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "paypal"})
        body = client.post(f"/checkout/sessions/{sid}/payments/cancel").json()
        assert body["state"] == "FAILED"
        assert body["failure"]["reason"] == "abandoned"
        body = client.post(f"/checkout/sessions/{sid}/payments/retry").json()
        assert body["state"] == "PAYMENT_PENDING"
        assert body["attempt"] is None


class TestRedirectPayment:
    def test_callback_and_return(self, client):
        sid = to_payment_pending(client)
        begun = client.post(
            f"/checkout/sessions/{sid}/payments", json={"gateway": "ccavenue"}
        ).json()
        assert begun["redirect"]["access_code"] == "FAKE-ACCESS"
        order_id = begun["internal_order_id"]

        r = client.post(
            "/payments/ccavenue/handle",
            data={"encResp": settlement_response(order_id, f"{PUBLIC_URL}/thanks")},
            follow_redirects=False,
        )
        assert r.status_code == 303
        location = r.headers["location"]
        assert location.startswith(f"{PUBLIC_URL}/thanks?")
        query = {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}

        r = client.get(f"/checkout/sessions/{sid}/payments/return", params=query)
        assert r.status_code == 200
        body = r.json()
        assert body["reconciled"] is True
        assert body["confirmation"]["payment_method"] == "CCAvenue"
        assert body["confirmation"]["transaction_id"] == "TRK-1"

    def test_return_before_callback_then_reconcile(self, client):
        sid = to_payment_pending(client)
        order_id = client.post(
            f"/checkout/sessions/{sid}/payments", json={"gateway": "ccavenue"}
        ).json()["internal_order_id"]

        body = client.get(
            f"/checkout/sessions/{sid}/payments/return",
            params={"status": "success", "orderId": order_id, "transactionId": "TRK-1"},
        ).json()
        assert body["reconciled"] is False
        assert body["session"]["state"] == "CAPTURED"

        client.post(
            "/payments/ccavenue/handle",
            data={"encResp": settlement_response(order_id)},
            follow_redirects=False,
        )
        body = client.post(f"/checkout/sessions/{sid}/payments/reconcile").json()
        assert body["session"]["state"] == "VERIFIED"

    def test_unreadable_callback_goes_to_fallback(self, client):
        r = client.post(
            "/payments/ccavenue/handle", data={"encResp": "garbage"}, follow_redirects=False
        )
        assert r.status_code == 303
        assert r.headers["location"] == f"{PUBLIC_URL}?error=Payment_response_invalid"

    def test_return_with_error_is_402(self, client):
        sid = to_payment_pending(client)
        client.post(f"/checkout/sessions/{sid}/payments", json={"gateway": "ccavenue"})
        r = client.get(
            f"/checkout/sessions/{sid}/payments/return", params={"error": "Payment_Aborted"}
        )
        assert r.status_code == 402
        assert client.get(f"/checkout/sessions/{sid}").json()["state"] == "FAILED"


class TestGatewayEndpoints:
    ORDER = {"reportId": "r-1", "licenseType": "single", "currency": "USD", "amount": "39.99"}

    def test_create_and_verify(self, harness, client):
        r = client.post("/payments/create-order", json=self.ORDER)
        assert r.status_code == 200
        assert r.json() == {"orderID": "PAY-0001"}

        verify = dict(self.ORDER, orderID="PAY-0001")
        r = client.post("/payments/verify-order", json=verify)
        assert r.status_code == 400
        assert r.json()["type"] == "OrderMismatch"

        harness.paypal.capture_order("PAY-0001")
        body = client.post("/payments/verify-order", json=verify).json()
        assert body["valid"] is True
        assert body["orderID"] == "PAY-0001"
        assert body["captureID"] == "CAP-PAY-0001"

    def test_zero_amount_is_400(self, client):
        r = client.post("/payments/create-order", json=dict(self.ORDER, amount="0"))
        assert r.status_code == 400

    def test_gateway_outage_is_500(self, harness, client):
        harness.paypal.create_error = GatewayAuthError("failed to authenticate with paypal")
        r = client.post("/payments/create-order", json=self.ORDER)
        assert r.status_code == 500
        assert r.json()["type"] == "GatewayAuthError"
