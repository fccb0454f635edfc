"""Tests for the Razorpay payment bridge."""

import base64
from unittest.mock import patch

import httpx
import pytest

from versefeed.interfaces import IPaymentBridge
from versefeed.metrics import registry
from versefeed.models import OrderRequest
from versefeed.payments import (
    PaymentBridge,
    PaymentConfigurationError,
    PaymentGatewayError,
    PaymentProcessorError,
    PaymentRequestError,
    RazorpayClient,
    build_order_payload,
    build_subscription_payload,
    parse_json_body,
    to_minor_units,
)


# =============================================================================
# Payload Builders
# =============================================================================


@pytest.mark.parametrize(
    "amount,paise",
    [(499, 49900), (4.99, 499), (1.005, 100)],
)
def test_to_minor_units(amount, paise):
    assert to_minor_units(amount) == paise


def test_order_payload():
    payload = build_order_payload(OrderRequest(amount=499, plan="poet"), "INR")

    assert payload["amount"] == 49900
    assert payload["currency"] == "INR"
    assert payload["payment_capture"] == 1
    assert payload["receipt"].startswith("rcpt_")
    assert payload["receipt"][5:].isdigit()
    assert payload["notes"] == {"plan": "poet", "platform": "web", "original_amount": 499}


def test_order_payload_keeps_requested_currency():
    payload = build_order_payload(OrderRequest(amount=10, currency="USD"), "INR")

    assert payload["currency"] == "USD"


def test_subscription_payload():
    assert build_subscription_payload("plan_X", 12) == {
        "plan_id": "plan_X",
        "customer_notify": 1,
        "total_count": 12,
        "quantity": 1,
    }


def test_parse_json_body_rejects_garbage():
    with pytest.raises(PaymentRequestError) as excinfo:
        parse_json_body(b"{not json")

    assert excinfo.value.status_code == 400
    assert excinfo.value.to_body() == {"error": "Invalid request body"}


# =============================================================================
# Razorpay Client
# =============================================================================


@pytest.mark.asyncio
async def test_client_uses_basic_auth_and_base_url(razorpay_ok):
    async with RazorpayClient(
        "key_id", "key_secret", api_base="https://razorpay.test/v1", transport=razorpay_ok.transport
    ) as client:
        await client.post("/orders", {"amount": 100})

    request = razorpay_ok.requests[0]
    expected = base64.b64encode(b"key_id:key_secret").decode()
    assert str(request.url) == "https://razorpay.test/v1/orders"
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert request.method == "POST"


# =============================================================================
# Orders
# =============================================================================


class TestCreateOrder:
    """POST /orders relay."""

    @pytest.mark.asyncio
    async def test_success_returns_processor_json(self, payment_settings, razorpay_ok):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        order = await bridge.create_order({"amount": 499, "plan": "poet"})

        assert order["id"] == "order_TEST123"
        sent = razorpay_ok.last_json
        assert sent["amount"] == 49900
        assert sent["currency"] == "INR"
        assert sent["notes"]["plan"] == "poet"
        assert str(razorpay_ok.requests[0].url) == "https://razorpay.test/v1/orders"

    @pytest.mark.asyncio
    async def test_missing_credentials_makes_no_call(self, unconfigured_settings, razorpay_ok):
        bridge = PaymentBridge(config=unconfigured_settings, transport=razorpay_ok.transport)

        with pytest.raises(PaymentConfigurationError) as excinfo:
            await bridge.create_order({"amount": 499, "plan": "poet"})

        assert excinfo.value.status_code == 500
        assert excinfo.value.to_body() == {"error": "Server configuration error"}
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            [1, 2],
            {"amount": -5},
            {"plan": "poet"},
            {"amount": "lots"},
            {"amount": 1e308},
            {"amount": float("inf")},
            {"amount": float("nan")},
        ],
    )
    async def test_invalid_body(self, payment_settings, razorpay_ok, body):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        with pytest.raises(PaymentRequestError) as excinfo:
            await bridge.create_order(body)

        assert excinfo.value.status_code == 400
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    async def test_infinity_literal_is_invalid_request(self, payment_settings, razorpay_ok):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        with pytest.raises(PaymentRequestError) as excinfo:
            await bridge.create_order(parse_json_body(b'{"amount": Infinity, "plan": "poet"}'))

        assert excinfo.value.status_code == 400
        assert excinfo.value.to_body()["error"] == "Invalid order request"
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    async def test_amount_overflow_is_invalid_request(self, payment_settings, razorpay_ok):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        with patch("versefeed.payments.to_minor_units", side_effect=OverflowError("too large")):
            with pytest.raises(PaymentRequestError) as excinfo:
                await bridge.create_order({"amount": 10})

        assert excinfo.value.status_code == 400
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    async def test_blank_currency_falls_back_to_default(self, payment_settings, razorpay_ok):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        await bridge.create_order({"amount": 10, "currency": "", "plan": 7})

        assert razorpay_ok.last_json["currency"] == "INR"
        assert razorpay_ok.last_json["notes"]["plan"] == "7"

    @pytest.mark.asyncio
    async def test_processor_error_passes_status_and_description(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(400, {"error": {"code": "BAD_REQUEST_ERROR", "description": "Amount too low"}})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentProcessorError) as excinfo:
            await bridge.create_order({"amount": 0.5})

        assert excinfo.value.status_code == 400
        assert excinfo.value.to_body() == {"error": "Amount too low"}

    @pytest.mark.asyncio
    async def test_processor_error_without_description(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(401, {"error": {}})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentProcessorError) as excinfo:
            await bridge.create_order({"amount": 10})

        assert excinfo.value.status_code == 401
        assert excinfo.value.to_body() == {"error": "Failed to create order"}

    @pytest.mark.asyncio
    async def test_malformed_response(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(502, raw=b"<html>Bad gateway</html>")
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentGatewayError) as excinfo:
            await bridge.create_order({"amount": 10})

        assert excinfo.value.status_code == 500
        assert excinfo.value.to_body() == {"error": "Failed to create payment order"}

    @pytest.mark.asyncio
    async def test_unreachable_processor(self, payment_settings):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        bridge = PaymentBridge(config=payment_settings, transport=httpx.MockTransport(refuse))

        with pytest.raises(PaymentGatewayError):
            await bridge.create_order({"amount": 10})

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(503, {"error": {"description": "Service unavailable"}})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentProcessorError):
            await bridge.create_order({"amount": 10})

        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_outcomes_counted(self, unconfigured_settings):
        labels = {"kind": "order", "outcome": "misconfigured"}
        before = registry.get_sample_value("payment_requests_total", labels) or 0.0

        with pytest.raises(PaymentConfigurationError):
            await PaymentBridge(config=unconfigured_settings).create_order({"amount": 1})

        assert registry.get_sample_value("payment_requests_total", labels) == before + 1


# =============================================================================
# Subscriptions
# =============================================================================


class TestCreateSubscription:
    """POST /subscriptions relay."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["planId", "plan_id", "plan"])
    async def test_plan_id_field_names_are_equivalent(self, payment_settings, razorpay_factory, key):
        fake = razorpay_factory(200, {"id": "sub_TEST", "status": "created"})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        subscription = await bridge.create_subscription({key: "plan_Qjb7LgzjcDPb9e"})

        assert subscription == {"id": "sub_TEST", "status": "created"}
        assert fake.last_json == {
            "plan_id": "plan_Qjb7LgzjcDPb9e",
            "customer_notify": 1,
            "total_count": 12,
            "quantity": 1,
        }
        assert str(fake.requests[0].url) == "https://razorpay.test/v1/subscriptions"

    @pytest.mark.asyncio
    async def test_numeric_plan_id_is_sent_as_string(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(200, {"id": "sub_TEST"})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        await bridge.create_subscription({"planId": 12345, "plan_id": "plan_Qjb7LgzjcDPb9e"})

        assert fake.last_json["plan_id"] == "12345"

    @pytest.mark.asyncio
    async def test_falsy_plan_key_is_skipped(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(200, {"id": "sub_TEST"})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        await bridge.create_subscription({"planId": 0, "plan_id": None, "plan": "plan_C"})

        assert fake.last_json["plan_id"] == "plan_C"

    @pytest.mark.asyncio
    async def test_missing_plan_echoes_body(self, payment_settings, razorpay_ok):
        bridge = PaymentBridge(config=payment_settings, transport=razorpay_ok.transport)

        with pytest.raises(PaymentRequestError) as excinfo:
            await bridge.create_subscription({"tier": "poet"})

        assert excinfo.value.status_code == 400
        assert excinfo.value.to_body() == {
            "error": "Plan ID is required",
            "receivedBody": {"tier": "poet"},
        }
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    async def test_plan_checked_before_credentials(self, unconfigured_settings):
        with pytest.raises(PaymentRequestError):
            await PaymentBridge(config=unconfigured_settings).create_subscription({})

    @pytest.mark.asyncio
    async def test_missing_credentials(self, unconfigured_settings, razorpay_ok):
        bridge = PaymentBridge(config=unconfigured_settings, transport=razorpay_ok.transport)

        with pytest.raises(PaymentConfigurationError) as excinfo:
            await bridge.create_subscription({"planId": "plan_X"})

        assert excinfo.value.to_body() == {"error": "Missing Razorpay credentials"}
        assert razorpay_ok.requests == []

    @pytest.mark.asyncio
    async def test_processor_error(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(400, {"error": {"description": "The id provided does not exist"}})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentProcessorError) as excinfo:
            await bridge.create_subscription({"planId": "plan_missing"})

        assert excinfo.value.status_code == 400
        assert excinfo.value.to_body() == {"error": "The id provided does not exist"}

    @pytest.mark.asyncio
    async def test_processor_error_default_message(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(500, {"unexpected": True})
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentProcessorError) as excinfo:
            await bridge.create_subscription({"planId": "plan_X"})

        assert excinfo.value.to_body() == {"error": "Subscription creation failed"}

    @pytest.mark.asyncio
    async def test_gateway_failure_includes_details(self, payment_settings, razorpay_factory):
        fake = razorpay_factory(200, raw=b"not json")
        bridge = PaymentBridge(config=payment_settings, transport=fake.transport)

        with pytest.raises(PaymentGatewayError) as excinfo:
            await bridge.create_subscription({"planId": "plan_X"})

        body = excinfo.value.to_body()
        assert excinfo.value.status_code == 500
        assert body["error"] == "Subscription request failed"
        assert body["details"]


def test_bridge_satisfies_protocol(payment_settings):
    assert isinstance(PaymentBridge(config=payment_settings), IPaymentBridge)
