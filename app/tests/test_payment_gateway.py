"""
Tests for Razorpay signature verification and the REST client error
mapping.
"""
import hashlib
import hmac

import httpx
import pytest

from app.core.payment_gateway import (
    PaymentGatewayError,
    RazorpayGateway,
    generate_signature,
    verify_payment_signature,
    verify_subscription_signature,
    verify_webhook_signature,
)

SECRET = "test_secret"


def test_generate_signature_is_hex_hmac_sha256():
    expected = hmac.new(SECRET.encode(), b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert generate_signature(SECRET, "order_1|pay_1") == expected


def test_order_signature_accepts_matching_fields():
    signature = generate_signature(SECRET, "order_1|pay_1")
    assert verify_payment_signature("order_1", "pay_1", signature, SECRET) is True


@pytest.mark.parametrize("order_id, payment_id", [
    ("order_2", "pay_1"),
    ("order_1", "pay_2"),
    ("pay_1", "order_1"),
])
def test_order_signature_rejects_tampered_fields(order_id, payment_id):
    signature = generate_signature(SECRET, "order_1|pay_1")
    assert verify_payment_signature(order_id, payment_id, signature, SECRET) is False


def test_order_signature_rejects_wrong_secret_and_empty_signature():
    signature = generate_signature("other_secret", "order_1|pay_1")
    assert verify_payment_signature("order_1", "pay_1", signature, SECRET) is False
    assert verify_payment_signature("order_1", "pay_1", "", SECRET) is False


def test_subscription_signature_uses_payment_then_subscription():
    signature = generate_signature(SECRET, "pay_1|sub_1")

    assert verify_subscription_signature("pay_1", "sub_1", signature, SECRET) is True
    assert verify_subscription_signature("pay_1", "sub_2", signature, SECRET) is False
    assert verify_subscription_signature("sub_1", "pay_1", signature, SECRET) is False


def test_webhook_signature_covers_raw_body():
    body = b'{"event":"subscription.activated"}'
    signature = generate_signature(SECRET, body)

    assert verify_webhook_signature(body, signature, SECRET) is True
    assert verify_webhook_signature(body + b" ", signature, SECRET) is False
    assert verify_webhook_signature(body, None, SECRET) is False


@pytest.mark.asyncio
async def test_gateway_sends_basic_auth_and_amount_in_paise():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"id": "order_1", "amount": 29900, "currency": "INR"})

    gateway = RazorpayGateway(
        "rzp_key", SECRET, base_url="https://api.razorpay.test", transport=httpx.MockTransport(handler)
    )
    order = await gateway.create_order(amount=29900, currency="INR", receipt="receipt_1")

    assert order["id"] == "order_1"
    assert seen["path"] == "/orders"
    assert seen["auth"].startswith("Basic ")


@pytest.mark.asyncio
async def test_gateway_error_response_raises_with_description():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"description": "The id provided does not exist"}})

    gateway = RazorpayGateway(
        "rzp_key", SECRET, base_url="https://api.razorpay.test", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.cancel_subscription("sub_missing")

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "The id provided does not exist"


@pytest.mark.asyncio
async def test_gateway_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = RazorpayGateway(
        "rzp_key", SECRET, base_url="https://api.razorpay.test", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.fetch_payment("pay_1")

    assert exc_info.value.status_code is None
