"""
Tests for the Razorpay webhook endpoint: signature check over the raw body
and lifecycle transitions routed by the stored subscription id.
"""
import json

import pytest
from sqlalchemy import select

from app.core.payment_gateway import generate_signature
from app.models.payment import Payment
from app.models.user import User

WEBHOOK_URL = "/api/subscription/webhook"


def _event(name: str, subscription_id: str = "sub_hook_1", plan_id: str = "quarterly", payment: dict | None = None):
    payload = {
        "subscription": {
            "entity": {"id": subscription_id, "status": name.split(".")[-1], "notes": {"plan_id": plan_id}},
        },
    }
    if payment is not None:
        payload["payment"] = {"entity": payment}
    return {"entity": "event", "event": name, "payload": payload}


async def _post(client, secret: str, event: dict, signature: str | None = None):
    body = json.dumps(event).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Razorpay-Signature": signature if signature is not None else generate_signature(secret, body),
    }
    return await client.post(WEBHOOK_URL, content=body, headers=headers)


async def _reload(session_factory, user_id: str) -> User:
    async with session_factory() as session:
        return await session.get(User, user_id)


@pytest.mark.asyncio
async def test_activated_event_activates_subscription(client, make_user, session_factory, webhook_secret):
    user = await make_user(razorpay_subscription_id="sub_hook_1")

    response = await _post(client, webhook_secret, _event("subscription.activated"))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Webhook processed"
    assert body["data"] == {"status": "processed", "event": "subscription.activated", "userId": user.id}

    stored = await _reload(session_factory, user.id)
    assert stored.subscription_status == "active"
    assert stored.subscription_plan == "quarterly"
    assert stored.subscription_end_date is not None


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected(client, make_user, session_factory, webhook_secret):
    user = await make_user(razorpay_subscription_id="sub_hook_1")

    response = await _post(client, webhook_secret, _event("subscription.activated"), signature="deadbeef")

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid webhook signature"}
    assert (await _reload(session_factory, user.id)).subscription_status == "trial"


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(client, make_user):
    await make_user(razorpay_subscription_id="sub_hook_1")

    response = await client.post(WEBHOOK_URL, json=_event("subscription.activated"))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancelled_event(client, make_user, session_factory, webhook_secret):
    user = await make_user(status="active", subscription_plan="monthly", razorpay_subscription_id="sub_hook_1")

    response = await _post(client, webhook_secret, _event("subscription.cancelled"))

    assert response.status_code == 200
    stored = await _reload(session_factory, user.id)
    assert stored.subscription_status == "cancelled"
    assert stored.cancelled_at is not None


@pytest.mark.asyncio
async def test_paused_and_resumed_events(client, make_user, session_factory, webhook_secret):
    user = await make_user(status="active", subscription_plan="monthly", razorpay_subscription_id="sub_hook_1")

    await _post(client, webhook_secret, _event("subscription.paused"))
    assert (await _reload(session_factory, user.id)).subscription_status == "paused"

    await _post(client, webhook_secret, _event("subscription.resumed"))
    assert (await _reload(session_factory, user.id)).subscription_status == "active"


@pytest.mark.asyncio
async def test_payment_captured_records_payment_once(client, make_user, session_factory, webhook_secret):
    user = await make_user(razorpay_subscription_id="sub_hook_1")
    event = _event(
        "payment.captured",
        plan_id="monthly",
        payment={"id": "pay_hook_1", "order_id": "order_hook_1", "amount": 29900, "status": "captured"},
    )

    first = await _post(client, webhook_secret, event)
    second = await _post(client, webhook_secret, event)

    assert first.status_code == 200
    assert second.status_code == 200
    async with session_factory() as session:
        payments = (await session.execute(select(Payment).where(Payment.user_id == user.id))).scalars().all()
    assert [(p.razorpay_payment_id, p.status) for p in payments] == [("pay_hook_1", "captured")]


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(client, webhook_secret):
    response = await _post(client, webhook_secret, _event("invoice.paid"))

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ignored"


@pytest.mark.asyncio
async def test_unknown_subscription_is_ignored(client, make_user, webhook_secret):
    await make_user(razorpay_subscription_id="sub_hook_1")

    response = await _post(client, webhook_secret, _event("subscription.activated", subscription_id="sub_other"))

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ignored"


@pytest.mark.asyncio
async def test_malformed_body_is_rejected(client, webhook_secret):
    body = b"not json"
    response = await client.post(
        WEBHOOK_URL,
        content=body,
        headers={"X-Razorpay-Signature": generate_signature(webhook_secret, body)},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook payload"
