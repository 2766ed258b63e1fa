"""
Service-level tests for SubscriptionService: lazy profile sync, expiry and
activation bookkeeping.
"""
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.core.database import utcnow
from app.core.dependencies import merge_profile
from app.core.exceptions import ValidationFailed
from app.core.subscription_service import SubscriptionService
from app.models.payment import Payment
from app.models.subscription_history import SubscriptionHistory
from app.models.user import User
from app.schemas.user import CurrentUser


@pytest.mark.asyncio
async def test_lazy_sync_creates_profile_from_claims(db_session):
    trial_end = utcnow() + timedelta(days=2)
    current = CurrentUser(
        id="sb-9", email="lazy@example.com", first_name="Lazy", grade=9, trial_end_date=trial_end,
    )

    user = await SubscriptionService.get_or_create_profile(db_session, current)

    assert user.id == "sb-9"
    assert user.grade == 9
    assert user.role == "user"
    assert user.subscription_status == "trial"
    assert await db_session.get(User, "sb-9") is user


@pytest.mark.asyncio
async def test_lazy_sync_refuses_administrator(db_session):
    admin = CurrentUser(id="admin", email="admin@brainac.in", role="admin", subscription_status="active")

    with pytest.raises(ValidationFailed):
        await SubscriptionService.get_or_create_profile(db_session, admin)


@pytest.mark.asyncio
async def test_expire_if_lapsed(db_session, make_user):
    await make_user(uid="lapsed", trial_days_left=-0.5)
    await make_user(uid="running", trial_days_left=2)
    lapsed = await db_session.get(User, "lapsed")
    running = await db_session.get(User, "running")

    assert await SubscriptionService.expire_if_lapsed(db_session, lapsed) is True
    assert await SubscriptionService.expire_if_lapsed(db_session, running) is False
    # Already expired: nothing more to do
    assert await SubscriptionService.expire_if_lapsed(db_session, lapsed) is False

    assert lapsed.subscription_status == "expired"
    history = (await db_session.execute(select(SubscriptionHistory))).scalars().all()
    assert [(entry.user_id, entry.status) for entry in history] == [("lapsed", "expired")]


@pytest.mark.asyncio
async def test_expire_active_subscription_at_end_date(db_session, make_user):
    now = utcnow()
    await make_user(uid="paid", status="active", subscription_plan="monthly", subscription_end_date=now)
    user = await db_session.get(User, "paid")

    assert await SubscriptionService.expire_if_lapsed(db_session, user, now) is True
    assert user.subscription_status == "expired"


@pytest.mark.asyncio
async def test_activate_never_overwrites_refund(db_session, make_user):
    await make_user(uid="refunded-user")
    user = await db_session.get(User, "refunded-user")
    now = utcnow()
    db_session.add(Payment(
        id="p1", user_id=user.id, razorpay_payment_id="pay_r", plan_id="monthly",
        amount=29900, status="refunded", created_at=now, updated_at=now,
    ))
    await db_session.commit()

    payment = await SubscriptionService.activate(
        db_session, user, "monthly", razorpay_payment_id="pay_r", payment_status="captured"
    )

    assert payment.id == "p1"
    assert payment.status == "refunded"
    assert user.subscription_status == "active"
    assert len((await db_session.execute(select(Payment))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_lazy_sync_ignores_entitlement_in_user_metadata(db_session):
    identity = {
        "id": "sb-editable",
        "email": "editable@example.com",
        "user_metadata": {"class": 8, "subscriptionStatus": "active", "subscriptionPlan": "yearly"},
    }

    user = await SubscriptionService.get_or_create_profile(db_session, merge_profile(identity, None))

    assert user.grade == 8
    assert user.subscription_status == "trial"
    assert user.subscription_plan is None
    assert user.trial_end_date is None
