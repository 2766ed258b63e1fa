"""
Tests for the administrator endpoints: content CRUD with referential
integrity, user management, payments and refunds, dashboard stats.
"""
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from app.core.database import new_id, utcnow
from app.models.payment import Payment
from app.models.subject import Subject
from app.models.subscription_history import SubscriptionHistory
from app.models.user import User


async def _create_tree(client, headers):
    """Subject > unit > chapter > video through the admin API."""
    subject = (await client.post("/api/admin/subjects", headers=headers, json={
        "name": "Mathematics", "description": "Numbers and shapes", "grade": 8,
    })).json()["data"]
    unit = (await client.post(
        f"/api/admin/subjects/{subject['id']}/units", headers=headers, json={"name": "Rational Numbers"}
    )).json()["data"]
    chapter = (await client.post(
        f"/api/admin/units/{unit['id']}/chapters", headers=headers, json={"name": "Properties"}
    )).json()["data"]
    video = (await client.post(f"/api/admin/chapters/{chapter['id']}/videos", headers=headers, json={
        "title": "Closure Property", "url": "https://videos.test/closure.mp4", "difficulty": "intermediate",
    })).json()["data"]
    return subject, unit, chapter, video


async def _video_count(session_factory, subject_id: str) -> int:
    async with session_factory() as session:
        return (await session.get(Subject, subject_id)).video_count


# --- Content CRUD ---

@pytest.mark.asyncio
async def test_learner_cannot_manage_content(client, make_user, auth_headers):
    user = await make_user()

    response = await client.post("/api/admin/subjects", headers=auth_headers(user), json={"name": "Hack", "grade": 6})

    assert response.status_code == 403
    assert response.json()["adminRequired"] is True


@pytest.mark.asyncio
async def test_create_subject_and_reject_duplicate(client, admin_headers):
    created = await client.post("/api/admin/subjects", headers=admin_headers, json={"name": "Science", "grade": 7})
    duplicate = await client.post("/api/admin/subjects", headers=admin_headers, json={"name": "science", "grade": 7})
    other_grade = await client.post("/api/admin/subjects", headers=admin_headers, json={"name": "Science", "grade": 8})

    assert created.status_code == 201
    assert created.json()["data"]["videoCount"] == 0
    assert duplicate.status_code == 400
    assert other_grade.status_code == 201


@pytest.mark.asyncio
async def test_subject_grade_must_be_in_range(client, admin_headers):
    response = await client.post("/api/admin/subjects", headers=admin_headers, json={"name": "Physics", "grade": 11})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_video_ancestry_is_derived_from_chapter(client, admin_headers, session_factory):
    subject, unit, chapter, video = await _create_tree(client, admin_headers)

    assert video["chapterId"] == chapter["id"]
    assert video["unitId"] == unit["id"]
    assert video["subjectId"] == subject["id"]
    assert video["subjectName"] == "Mathematics"
    assert video["grade"] == 8
    assert video["order"] == 1
    assert await _video_count(session_factory, subject["id"]) == 1


@pytest.mark.asyncio
async def test_delete_refused_while_children_exist(client, admin_headers, session_factory):
    subject, unit, chapter, video = await _create_tree(client, admin_headers)

    subject_delete = await client.delete(f"/api/admin/subjects/{subject['id']}", headers=admin_headers)
    unit_delete = await client.delete(f"/api/admin/units/{unit['id']}", headers=admin_headers)
    chapter_delete = await client.delete(f"/api/admin/chapters/{chapter['id']}", headers=admin_headers)

    assert subject_delete.status_code == 400
    assert subject_delete.json()["error"] == (
        "Cannot delete subject with existing content (1 units, 1 videos). Delete them first."
    )
    assert unit_delete.status_code == 400
    assert chapter_delete.status_code == 400

    # Bottom-up deletion succeeds and keeps the cached count in step
    assert (await client.delete(f"/api/admin/videos/{video['id']}", headers=admin_headers)).status_code == 200
    assert await _video_count(session_factory, subject["id"]) == 0
    assert (await client.delete(f"/api/admin/chapters/{chapter['id']}", headers=admin_headers)).status_code == 200
    assert (await client.delete(f"/api/admin/units/{unit['id']}", headers=admin_headers)).status_code == 200
    assert (await client.delete(f"/api/admin/subjects/{subject['id']}", headers=admin_headers)).status_code == 200


@pytest.mark.asyncio
async def test_subject_with_only_a_unit_cannot_be_deleted(client, admin_headers):
    subject = (await client.post(
        "/api/admin/subjects", headers=admin_headers, json={"name": "English", "grade": 6}
    )).json()["data"]
    await client.post(f"/api/admin/subjects/{subject['id']}/units", headers=admin_headers, json={"name": "Poems"})

    response = await client.delete(f"/api/admin/subjects/{subject['id']}", headers=admin_headers)

    assert response.status_code == 400
    assert "1 units" in response.json()["error"]


@pytest.mark.asyncio
async def test_moving_video_updates_counts_and_ancestry(client, admin_headers, session_factory):
    subject, _, _, video = await _create_tree(client, admin_headers)
    other = (await client.post(
        "/api/admin/subjects", headers=admin_headers, json={"name": "Science", "grade": 9}
    )).json()["data"]
    other_unit = (await client.post(
        f"/api/admin/subjects/{other['id']}/units", headers=admin_headers, json={"name": "Motion"}
    )).json()["data"]
    other_chapter = (await client.post(
        f"/api/admin/units/{other_unit['id']}/chapters", headers=admin_headers, json={"name": "Velocity"}
    )).json()["data"]

    response = await client.put(
        f"/api/admin/videos/{video['id']}", headers=admin_headers, json={"chapterId": other_chapter["id"]}
    )

    assert response.status_code == 200
    moved = response.json()["data"]
    assert moved["subjectId"] == other["id"]
    assert moved["grade"] == 9
    assert await _video_count(session_factory, subject["id"]) == 0
    assert await _video_count(session_factory, other["id"]) == 1


@pytest.mark.asyncio
async def test_subject_grade_change_propagates_to_videos(client, admin_headers):
    subject, _, _, video = await _create_tree(client, admin_headers)

    await client.put(f"/api/admin/subjects/{subject['id']}", headers=admin_headers, json={"grade": 9})
    listing = await client.get("/api/admin/videos", headers=admin_headers, params={"subjectId": subject["id"]})

    assert listing.status_code == 200
    data = listing.json()["data"]
    assert [v["grade"] for v in data["videos"]] == [9]
    assert data["stats"]["byDifficulty"] == {"intermediate": 1}


@pytest.mark.asyncio
async def test_standalone_video_under_subject(client, admin_headers, session_factory):
    subject = (await client.post(
        "/api/admin/subjects", headers=admin_headers, json={"name": "History", "grade": 10}
    )).json()["data"]

    response = await client.post("/api/admin/videos", headers=admin_headers, json={
        "subjectId": subject["id"], "title": "Overview", "url": "https://videos.test/overview.mp4",
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["chapterId"] is None
    assert data["grade"] == 10
    assert await _video_count(session_factory, subject["id"]) == 1


@pytest.mark.asyncio
async def test_units_are_listed_in_order(client, admin_headers):
    subject = (await client.post(
        "/api/admin/subjects", headers=admin_headers, json={"name": "Mathematics", "grade": 6}
    )).json()["data"]
    for name, order in (("Second", 2), ("First", 1), ("Unordered", None)):
        await client.post(
            f"/api/admin/subjects/{subject['id']}/units", headers=admin_headers, json={"name": name, "order": order}
        )

    response = await client.get(f"/api/admin/subjects/{subject['id']}/units", headers=admin_headers)

    assert [unit["name"] for unit in response.json()["data"]] == ["First", "Second", "Unordered"]


# --- Users ---

@pytest.mark.asyncio
async def test_list_users_with_search_and_status(client, admin_headers, make_user):
    await make_user(uid="u1", email="anita@example.com")
    await make_user(uid="u2", email="bala@example.com", status="active", subscription_plan="monthly")

    searched = await client.get("/api/admin/users", headers=admin_headers, params={"search": "ANITA"})
    active = await client.get("/api/admin/users", headers=admin_headers, params={"status": "active"})

    assert [u["email"] for u in searched.json()["data"]["users"]] == ["anita@example.com"]
    assert [u["email"] for u in active.json()["data"]["users"]] == ["bala@example.com"]
    assert active.json()["data"]["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_admin_activates_user_subscription(client, admin_headers, make_user, session_factory):
    user = await make_user(uid="u1")

    response = await client.put(
        f"/api/admin/users/{user.id}/subscription",
        headers=admin_headers,
        json={"subscriptionStatus": "active", "subscriptionPlan": "quarterly"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["subscriptionStatus"] == "active"
    assert data["subscriptionPlan"] == "quarterly"
    async with session_factory() as session:
        history = (await session.execute(
            select(SubscriptionHistory).where(SubscriptionHistory.user_id == user.id)
        )).scalars().all()
    assert [(entry.status, entry.plan_id) for entry in history] == [("active", "quarterly")]


@pytest.mark.asyncio
async def test_admin_update_unknown_user(client, admin_headers):
    response = await client.put(
        "/api/admin/users/missing/subscription", headers=admin_headers, json={"subscriptionStatus": "active"}
    )

    assert response.status_code == 404


# --- Payments ---

@pytest_asyncio.fixture
async def payments(session_factory, make_user):
    user = await make_user(uid="payer", email="payer@example.com")
    now = utcnow()
    rows = {
        "completed": Payment(
            id=new_id(), user_id=user.id, razorpay_order_id="order_a", razorpay_payment_id="pay_a",
            plan_id="monthly", amount=29900, status="completed", created_at=now, updated_at=now,
        ),
        "pending": Payment(
            id=new_id(), user_id=user.id, razorpay_order_id="order_b",
            plan_id="yearly", amount=249900, status="pending",
            created_at=now - timedelta(days=40), updated_at=now - timedelta(days=40),
        ),
    }
    async with session_factory() as session:
        session.add_all(rows.values())
        await session.commit()
    return {key: payment.id for key, payment in rows.items()}


@pytest.mark.asyncio
async def test_list_payments_with_summary(client, admin_headers, payments):
    response = await client.get("/api/admin/payments", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"]["totalCount"] == 2
    assert data["payments"][0]["userEmail"] == "payer@example.com"
    assert data["summary"]["completedAmount"] == 29900
    assert data["summary"]["totalAmount"] == 279800
    assert data["summary"]["countByStatus"] == {"completed": 1, "pending": 1}


@pytest.mark.asyncio
async def test_list_payments_filters(client, admin_headers, payments):
    by_status = await client.get("/api/admin/payments", headers=admin_headers, params={"status": "pending"})
    by_date = await client.get("/api/admin/payments", headers=admin_headers, params={"dateRange": "month"})
    by_search = await client.get("/api/admin/payments", headers=admin_headers, params={"search": "pay_a"})

    assert [p["id"] for p in by_status.json()["data"]["payments"]] == [payments["pending"]]
    assert [p["id"] for p in by_date.json()["data"]["payments"]] == [payments["completed"]]
    assert [p["id"] for p in by_search.json()["data"]["payments"]] == [payments["completed"]]


@pytest.mark.asyncio
async def test_refund_is_terminal(client, admin_headers, payments):
    payment_id = payments["completed"]

    refunded = await client.post(
        f"/api/admin/payments/{payment_id}/refund", headers=admin_headers, json={"reason": "Duplicate charge"}
    )
    again = await client.post(f"/api/admin/payments/{payment_id}/refund", headers=admin_headers, json={})
    patched = await client.patch(
        f"/api/admin/payments/{payment_id}/status", headers=admin_headers, json={"status": "completed"}
    )

    assert refunded.status_code == 200
    assert refunded.json()["data"]["status"] == "refunded"
    assert refunded.json()["data"]["refundReason"] == "Duplicate charge"
    assert refunded.json()["data"]["refundedAt"]
    assert again.status_code == 400
    assert again.json()["error"] == "Payment already refunded"
    assert patched.status_code == 400
    assert patched.json()["error"] == "Refunded payments cannot be modified"


@pytest.mark.asyncio
async def test_only_completed_payments_can_be_refunded(client, admin_headers, payments):
    response = await client.post(f"/api/admin/payments/{payments['pending']}/refund", headers=admin_headers, json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Only completed payments can be refunded"


@pytest.mark.asyncio
async def test_status_patch_cannot_refund(client, admin_headers, payments):
    refused = await client.patch(
        f"/api/admin/payments/{payments['pending']}/status", headers=admin_headers, json={"status": "refunded"}
    )
    accepted = await client.patch(
        f"/api/admin/payments/{payments['pending']}/status", headers=admin_headers, json={"status": "failed"}
    )

    assert refused.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "failed"


@pytest.mark.asyncio
async def test_unknown_payment(client, admin_headers):
    response = await client.get("/api/admin/payments/missing", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "Payment not found"


# --- Dashboard ---

@pytest.mark.asyncio
async def test_stats(client, admin_headers, payments, make_user):
    await make_user(uid="active-1", status="active", subscription_plan="monthly")

    response = await client.get("/api/admin/stats", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalUsers"] == 2
    assert data["activeUsers"] == 1
    assert data["usersByStatus"]["trial"] == 1
    assert data["newStudentsToday"] == 2
    assert data["totalRevenue"] == 29900
    assert len(data["revenueByMonth"]) == 12
    assert data["revenueByMonth"][-1]["value"] == 29900
    assert len(data["recentTransactions"]) == 2
