"""
Administrator endpoints: dashboard stats, learner management and payment
administration. Every route requires ``role == admin`` (enforced where the
router is mounted).
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, utcnow
from app.core.exceptions import NotFound, ValidationFailed
from app.core.subscription_service import SubscriptionService, calculate_end_date, get_profile_or_404
from app.models.payment import Payment
from app.models.subject import Subject
from app.models.user import User
from app.models.video import Video
from app.schemas.admin import StatsResponse, MonthlyPoint, AdminUserListResponse, AdminSubscriptionUpdate
from app.schemas.common import ApiResponse, Pagination
from app.schemas.payment import (
    PaymentResponse,
    PaymentListResponse,
    PaymentPagination,
    PaymentSummary,
    PaymentStatusUpdate,
    PaymentStatus,
    RefundRequest,
)
from app.schemas.user import UserProfileResponse, SubscriptionStatus

logger = logging.getLogger(__name__)

router = APIRouter()

REVENUE_STATUSES = ("completed", "captured")
DATE_RANGES = {
    "today": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "quarter": timedelta(days=90),
}


def _payment_response(payment: Payment, user: User | None = None) -> PaymentResponse:
    response = PaymentResponse.model_validate(payment)
    if user is not None:
        response.user_email = user.email
        response.user_name = user.full_name
    return response


def _month_keys(now: datetime, months: int = 12) -> list[str]:
    first = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return [(first - relativedelta(months=offset)).strftime("%Y-%m") for offset in range(months - 1, -1, -1)]


async def _count(db: AsyncSession, query) -> int:
    return (await db.execute(query)).scalar_one()


@router.get("/stats", response_model=ApiResponse[StatsResponse])
async def get_stats(db: AsyncSession = Depends(get_db)):
    """
    Dashboard aggregation.

    Revenue counts completed and captured payments (paise). Monthly series
    cover the last 12 calendar months, oldest first.
    """
    now = utcnow()

    total_users = await _count(db, select(func.count(User.id)))
    status_rows = await db.execute(
        select(User.subscription_status, func.count(User.id)).group_by(User.subscription_status)
    )
    users_by_status = {status.value: 0 for status in SubscriptionStatus}
    users_by_status.update({status: count for status, count in status_rows.all()})

    new_students_today = await _count(
        db, select(func.count(User.id)).where(User.created_at >= now - timedelta(days=1))
    )
    total_subjects = await _count(db, select(func.count(Subject.id)))
    total_videos = await _count(db, select(func.count(Video.id)))
    total_revenue = await _count(
        db,
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status.in_(REVENUE_STATUSES)),
    )

    recent = await db.execute(
        select(Payment, User)
        .outerjoin(User, User.id == Payment.user_id)
        .order_by(Payment.created_at.desc())
        .limit(5)
    )
    recent_transactions = [_payment_response(payment, user) for payment, user in recent.all()]

    months = _month_keys(now)
    window_start = datetime.strptime(months[0], "%Y-%m").replace(tzinfo=now.tzinfo)
    revenue = dict.fromkeys(months, 0)
    growth = dict.fromkeys(months, 0)

    payments = await db.execute(
        select(Payment.created_at, Payment.amount)
        .where(Payment.status.in_(REVENUE_STATUSES))
        .where(Payment.created_at >= window_start)
    )
    for created_at, amount in payments.all():
        key = created_at.strftime("%Y-%m")
        if key in revenue:
            revenue[key] += amount

    signups = await db.execute(select(User.created_at).where(User.created_at >= window_start))
    for (created_at,) in signups.all():
        key = created_at.strftime("%Y-%m")
        if key in growth:
            growth[key] += 1

    return ApiResponse(data=StatsResponse(
        total_users=total_users,
        users_by_status=users_by_status,
        active_users=users_by_status.get("active", 0),
        new_students_today=new_students_today,
        total_subjects=total_subjects,
        total_videos=total_videos,
        total_revenue=total_revenue,
        recent_transactions=recent_transactions,
        revenue_by_month=[MonthlyPoint(month=m, value=revenue[m]) for m in months],
        user_growth_by_month=[MonthlyPoint(month=m, value=growth[m]) for m in months],
    ))


@router.get("/users", response_model=ApiResponse[AdminUserListResponse])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[SubscriptionStatus] = Query(None),
    search: Optional[str] = Query(None, description="Matches email or name"),
    db: AsyncSession = Depends(get_db),
):
    """Paginated learner list, newest first."""
    query = select(User)
    if status is not None:
        query = query.where(User.subscription_status == status.value)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(or_(
            func.lower(User.email).like(pattern),
            func.lower(User.first_name).like(pattern),
            func.lower(User.last_name).like(pattern),
        ))

    total = await _count(db, select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )

    return ApiResponse(data=AdminUserListResponse(
        users=[UserProfileResponse.from_user(user) for user in result.scalars().all()],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit),
    ))


@router.put("/users/{user_id}/subscription", response_model=ApiResponse[UserProfileResponse])
async def update_user_subscription(
    user_id: str,
    payload: AdminSubscriptionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Override a learner's subscription state.

    Activating without an end date starts a fresh plan term now. The
    change is recorded in the subscription history.
    """
    user = await get_profile_or_404(db, user_id)
    now = utcnow()
    status = payload.subscription_status.value

    if payload.subscription_plan is not None:
        user.subscription_plan = payload.subscription_plan.value
    if payload.grade is not None:
        user.grade = payload.grade

    if status == "active":
        plan_id = user.subscription_plan or "monthly"
        user.subscription_plan = plan_id
        if payload.subscription_end_date is not None:
            user.subscription_end_date = payload.subscription_end_date
            user.subscription_start_date = user.subscription_start_date or now
        else:
            user.subscription_start_date = now
            user.subscription_end_date = calculate_end_date(now, plan_id)
    elif status == "trial":
        user.trial_start_date = user.trial_start_date or now
        if payload.trial_end_date is not None:
            user.trial_end_date = payload.trial_end_date
    elif status == "cancelled":
        user.cancelled_at = now

    user.subscription_status = status
    user.updated_at = now

    window_start = user.trial_start_date if status == "trial" else user.subscription_start_date
    window_end = user.trial_end_date if status == "trial" else user.subscription_end_date
    await SubscriptionService.record_history(
        db,
        user.id,
        status,
        plan_id=user.subscription_plan if status != "trial" else None,
        start_date=window_start,
        end_date=window_end,
        razorpay_subscription_id=user.razorpay_subscription_id,
    )
    await db.commit()
    logger.info("Admin set subscription of %s to %s", user.id, status)

    return ApiResponse(data=UserProfileResponse.from_user(user), message="User subscription updated successfully")


# --- Payments ---

@router.get("/payments", response_model=ApiResponse[PaymentListResponse])
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PaymentStatus] = Query(None),
    method: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Matches Razorpay ids or user email"),
    date_range: Optional[str] = Query(None, alias="dateRange", pattern="^(today|week|month|quarter|all)$"),
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated payment list with filters and a summary over the filtered set.
    """
    conditions = []
    if status is not None:
        conditions.append(Payment.status == status.value)
    if method:
        conditions.append(Payment.payment_method == method)
    if date_range in DATE_RANGES:
        conditions.append(Payment.created_at >= utcnow() - DATE_RANGES[date_range])
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(or_(
            func.lower(Payment.razorpay_payment_id).like(pattern),
            func.lower(Payment.razorpay_order_id).like(pattern),
            func.lower(User.email).like(pattern),
        ))

    base = select(Payment, User).outerjoin(User, User.id == Payment.user_id).where(*conditions)

    total = await _count(db, select(func.count()).select_from(base.subquery()))
    rows = await db.execute(
        base.order_by(Payment.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )

    summary_rows = await db.execute(
        select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .outerjoin(User, User.id == Payment.user_id)
        .where(*conditions)
        .group_by(Payment.status)
    )
    count_by_status = {}
    amount_by_status = {}
    for payment_status, count, amount in summary_rows.all():
        count_by_status[payment_status] = count
        amount_by_status[payment_status] = amount

    return ApiResponse(data=PaymentListResponse(
        payments=[_payment_response(payment, user) for payment, user in rows.all()],
        pagination=PaymentPagination(
            current_page=page,
            total_pages=(total + limit - 1) // limit,
            total_count=total,
            per_page=limit,
        ),
        summary=PaymentSummary(
            total_amount=sum(amount_by_status.values()),
            completed_amount=sum(amount_by_status.get(s, 0) for s in REVENUE_STATUSES),
            refunded_amount=amount_by_status.get("refunded", 0),
            count_by_status=count_by_status,
        ),
    ))


async def _get_payment(db: AsyncSession, payment_id: str) -> Payment:
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    return payment


@router.get("/payments/{payment_id}", response_model=ApiResponse[PaymentResponse])
async def get_payment(payment_id: str, db: AsyncSession = Depends(get_db)):
    payment = await _get_payment(db, payment_id)
    user = await db.get(User, payment.user_id)
    return ApiResponse(data=_payment_response(payment, user))


@router.patch("/payments/{payment_id}/status", response_model=ApiResponse[PaymentResponse])
async def update_payment_status(
    payment_id: str,
    payload: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Manually set a payment status.

    Raises:
        ValidationFailed 400: For refunded payments, or when asked to set
        ``refunded`` (use the refund endpoint)
    """
    payment = await _get_payment(db, payment_id)
    if payment.is_refunded:
        raise ValidationFailed("Refunded payments cannot be modified")
    if payload.status == PaymentStatus.REFUNDED:
        raise ValidationFailed("Use the refund endpoint to refund a payment")

    payment.status = payload.status.value
    payment.updated_at = utcnow()
    await db.commit()
    logger.info("Payment %s status set to %s", payment.id, payment.status)

    user = await db.get(User, payment.user_id)
    return ApiResponse(data=_payment_response(payment, user), message="Payment status updated successfully")


@router.post("/payments/{payment_id}/refund", response_model=ApiResponse[PaymentResponse])
async def refund_payment(
    payment_id: str,
    payload: RefundRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Mark a completed payment as refunded. Refunded is terminal.

    Raises:
        ValidationFailed 400: If already refunded or not completed
    """
    payment = await _get_payment(db, payment_id)
    if payment.is_refunded:
        raise ValidationFailed("Payment already refunded")
    if payment.status not in REVENUE_STATUSES:
        raise ValidationFailed("Only completed payments can be refunded")

    now = utcnow()
    payment.status = "refunded"
    payment.refund_reason = payload.reason
    payment.refunded_at = now
    payment.updated_at = now
    await db.commit()
    logger.info("Payment %s refunded: %s", payment.id, payload.reason)

    user = await db.get(User, payment.user_id)
    return ApiResponse(data=_payment_response(payment, user), message="Payment refunded successfully")
