"""
Subscription endpoints: plan catalog, Razorpay checkout, verification,
cancel / pause / resume, status and history.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.config import TRIAL_DAYS, CURRENCY
from app.core.database import get_db, utcnow
from app.core.dependencies import get_current_user
from app.core.payment_gateway import RazorpayGateway, get_payment_gateway, get_optional_payment_gateway
from app.core.plans import PLANS, get_plan, public_plan
from app.core.subscription_service import SubscriptionService, build_status_snapshot
from app.schemas.common import ApiResponse
from app.schemas.subscription import (
    PlansResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    CreatePlanRequest,
    CreatePlanResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    SubscriptionStatusResponse,
    SubscriptionActionResponse,
    HistoryEntryResponse,
)
from app.schemas.user import CurrentUser

router = APIRouter()


@router.get("/plans", response_model=ApiResponse[PlansResponse])
async def get_plans():
    """Public plan catalog."""
    return ApiResponse(data=PlansResponse(
        plans=[public_plan(plan) for plan in PLANS],
        trial_duration=f"{TRIAL_DAYS} days",
        currency=CURRENCY,
    ))


@router.post("/create-order", response_model=ApiResponse[CreateOrderResponse])
async def create_order(
    payload: CreateOrderRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """Create a one-off Razorpay order for a plan (amount taken from the catalog)."""
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    order = await SubscriptionService.create_order(db, gateway, user, payload.plan_id.value)
    return ApiResponse(data=CreateOrderResponse(**order))


@router.post("/create-plan", response_model=ApiResponse[CreatePlanResponse])
async def create_plan(
    payload: CreatePlanRequest,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """Register a catalog plan with Razorpay for recurring billing."""
    created = await SubscriptionService.create_gateway_plan(gateway, payload.plan_id.value)
    return ApiResponse(data=CreatePlanResponse(**created))


@router.post("/create-subscription", response_model=ApiResponse[CreateSubscriptionResponse])
async def create_subscription(
    payload: CreateSubscriptionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """Create a Razorpay subscription; the caller completes checkout with it."""
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    created = await SubscriptionService.create_subscription(
        db, gateway, user, payload.plan_id.value, payload.razorpay_plan_id
    )
    return ApiResponse(data=CreateSubscriptionResponse(**created))


@router.post("/verify-payment", response_model=ApiResponse[VerifyPaymentResponse])
async def verify_payment(
    payload: VerifyPaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """
    Verify the Razorpay checkout signature and activate the plan.

    Raises:
        ValidationFailed 400: "Payment verification failed" on a bad signature
    """
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    payment = await SubscriptionService.verify_payment(db, gateway, user, payload)

    return ApiResponse(
        data=VerifyPaymentResponse(
            subscription_status=user.subscription_status,
            subscription_plan=user.subscription_plan,
            plan_name=get_plan(user.subscription_plan)["name"],
            subscription_start_date=user.subscription_start_date,
            subscription_end_date=user.subscription_end_date,
            payment_id=payment.razorpay_payment_id or payment.id,
        ),
        message="Payment verified successfully",
    )


@router.post("/cancel", response_model=ApiResponse[SubscriptionActionResponse])
async def cancel_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway | None = Depends(get_optional_payment_gateway),
):
    """Cancel the caller's subscription. Always converges to ``cancelled`` locally."""
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    synced = await SubscriptionService.cancel(db, gateway, user)
    return ApiResponse(
        data=SubscriptionActionResponse(
            subscription_status=user.subscription_status,
            subscription_id=user.razorpay_subscription_id,
            cancelled_at=user.cancelled_at,
            gateway_synced=synced,
        ),
        message="Subscription cancelled successfully",
    )


@router.post("/pause", response_model=ApiResponse[SubscriptionActionResponse])
async def pause_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    await SubscriptionService.pause(db, gateway, user)
    return ApiResponse(
        data=SubscriptionActionResponse(
            subscription_status=user.subscription_status,
            subscription_id=user.razorpay_subscription_id,
        ),
        message="Subscription paused successfully",
    )


@router.post("/resume", response_model=ApiResponse[SubscriptionActionResponse])
async def resume_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    user = await SubscriptionService.get_or_create_profile(db, current_user)
    await SubscriptionService.resume(db, gateway, user)
    return ApiResponse(
        data=SubscriptionActionResponse(
            subscription_status=user.subscription_status,
            subscription_id=user.razorpay_subscription_id,
        ),
        message="Subscription resumed successfully",
    )


@router.get("/status", response_model=ApiResponse[SubscriptionStatusResponse])
async def get_subscription_status(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Lifecycle snapshot: status, window dates, days remaining and expiry.

    A stored trial or active window that has ended is persisted as
    ``expired`` here.
    """
    now = utcnow()
    subject = current_user
    if current_user.has_profile:
        user = await SubscriptionService.get_or_create_profile(db, current_user)
        await SubscriptionService.expire_if_lapsed(db, user, now)
        subject = user

    return ApiResponse(data=SubscriptionStatusResponse(**build_status_snapshot(subject, now)))


@router.get("/history", response_model=ApiResponse[List[HistoryEntryResponse]])
async def get_subscription_history(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's lifecycle transitions, newest first."""
    entries = await SubscriptionService.get_history(db, current_user.id)
    return ApiResponse(data=[HistoryEntryResponse.model_validate(e) for e in entries])
