"""
Service layer for the subscription lifecycle.

This module owns the subscription state machine
(trial -> active -> cancelled / paused / expired), the premium-content gate,
and the values derived from a user's current window (days remaining,
expiry). Razorpay calls go through ``RazorpayGateway``; every transition
appends a ``SubscriptionHistory`` row.
"""
import logging
import math
import time
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import TRIAL_DAYS, CURRENCY
from app.core.database import new_id, utcnow
from app.core.exceptions import ValidationFailed, NotFound, UpstreamFailure
from app.core.payment_gateway import RazorpayGateway, PaymentGatewayError
from app.core.plans import get_plan, amount_paise, PLANS_BY_ID
from app.models.user import User
from app.models.payment import Payment
from app.models.subscription_history import SubscriptionHistory
from app.schemas.subscription import VerifyPaymentRequest
from app.schemas.user import CurrentUser

logger = logging.getLogger(__name__)

TRIAL = "trial"
ACTIVE = "active"
EXPIRED = "expired"
CANCELLED = "cancelled"
PAUSED = "paused"

SECONDS_PER_DAY = 24 * 60 * 60


def has_content_access(status: str, trial_end_date: datetime | None, now: datetime) -> bool:
    """
    Premium content gate.

    Active subscriptions always pass (the end date is enforced by the
    expiry path, not here). Trials pass strictly before ``trial_end_date``.
    """
    if status == ACTIVE:
        return True
    if status == TRIAL and trial_end_date is not None:
        return now < trial_end_date
    return False


def calculate_end_date(start: datetime, plan_id: str) -> datetime:
    """
    End of a paid window using calendar arithmetic.

    Month-end dates clamp: 2024-01-31 + 1 month is 2024-02-29.
    """
    return start + get_plan(plan_id)["term"]


def calculate_days_remaining(end_date: datetime | None, now: datetime) -> int:
    """Whole days left in a window, rounded up and floored at 0."""
    if end_date is None:
        return 0
    seconds = (end_date - now).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


def current_window_end(status: str, trial_end_date, subscription_end_date):
    if status == TRIAL:
        return trial_end_date
    if status in (ACTIVE, PAUSED):
        return subscription_end_date
    return None


def build_status_snapshot(user, now: datetime) -> dict:
    """
    Derive the lifecycle snapshot shown to a user.

    Args:
        user: ``User`` row or ``CurrentUser``
        now (datetime): Reference time (UTC)

    Returns:
        dict: status fields plus days_remaining, is_expired and
        needs_subscription
    """
    status = getattr(user.subscription_status, "value", user.subscription_status)
    end_date = current_window_end(status, user.trial_end_date, user.subscription_end_date)
    days_remaining = calculate_days_remaining(end_date, now)

    if status in (TRIAL, ACTIVE):
        is_expired = days_remaining == 0
    else:
        is_expired = True

    return {
        "subscription_status": status,
        "subscription_plan": user.subscription_plan,
        "trial_end_date": user.trial_end_date,
        "subscription_start_date": user.subscription_start_date,
        "subscription_end_date": user.subscription_end_date,
        "days_remaining": days_remaining,
        "is_expired": is_expired,
        "needs_subscription": is_expired,
    }


class SubscriptionService:
    """
    Service class for subscription lifecycle operations.

    Methods take the database session (and the gateway where one is
    needed) explicitly; they commit their own changes.
    """

    @staticmethod
    async def record_history(
        db: AsyncSession,
        user_id: str,
        status: str,
        plan_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        payment_id: str | None = None,
        razorpay_subscription_id: str | None = None,
    ) -> SubscriptionHistory:
        """Append one audit entry. Caller commits."""
        now = utcnow()
        entry = SubscriptionHistory(
            id=new_id(),
            user_id=user_id,
            plan_id=plan_id,
            status=status,
            start_date=start_date,
            end_date=end_date,
            payment_id=payment_id,
            razorpay_subscription_id=razorpay_subscription_id,
            created_at=now,
            updated_at=now,
        )
        db.add(entry)
        return entry

    @staticmethod
    async def start_trial(db: AsyncSession, user: User, now: datetime | None = None) -> User:
        """
        Put a newly created profile on its trial window.

        Sets ``trial_start_date = now`` and ``trial_end_date = now + TRIAL_DAYS``
        and records a ``trial`` history entry. Caller commits.
        """
        now = now or utcnow()
        user.subscription_status = TRIAL
        user.trial_start_date = now
        user.trial_end_date = now + timedelta(days=TRIAL_DAYS)
        user.updated_at = now
        await SubscriptionService.record_history(
            db,
            user.id,
            TRIAL,
            start_date=user.trial_start_date,
            end_date=user.trial_end_date,
        )
        return user

    @staticmethod
    async def get_or_create_profile(db: AsyncSession, current_user: CurrentUser) -> User:
        """
        Fetch the stored profile for the caller (lazy sync).

        Accounts created before profiles were stored only exist at the
        identity provider; their profile row is created from the merged
        claims the first time a lifecycle operation needs it.

        Raises:
            ValidationFailed: For the synthetic administrator, who has no profile
        """
        user = await db.get(User, current_user.id)
        if user is not None:
            return user

        if current_user.is_admin:
            raise ValidationFailed("Administrator account has no subscription profile")

        now = utcnow()
        user = User(
            id=current_user.id,
            email=current_user.email,
            first_name=current_user.first_name,
            last_name=current_user.last_name,
            display_name=current_user.display_name,
            grade=current_user.grade or 6,
            role="user",
            subscription_status=getattr(current_user.subscription_status, "value", current_user.subscription_status),
            subscription_plan=current_user.subscription_plan,
            subscription_start_date=current_user.subscription_start_date,
            subscription_end_date=current_user.subscription_end_date,
            trial_start_date=current_user.trial_start_date,
            trial_end_date=current_user.trial_end_date,
            razorpay_subscription_id=current_user.razorpay_subscription_id,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        await db.commit()
        logger.info("Profile created via lazy sync for %s", user.id)
        return user

    @staticmethod
    async def get_history(db: AsyncSession, user_id: str) -> list[SubscriptionHistory]:
        """Lifecycle history for a user, newest first."""
        result = await db.execute(
            select(SubscriptionHistory)
            .where(SubscriptionHistory.user_id == user_id)
            .order_by(SubscriptionHistory.created_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def expire_if_lapsed(db: AsyncSession, user: User, now: datetime | None = None) -> bool:
        """
        Persist ``expired`` for a trial or active user whose window has ended.

        Returns:
            bool: True if the user was transitioned
        """
        now = now or utcnow()
        end_date = current_window_end(user.subscription_status, user.trial_end_date, user.subscription_end_date)
        if user.subscription_status not in (TRIAL, ACTIVE) or end_date is None or now < end_date:
            return False

        previous = user.subscription_status
        user.subscription_status = EXPIRED
        user.updated_at = now
        await SubscriptionService.record_history(
            db,
            user.id,
            EXPIRED,
            plan_id=user.subscription_plan if previous == ACTIVE else None,
            start_date=user.subscription_start_date if previous == ACTIVE else user.trial_start_date,
            end_date=end_date,
            razorpay_subscription_id=user.razorpay_subscription_id,
        )
        await db.commit()
        logger.info("Subscription for %s expired (was %s)", user.id, previous)
        return True

    # --- Gateway-backed checkout ---

    @staticmethod
    async def create_order(db: AsyncSession, gateway: RazorpayGateway, user: User, plan_id: str) -> dict:
        """
        Create a Razorpay order for a plan and record it as a pending payment.

        The amount always comes from the plan catalog, in paise.

        Raises:
            ValidationFailed: If the plan is unknown
            UpstreamFailure: If Razorpay rejects the order (nothing is stored)
        """
        plan = get_plan(plan_id)
        amount = amount_paise(plan)
        try:
            order = await gateway.create_order(
                amount=amount,
                currency=CURRENCY,
                receipt=f"receipt_{int(time.time() * 1000)}",
                notes={"user_id": user.id, "plan_id": plan["id"]},
            )
        except PaymentGatewayError as e:
            raise UpstreamFailure("Failed to create payment order", detail=e.message) from e

        now = utcnow()
        db.add(Payment(
            id=new_id(),
            user_id=user.id,
            razorpay_order_id=order["id"],
            plan_id=plan["id"],
            amount=amount,
            currency=CURRENCY,
            status="pending",
            created_at=now,
            updated_at=now,
        ))
        await db.commit()
        logger.info("Order %s created for %s (%s)", order["id"], user.id, plan["id"])

        return {
            "order_id": order["id"],
            "amount": order.get("amount", amount),
            "currency": order.get("currency", CURRENCY),
            "key": gateway.key_id,
            "plan_id": plan["id"],
        }

    @staticmethod
    async def create_gateway_plan(gateway: RazorpayGateway, plan_id: str) -> dict:
        """
        Register a catalog plan with Razorpay for recurring billing.

        Raises:
            UpstreamFailure: If Razorpay rejects the plan
        """
        plan = get_plan(plan_id)
        amount = amount_paise(plan)
        try:
            created = await gateway.create_plan(
                period=plan["period"],
                interval=plan["interval"],
                name=f"Brainac {plan['name']}",
                amount=amount,
                currency=CURRENCY,
            )
        except PaymentGatewayError as e:
            raise UpstreamFailure("Failed to create subscription plan", detail=e.message) from e

        return {
            "razorpay_plan_id": created["id"],
            "plan_id": plan["id"],
            "period": plan["period"],
            "interval": plan["interval"],
            "amount": amount,
            "currency": CURRENCY,
        }

    @staticmethod
    async def create_subscription(
        db: AsyncSession,
        gateway: RazorpayGateway,
        user: User,
        plan_id: str,
        razorpay_plan_id: str | None = None,
    ) -> dict:
        """
        Create a Razorpay subscription for the user.

        The subscription id is stored on the profile so webhooks can find
        the user, and the first charge is recorded as a pending payment
        that carries the plan. The status only changes once payment is
        verified.

        Raises:
            UpstreamFailure: If Razorpay rejects the plan or subscription
        """
        plan = get_plan(plan_id)
        if not razorpay_plan_id:
            razorpay_plan_id = (await SubscriptionService.create_gateway_plan(gateway, plan["id"]))["razorpay_plan_id"]

        try:
            subscription = await gateway.create_subscription(
                plan_id=razorpay_plan_id,
                total_count=plan["total_count"],
                notes={"user_id": user.id, "plan_id": plan["id"]},
            )
        except PaymentGatewayError as e:
            raise UpstreamFailure("Failed to create subscription", detail=e.message) from e

        now = utcnow()
        user.razorpay_subscription_id = subscription["id"]
        user.updated_at = now
        db.add(Payment(
            id=new_id(),
            user_id=user.id,
            razorpay_subscription_id=subscription["id"],
            plan_id=plan["id"],
            amount=amount_paise(plan),
            currency=CURRENCY,
            status="pending",
            created_at=now,
            updated_at=now,
        ))
        await db.commit()
        logger.info("Razorpay subscription %s created for %s", subscription["id"], user.id)

        return {
            "subscription_id": subscription["id"],
            "razorpay_plan_id": razorpay_plan_id,
            "status": subscription.get("status"),
            "short_url": subscription.get("short_url"),
            "key": gateway.key_id,
            "plan_id": plan["id"],
        }

    # --- Transitions ---

    @staticmethod
    async def activate(
        db: AsyncSession,
        user: User,
        plan_id: str,
        now: datetime | None = None,
        razorpay_order_id: str | None = None,
        razorpay_payment_id: str | None = None,
        razorpay_subscription_id: str | None = None,
        razorpay_signature: str | None = None,
        payment_status: str = "completed",
        record_payment: bool = True,
    ) -> Payment | None:
        """
        Transition a user to ``active`` for one plan term starting now.

        A pending payment for the same order is completed in place;
        otherwise a new payment row is created. A payment id that is
        already recorded is not recorded twice.

        Returns:
            Payment | None: The payment row, if one was recorded
        """
        plan = get_plan(plan_id)
        now = now or utcnow()

        user.subscription_status = ACTIVE
        user.subscription_plan = plan["id"]
        user.subscription_start_date = now
        user.subscription_end_date = calculate_end_date(now, plan["id"])
        user.cancelled_at = None
        if razorpay_subscription_id:
            user.razorpay_subscription_id = razorpay_subscription_id
        user.updated_at = now

        payment = None
        if record_payment:
            payment = await SubscriptionService._find_payment(
                db, razorpay_order_id, razorpay_payment_id, razorpay_subscription_id
            )
            if payment is None:
                payment = Payment(
                    id=new_id(),
                    user_id=user.id,
                    plan_id=plan["id"],
                    amount=amount_paise(plan),
                    currency=CURRENCY,
                    created_at=now,
                )
                db.add(payment)
            payment.razorpay_order_id = razorpay_order_id or payment.razorpay_order_id
            payment.razorpay_payment_id = razorpay_payment_id or payment.razorpay_payment_id
            payment.razorpay_subscription_id = razorpay_subscription_id or payment.razorpay_subscription_id
            payment.razorpay_signature = razorpay_signature or payment.razorpay_signature
            # Refunds are terminal and a verified payment stays completed
            if payment.status not in ("refunded", "completed"):
                payment.status = payment_status
            payment.updated_at = now

        await SubscriptionService.record_history(
            db,
            user.id,
            ACTIVE,
            plan_id=plan["id"],
            start_date=user.subscription_start_date,
            end_date=user.subscription_end_date,
            payment_id=payment.id if payment else None,
            razorpay_subscription_id=user.razorpay_subscription_id,
        )
        await db.commit()
        logger.info(
            "Subscription activated for %s: %s until %s",
            user.id, plan["id"], user.subscription_end_date.isoformat()
        )
        return payment

    @staticmethod
    async def _find_payment(
        db: AsyncSession,
        order_id: str | None,
        payment_id: str | None,
        subscription_id: str | None = None,
    ) -> Payment | None:
        if payment_id:
            result = await db.execute(select(Payment).where(Payment.razorpay_payment_id == payment_id))
            payment = result.scalars().first()
            if payment is not None:
                return payment
        if order_id:
            result = await db.execute(
                select(Payment)
                .where(Payment.razorpay_order_id == order_id)
                .where(Payment.status == "pending")
            )
            return result.scalars().first()
        if subscription_id:
            result = await db.execute(
                select(Payment)
                .where(Payment.razorpay_subscription_id == subscription_id)
                .where(Payment.status == "pending")
                .order_by(Payment.created_at.desc())
            )
            return result.scalars().first()
        return None

    @staticmethod
    async def _checkout_plan(db: AsyncSession, user: User, payload: VerifyPaymentRequest) -> str:
        """
        Resolve the plan a verified checkout pays for.

        Order mode requires the caller's own pending order and bills its
        stored plan. Subscription mode requires the caller's own Razorpay
        subscription and bills the plan of its pending first charge, when
        one is recorded. A payment id that was already settled, or that
        belongs to someone else, is never accepted again.

        Raises:
            ValidationFailed 400: Foreign or already processed checkout, or a plan mismatch
        """
        result = await db.execute(
            select(Payment).where(Payment.razorpay_payment_id == payload.razorpay_payment_id)
        )
        recorded = result.scalars().first()
        if recorded is not None and (recorded.user_id != user.id or recorded.status in ("completed", "refunded")):
            logger.warning("Rejected reuse of payment %s by %s", payload.razorpay_payment_id, user.id)
            raise ValidationFailed("Payment has already been processed")

        requested = get_plan(payload.plan_id)["id"]

        if payload.razorpay_subscription_id:
            if payload.razorpay_subscription_id != user.razorpay_subscription_id:
                raise ValidationFailed("Subscription does not belong to this user")
            pending = await SubscriptionService._find_payment(
                db, None, None, payload.razorpay_subscription_id
            )
            plan_id = pending.plan_id if pending is not None else requested
        else:
            result = await db.execute(
                select(Payment).where(Payment.razorpay_order_id == payload.razorpay_order_id)
            )
            orders = result.scalars().all()
            if not orders:
                raise ValidationFailed("Unknown payment order")
            if any(order.user_id != user.id for order in orders):
                logger.warning("Order %s submitted by non-owner %s", payload.razorpay_order_id, user.id)
                raise ValidationFailed("Order does not belong to this user")
            pending = next((order for order in orders if order.status == "pending"), None)
            if pending is None:
                raise ValidationFailed("Payment has already been processed")
            plan_id = pending.plan_id

        if requested != plan_id:
            raise ValidationFailed("Plan does not match the order")
        return plan_id

    @staticmethod
    async def verify_payment(
        db: AsyncSession,
        gateway: RazorpayGateway,
        user: User,
        payload: VerifyPaymentRequest,
    ) -> Payment:
        """
        Verify a checkout callback and activate the subscription.

        Order mode checks HMAC(order_id|payment_id). Subscription mode checks
        HMAC(payment_id|subscription_id) and, if that fails, asks Razorpay
        whether the payment was captured. The activated plan is always the
        one recorded when checkout started.

        Raises:
            ValidationFailed 400: Unknown plan, missing ids, failed verification,
                or a checkout that is not the caller's to settle
        """
        get_plan(payload.plan_id)

        if payload.razorpay_subscription_id:
            verified = gateway.verify_subscription_signature(
                payload.razorpay_payment_id,
                payload.razorpay_subscription_id,
                payload.razorpay_signature,
            )
            if not verified:
                logger.warning(
                    "Subscription signature mismatch for payment %s, checking capture status",
                    payload.razorpay_payment_id,
                )
                try:
                    gateway_payment = await gateway.fetch_payment(payload.razorpay_payment_id)
                    verified = gateway_payment.get("status") == "captured"
                except PaymentGatewayError as e:
                    logger.error("Could not fetch payment %s: %s", payload.razorpay_payment_id, e.message)
        elif payload.razorpay_order_id:
            verified = gateway.verify_payment_signature(
                payload.razorpay_order_id,
                payload.razorpay_payment_id,
                payload.razorpay_signature,
            )
        else:
            raise ValidationFailed("razorpay_order_id or razorpay_subscription_id is required")

        if not verified:
            logger.warning("Payment verification failed for %s", user.id)
            raise ValidationFailed("Payment verification failed")

        plan_id = await SubscriptionService._checkout_plan(db, user, payload)

        return await SubscriptionService.activate(
            db,
            user,
            plan_id,
            razorpay_order_id=payload.razorpay_order_id,
            razorpay_payment_id=payload.razorpay_payment_id,
            razorpay_subscription_id=payload.razorpay_subscription_id,
            razorpay_signature=payload.razorpay_signature,
        )

    @staticmethod
    async def cancel(db: AsyncSession, gateway: RazorpayGateway | None, user: User) -> bool:
        """
        Cancel the user's subscription.

        The local status always becomes ``cancelled``; a Razorpay failure
        (or an unconfigured gateway) is logged and reported through the
        return value.

        Returns:
            bool: Whether Razorpay acknowledged the cancellation

        Raises:
            ValidationFailed 400: If the user has no Razorpay subscription
        """
        if not user.razorpay_subscription_id:
            raise ValidationFailed("No active subscription found")

        synced = False
        if gateway is None:
            logger.warning("Payment gateway not configured; cancelling %s locally", user.id)
        else:
            try:
                await gateway.cancel_subscription(user.razorpay_subscription_id)
                synced = True
            except PaymentGatewayError as e:
                logger.warning(
                    "Razorpay cancel failed for %s, cancelling locally: %s",
                    user.razorpay_subscription_id, e.message
                )

        now = utcnow()
        user.subscription_status = CANCELLED
        user.cancelled_at = now
        user.updated_at = now
        await SubscriptionService.record_history(
            db,
            user.id,
            CANCELLED,
            plan_id=user.subscription_plan,
            start_date=user.subscription_start_date,
            end_date=now,
            razorpay_subscription_id=user.razorpay_subscription_id,
        )
        await db.commit()
        logger.info("Subscription cancelled for %s (gateway synced: %s)", user.id, synced)
        return synced

    @staticmethod
    async def pause(db: AsyncSession, gateway: RazorpayGateway, user: User) -> User:
        """
        Pause an active subscription at Razorpay, then locally.

        Raises:
            ValidationFailed 400: If the subscription is not active
            UpstreamFailure 500: If Razorpay rejects the pause (no local change)
        """
        if user.subscription_status != ACTIVE or not user.razorpay_subscription_id:
            raise ValidationFailed("Only active subscriptions can be paused")
        try:
            await gateway.pause_subscription(user.razorpay_subscription_id)
        except PaymentGatewayError as e:
            raise UpstreamFailure("Failed to pause subscription", detail=e.message) from e

        await SubscriptionService._transition(db, user, PAUSED)
        return user

    @staticmethod
    async def resume(db: AsyncSession, gateway: RazorpayGateway, user: User) -> User:
        """
        Resume a paused subscription at Razorpay, then locally.

        Raises:
            ValidationFailed 400: If the subscription is not paused
            UpstreamFailure 500: If Razorpay rejects the resume (no local change)
        """
        if user.subscription_status != PAUSED or not user.razorpay_subscription_id:
            raise ValidationFailed("Only paused subscriptions can be resumed")
        try:
            await gateway.resume_subscription(user.razorpay_subscription_id)
        except PaymentGatewayError as e:
            raise UpstreamFailure("Failed to resume subscription", detail=e.message) from e

        await SubscriptionService._transition(db, user, ACTIVE)
        return user

    @staticmethod
    async def _transition(db: AsyncSession, user: User, status: str) -> None:
        """Status-only transition that keeps the current window."""
        user.subscription_status = status
        user.updated_at = utcnow()
        await SubscriptionService.record_history(
            db,
            user.id,
            status,
            plan_id=user.subscription_plan,
            start_date=user.subscription_start_date,
            end_date=user.subscription_end_date,
            razorpay_subscription_id=user.razorpay_subscription_id,
        )
        await db.commit()
        logger.info("Subscription for %s is now %s", user.id, status)

    # --- Webhooks ---

    @staticmethod
    async def find_user_by_subscription_id(db: AsyncSession, subscription_id: str) -> User | None:
        result = await db.execute(
            select(User).where(User.razorpay_subscription_id == subscription_id)
        )
        return result.scalars().first()

    @staticmethod
    async def handle_webhook_event(db: AsyncSession, event: dict) -> dict:
        """
        Apply a Razorpay webhook event.

        The user is located through the stored Razorpay subscription id, not
        through a caller identity. Unknown events and subscriptions are
        acknowledged and ignored so Razorpay stops retrying.

        Returns:
            dict: Acknowledgement with ``status`` "processed" or "ignored"
        """
        event_name = event.get("event")
        payload = event.get("payload") or {}
        subscription = (payload.get("subscription") or {}).get("entity") or {}
        payment = (payload.get("payment") or {}).get("entity") or {}

        subscription_id = (
            subscription.get("id")
            or payment.get("subscription_id")
            or (payment.get("notes") or {}).get("subscription_id")
        )

        handlers = {
            "subscription.activated": ACTIVE,
            "payment.captured": ACTIVE,
            "subscription.cancelled": CANCELLED,
            "subscription.paused": PAUSED,
            "subscription.resumed": ACTIVE,
        }
        if event_name not in handlers:
            logger.info("Ignoring Razorpay webhook event %s", event_name)
            return {"status": "ignored", "event": event_name}

        if not subscription_id:
            logger.info("Webhook %s carries no subscription id", event_name)
            return {"status": "ignored", "event": event_name}

        user = await SubscriptionService.find_user_by_subscription_id(db, subscription_id)
        if user is None:
            logger.warning("Webhook %s for unknown subscription %s", event_name, subscription_id)
            return {"status": "ignored", "event": event_name}

        target = handlers[event_name]
        if event_name in ("subscription.activated", "payment.captured"):
            notes = subscription.get("notes") or payment.get("notes") or {}
            plan_id = notes.get("plan_id") or user.subscription_plan or "monthly"
            if plan_id not in PLANS_BY_ID:
                plan_id = "monthly"
            await SubscriptionService.activate(
                db,
                user,
                plan_id,
                razorpay_order_id=payment.get("order_id"),
                razorpay_payment_id=payment.get("id"),
                razorpay_subscription_id=subscription_id,
                payment_status="captured",
                record_payment=bool(payment.get("id")),
            )
        elif target == CANCELLED:
            now = utcnow()
            user.subscription_status = CANCELLED
            user.cancelled_at = now
            user.updated_at = now
            await SubscriptionService.record_history(
                db,
                user.id,
                CANCELLED,
                plan_id=user.subscription_plan,
                start_date=user.subscription_start_date,
                end_date=now,
                razorpay_subscription_id=subscription_id,
            )
            await db.commit()
        else:
            await SubscriptionService._transition(db, user, target)

        logger.info("Webhook %s applied to %s", event_name, user.id)
        return {"status": "processed", "event": event_name, "user_id": user.id}


async def get_profile_or_404(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user
