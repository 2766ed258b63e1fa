from pydantic import Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from app.schemas.common import CamelModel
from app.schemas.user import SubscriptionStatus


class PlanId(str, Enum):
    """Billing plans offered to learners"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PlanResponse(CamelModel):
    """Public plan catalog entry. Prices are in rupees, amount in paise."""
    id: PlanId
    name: str
    price: int
    original_price: int
    amount: int
    duration: str
    discount: str
    popular: bool = False
    features: List[str]


class PlansResponse(CamelModel):
    plans: List[PlanResponse]
    trial_duration: str
    currency: str


class CreateOrderRequest(CamelModel):
    plan_id: PlanId


class CreateOrderResponse(CamelModel):
    order_id: str
    amount: int
    currency: str
    key: Optional[str] = None
    plan_id: PlanId


class CreatePlanRequest(CamelModel):
    plan_id: PlanId


class CreatePlanResponse(CamelModel):
    razorpay_plan_id: str
    plan_id: PlanId
    period: str
    interval: int
    amount: int
    currency: str


class CreateSubscriptionRequest(CamelModel):
    plan_id: PlanId
    # Existing Razorpay plan; created on the fly when omitted
    razorpay_plan_id: Optional[str] = None


class CreateSubscriptionResponse(CamelModel):
    subscription_id: str
    razorpay_plan_id: str
    status: Optional[str] = None
    short_url: Optional[str] = None
    key: Optional[str] = None
    plan_id: PlanId


class VerifyPaymentRequest(CamelModel):
    """
    Checkout callback payload.

    Order mode sends ``razorpay_order_id``; subscription mode sends
    ``razorpay_subscription_id``. Both snake_case (as returned by Razorpay
    Checkout) and camelCase keys are accepted.
    """
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    razorpay_order_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    plan_id: PlanId


class VerifyPaymentResponse(CamelModel):
    subscription_status: SubscriptionStatus
    subscription_plan: PlanId
    plan_name: str
    subscription_start_date: datetime
    subscription_end_date: datetime
    payment_id: str


class SubscriptionStatusResponse(CamelModel):
    """Lifecycle snapshot derived per request"""
    subscription_status: SubscriptionStatus
    subscription_plan: Optional[str] = None
    trial_end_date: Optional[datetime] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    days_remaining: int
    is_expired: bool
    needs_subscription: bool


class SubscriptionActionResponse(CamelModel):
    """Result of cancel / pause / resume"""
    subscription_status: SubscriptionStatus
    subscription_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    gateway_synced: bool = True


class HistoryEntryResponse(CamelModel):
    id: str
    plan_id: Optional[str] = None
    status: SubscriptionStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    payment_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    created_at: datetime


class WebhookAck(CamelModel):
    status: str
    event: Optional[str] = None
    user_id: Optional[str] = None
