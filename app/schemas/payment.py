from pydantic import Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from app.schemas.common import CamelModel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CAPTURED = "captured"


class PaymentResponse(CamelModel):
    """Payment row. ``amount`` is in paise."""
    id: str
    user_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    plan_id: str
    amount: int
    currency: str
    status: PaymentStatus
    payment_method: str
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PaymentPagination(CamelModel):
    current_page: int
    total_pages: int
    total_count: int
    per_page: int


class PaymentSummary(CamelModel):
    total_amount: int
    completed_amount: int
    refunded_amount: int
    count_by_status: dict


class PaymentListResponse(CamelModel):
    payments: List[PaymentResponse]
    pagination: PaymentPagination
    summary: PaymentSummary


class PaymentStatusUpdate(CamelModel):
    """Admin status override; ``refunded`` only goes through the refund endpoint"""
    status: PaymentStatus


class RefundRequest(CamelModel):
    reason: str = Field(default="Refund requested by admin", max_length=1000)
