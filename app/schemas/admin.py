from pydantic import Field
from typing import List, Optional
from datetime import datetime

from app.schemas.common import CamelModel, Pagination
from app.schemas.user import SubscriptionStatus, UserProfileResponse
from app.schemas.subscription import PlanId
from app.schemas.payment import PaymentResponse


class MonthlyPoint(CamelModel):
    month: str
    value: int


class StatsResponse(CamelModel):
    """Dashboard aggregation for administrators"""
    total_users: int
    users_by_status: dict
    active_users: int
    new_students_today: int
    total_subjects: int
    total_videos: int
    total_revenue: int
    recent_transactions: List[PaymentResponse]
    revenue_by_month: List[MonthlyPoint]
    user_growth_by_month: List[MonthlyPoint]


class AdminUserListResponse(CamelModel):
    users: List[UserProfileResponse]
    pagination: Pagination


class AdminSubscriptionUpdate(CamelModel):
    """Manual subscription override for a learner"""
    subscription_status: SubscriptionStatus
    subscription_plan: Optional[PlanId] = None
    subscription_end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    grade: Optional[int] = Field(default=None, alias="class", ge=5, le=10)
