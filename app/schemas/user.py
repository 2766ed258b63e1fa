from pydantic import Field
from typing import Optional
from datetime import datetime
from enum import Enum

from app.schemas.common import CamelModel


class UserRole(str, Enum):
    """User role enumeration"""
    USER = "user"
    ADMIN = "admin"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states"""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class Preferences(CamelModel):
    notifications: bool = True
    email_updates: bool = True
    language: str = "en"


class CurrentUser(CamelModel):
    """
    The authenticated caller, as attached to the request by the access
    middleware.

    Built from identity provider claims overlaid with the stored profile;
    ``has_profile`` tells whether a stored profile row exists.
    """
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    display_name: Optional[str] = None
    grade: Optional[int] = Field(default=None, alias="class")
    role: UserRole = UserRole.USER
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    subscription_plan: Optional[str] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    razorpay_subscription_id: Optional[str] = None
    has_profile: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserProfileResponse(CamelModel):
    """Profile returned by /auth/profile"""
    id: str
    email: str
    first_name: str
    last_name: str
    display_name: Optional[str] = None
    grade: Optional[int] = Field(default=None, alias="class")
    role: UserRole
    subscription_status: SubscriptionStatus
    subscription_plan: Optional[str] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    preferences: Optional[Preferences] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "UserProfileResponse":
        """Build from a stored ``User`` row, or from a transient ``CurrentUser``."""
        if isinstance(user, CurrentUser):
            return cls(**user.model_dump(exclude={"has_profile", "razorpay_subscription_id"}))

        profile = cls.model_validate(user)
        profile.preferences = Preferences(
            notifications=user.notifications,
            email_updates=user.email_updates,
            language=user.language,
        )
        return profile


class ProfileUpdate(CamelModel):
    """Fields a learner may change on their own profile"""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    grade: Optional[int] = Field(default=None, alias="class", ge=5, le=10)
    preferences: Optional[Preferences] = None
