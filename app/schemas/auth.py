from pydantic import EmailStr, Field
from typing import Optional
from datetime import datetime

from app.schemas.common import CamelModel
from app.schemas.user import SubscriptionStatus


class RegisterRequest(CamelModel):
    """Body of POST /auth/register"""
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    grade: int = Field(..., alias="class", ge=5, le=10)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResult(CamelModel):
    """Issued token plus the profile fields a client needs after sign-in"""
    uid: str
    email: str
    display_name: Optional[str] = None
    grade: Optional[int] = Field(default=None, alias="class")
    subscription_status: SubscriptionStatus
    trial_end_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    token: str
    is_admin: bool = False
