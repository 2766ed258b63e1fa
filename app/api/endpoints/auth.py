"""
Authentication endpoints: registration, login and profile management.

Accounts live in Supabase Auth; the learner profile (grade, subscription
state) lives in the ``users`` table keyed by the Supabase user id.
"""
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ADMIN_EMAIL, ADMIN_PASSWORD_HASH, TRIAL_DAYS
from app.core.database import get_db, utcnow
from app.core.dependencies import get_current_user, merge_profile, ADMIN_UID
from app.core.exceptions import Conflict, Unauthenticated, ServiceUnavailable
from app.core.logging_config import mask_email
from app.core.rate_limit import limiter, AUTH_RATE_LIMIT, REGISTER_RATE_LIMIT
from app.core.security import create_access_token, verify_password
from app.core.subscription_service import SubscriptionService
from app.core.supabase_auth import (
    SupabaseIdentityProvider,
    get_identity_provider,
    get_optional_identity_provider,
)
from app.models.user import User
from app.schemas.auth import RegisterRequest, LoginRequest, AuthResult
from app.schemas.common import ApiResponse
from app.schemas.user import CurrentUser, ProfileUpdate, UserProfileResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/register",
    response_model=ApiResponse[AuthResult],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(REGISTER_RATE_LIMIT)
async def register(
    request: Request,
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    identity_provider: SupabaseIdentityProvider = Depends(get_identity_provider),
):
    """
    Register a learner.

    Creates the Supabase account (profile fields in its user metadata,
    the trial window in its app metadata), stores the learner profile on a fresh trial window,
    records the ``trial`` history entry and returns a self-issued token.

    Raises:
        Conflict 400: If the email is already registered
        ServiceUnavailable 503: If Supabase is not configured
    """
    email = payload.email.lower()

    result = await db.execute(select(User.id).where(func.lower(User.email) == email))
    if result.first() is not None:
        raise Conflict("User already exists with this email")

    now = utcnow()
    trial_end = now + timedelta(days=TRIAL_DAYS)
    display_name = f"{payload.first_name} {payload.last_name}".strip()

    account = await identity_provider.create_user(
        email,
        payload.password,
        {
            "firstName": payload.first_name,
            "lastName": payload.last_name,
            "displayName": display_name,
            "class": payload.grade,
        },
        app_metadata={
            "subscriptionStatus": "trial",
            "trialStartDate": now.isoformat(),
            "trialEndDate": trial_end.isoformat(),
        },
    )

    user = User(
        id=account["id"],
        email=email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        display_name=display_name,
        grade=payload.grade,
        role="user",
        created_at=now,
    )
    db.add(user)
    await SubscriptionService.start_trial(db, user, now)
    await db.commit()

    logger.info("Registered %s (class %s) on a %s-day trial", mask_email(email), payload.grade, TRIAL_DAYS)

    return ApiResponse(
        data=AuthResult(
            uid=user.id,
            email=user.email,
            display_name=user.display_name,
            grade=user.grade,
            subscription_status=user.subscription_status,
            trial_end_date=user.trial_end_date,
            token=create_access_token(user.id, user.email),
        ),
        message="User registered successfully",
    )


@router.post("/login", response_model=ApiResponse[AuthResult])
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    identity_provider: SupabaseIdentityProvider = Depends(get_identity_provider),
):
    """
    Sign a learner in.

    Password verification is delegated to Supabase. Accounts without a
    stored profile sign in with the profile held in their Supabase metadata.

    Raises:
        Unauthenticated 401: "Invalid email or password"
    """
    account = await identity_provider.sign_in(payload.email.lower(), payload.password)
    row = await db.get(User, account["id"])
    user = merge_profile(account, row)

    logger.info("Login for %s (stored profile: %s)", mask_email(user.email), user.has_profile)

    return ApiResponse(
        data=AuthResult(
            uid=user.id,
            email=user.email,
            display_name=user.display_name,
            grade=user.grade,
            subscription_status=user.subscription_status,
            trial_end_date=user.trial_end_date,
            subscription_end_date=user.subscription_end_date,
            token=create_access_token(user.id, user.email),
        ),
        message="Login successful",
    )


@router.post("/admin/login", response_model=ApiResponse[AuthResult])
@limiter.limit(AUTH_RATE_LIMIT)
async def admin_login(request: Request, payload: LoginRequest):
    """
    Administrator login.

    Credentials come from ADMIN_EMAIL / ADMIN_PASSWORD_HASH (argon2). The
    issued token carries ``isAdmin`` and resolves to the administrator
    profile without any profile lookup.
    """
    if not ADMIN_EMAIL or not ADMIN_PASSWORD_HASH:
        raise ServiceUnavailable("Admin login not configured")

    if payload.email.lower() != ADMIN_EMAIL.lower() or not verify_password(payload.password, ADMIN_PASSWORD_HASH):
        logger.warning("Rejected admin login for %s", mask_email(payload.email))
        raise Unauthenticated("Invalid email or password")

    return ApiResponse(
        data=AuthResult(
            uid=ADMIN_UID,
            email=ADMIN_EMAIL,
            display_name="Administrator",
            subscription_status="active",
            token=create_access_token(ADMIN_UID, ADMIN_EMAIL, is_admin=True),
            is_admin=True,
        ),
        message="Admin login successful",
    )


@router.get("/profile", response_model=ApiResponse[UserProfileResponse])
async def get_profile(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return the caller's profile (stored, or derived from Supabase metadata)."""
    row = await db.get(User, current_user.id)
    return ApiResponse(data=UserProfileResponse.from_user(row if row is not None else current_user))


@router.put("/profile", response_model=ApiResponse[UserProfileResponse])
async def update_profile(
    payload: ProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    identity_provider: SupabaseIdentityProvider | None = Depends(get_optional_identity_provider),
):
    """
    Update name, grade and preferences.

    The display name is recomputed from first and last name. Changes are
    mirrored to Supabase metadata when Supabase is configured; a failed
    mirror is logged and does not fail the request.
    """
    user = await SubscriptionService.get_or_create_profile(db, current_user)

    if payload.first_name is not None:
        user.first_name = payload.first_name
    if payload.last_name is not None:
        user.last_name = payload.last_name
    if payload.grade is not None:
        user.grade = payload.grade
    if payload.preferences is not None:
        user.notifications = payload.preferences.notifications
        user.email_updates = payload.preferences.email_updates
        user.language = payload.preferences.language
    user.display_name = user.full_name
    user.updated_at = utcnow()
    await db.commit()

    if identity_provider is not None:
        try:
            await identity_provider.update_user_metadata(user.id, {
                "firstName": user.first_name,
                "lastName": user.last_name,
                "displayName": user.display_name,
                "class": user.grade,
            })
        except Exception as e:
            logger.warning("Could not mirror profile of %s to Supabase: %s", user.id, e)

    return ApiResponse(data=UserProfileResponse.from_user(user), message="Profile updated successfully")
