"""
FastAPI dependencies for authentication and authorization.

Resolves the bearer token on each request into a ``CurrentUser``:
Supabase-issued tokens first, then the API's own self-issued tokens.
Also provides the administrator check and the premium-content gate.
"""
import logging
from datetime import datetime, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, utcnow
from app.core.exceptions import Unauthenticated, Forbidden
from app.core.security import decode_access_token
from app.core.subscription_service import has_content_access
from app.core.supabase_auth import SupabaseIdentityProvider, get_optional_identity_provider
from app.models.user import User
from app.schemas.user import CurrentUser

logger = logging.getLogger(__name__)

# Security scheme for FastAPI
security = HTTPBearer(auto_error=False)

ADMIN_UID = "admin"

# Profile columns copied onto the merged user; stored values win
_PROFILE_FIELDS = (
    "email",
    "first_name",
    "last_name",
    "display_name",
    "grade",
    "role",
    "subscription_status",
    "subscription_plan",
    "subscription_start_date",
    "subscription_end_date",
    "trial_start_date",
    "trial_end_date",
    "razorpay_subscription_id",
)

# Profile keys in the provider's user_metadata, which the account holder can edit
_METADATA_KEYS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "displayName": "display_name",
    "class": "grade",
}

# Entitlement keys, only ever read from app_metadata (writable by the service role alone)
_ENTITLEMENT_KEYS = {
    "subscriptionStatus": "subscription_status",
    "subscriptionPlan": "subscription_plan",
    "subscriptionStartDate": "subscription_start_date",
    "subscriptionEndDate": "subscription_end_date",
    "trialStartDate": "trial_start_date",
    "trialEndDate": "trial_end_date",
}


def synthetic_admin(claims: dict) -> CurrentUser:
    """Administrator profile for tokens carrying the ``isAdmin`` claim."""
    return CurrentUser(
        id=claims.get("uid") or ADMIN_UID,
        email=claims.get("email") or "admin@brainac.local",
        first_name="Admin",
        last_name="",
        display_name="Administrator",
        grade=None,
        role="admin",
        subscription_status="active",
        subscription_start_date=datetime(2000, 1, 1, tzinfo=timezone.utc),
        subscription_end_date=datetime(2099, 12, 31, tzinfo=timezone.utc),
        has_profile=False,
    )


def merge_profile(identity: dict | None, row: User | None, fallback: dict | None = None) -> CurrentUser:
    """
    Build the request user from identity provider data and the stored profile.

    Args:
        identity: Provider user (``id``, ``email``, ``user_metadata``,
            ``app_metadata``) or None
        row: Stored profile or None
        fallback: Bare token claims used when neither carries an email

    Returns:
        CurrentUser: Stored profile values take precedence over claims
    """
    data = {}
    if fallback:
        data["id"] = fallback.get("uid") or fallback.get("sub")
        data["email"] = fallback.get("email")

    if identity:
        data["id"] = identity["id"]
        data["email"] = identity.get("email") or data.get("email")
        for source, keys in (("user_metadata", _METADATA_KEYS), ("app_metadata", _ENTITLEMENT_KEYS)):
            metadata = identity.get(source) or {}
            for key, field in keys.items():
                if metadata.get(key) is not None:
                    data[field] = metadata[key]

    if row is not None:
        data["id"] = row.id
        for field in _PROFILE_FIELDS:
            value = getattr(row, field)
            if value is not None:
                data[field] = value

    return CurrentUser(**data, has_profile=row is not None)


async def resolve_user(
    token: str,
    db: AsyncSession,
    identity_provider: SupabaseIdentityProvider | None,
) -> CurrentUser:
    """
    Turn a bearer token into the request user.

    Raises:
        JWTError: If neither token format verifies
        Unauthenticated: If the subject has no profile anywhere
    """
    identity = None

    if identity_provider is not None:
        try:
            claims = await identity_provider.verify_token(token)
        except JWTError:
            claims = None
        if claims is not None:
            uid = claims["sub"]
            identity = await identity_provider.get_user(uid) or {
                "id": uid,
                "email": claims.get("email"),
                "user_metadata": claims.get("user_metadata") or {},
                "app_metadata": claims.get("app_metadata") or {},
            }

    fallback = None
    if identity is None:
        fallback = decode_access_token(token)
        if fallback.get("isAdmin"):
            return synthetic_admin(fallback)
        uid = fallback.get("uid") or fallback.get("sub")
        if identity_provider is not None:
            identity = await identity_provider.get_user(uid)
    else:
        uid = identity["id"]

    row = await db.get(User, uid)
    if row is None and identity is None:
        raise Unauthenticated("User profile not found")

    return merge_profile(identity, row, fallback)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
    identity_provider: SupabaseIdentityProvider | None = Depends(get_optional_identity_provider),
) -> CurrentUser:
    """
    Authenticate the request from its ``Authorization: Bearer`` header.

    Flow:
    1. Missing token -> 401 "Access denied. No token provided."
    2. Verify as a Supabase token, else as a self-issued token
    3. ``isAdmin`` self-issued tokens short-circuit to the administrator
    4. Load the stored profile, falling back to provider metadata
    5. Attach the merged user to ``request.state.user``

    Any failure after step 1 is reported as 401 "Invalid token.".
    """
    if not credentials or not credentials.credentials:
        raise Unauthenticated("Access denied. No token provided.")

    try:
        user = await resolve_user(credentials.credentials, db, identity_provider)
    except Exception as e:
        logger.info("Token rejected on %s: %s", request.url.path, e)
        raise Unauthenticated("Invalid token.") from e

    request.state.user = user
    return user


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """
    Restrict an endpoint to administrators.

    Raises:
        Forbidden 403: If the caller's role is not admin
    """
    if not user.is_admin:
        raise Forbidden("Admin access required", adminRequired=True)
    return user


async def require_subscription(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """
    Premium content gate.

    Raises:
        Forbidden 403: With ``subscriptionRequired: true`` when the caller
        has neither an active subscription nor a running trial
    """
    if not has_content_access(user.subscription_status, user.trial_end_date, utcnow()):
        raise Forbidden(
            "Active subscription required to access this content.",
            subscriptionRequired=True,
        )
    return user
