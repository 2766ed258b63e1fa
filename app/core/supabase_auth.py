"""
Supabase Auth integration: token verification and user administration.

Supabase is the identity provider. Access tokens it issues are verified
locally (HS256 shared secret, or ES256 against the project JWKS); account
creation, lookups and password sign-in go through the supabase client,
whose synchronous calls run in the thread pool.
"""
import logging

import httpx
from fastapi import Depends
from fastapi.concurrency import run_in_threadpool
from jose import jwt, JWTError
from supabase import create_client, Client

from app.core.config import (
    SUPABASE_URL,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_ANON_KEY,
    SUPABASE_JWT_SECRET,
)
from app.core.exceptions import ServiceUnavailable, Unauthenticated, Conflict, UpstreamFailure

logger = logging.getLogger(__name__)

# Cache for JWKS (public keys)
_jwks_cache = None


async def get_jwks() -> dict | None:
    """
    Fetch public keys (JWKS) from Supabase for validating ES256 tokens.

    Caches the keys to avoid repeated network calls.
    """
    global _jwks_cache

    if _jwks_cache is not None:
        return _jwks_cache

    try:
        async with httpx.AsyncClient(timeout=5) as client:
            response = await client.get(f"{SUPABASE_URL}/auth/v1/.well-known/jwks.json")
            response.raise_for_status()
            _jwks_cache = response.json()
            return _jwks_cache
    except httpx.HTTPError as e:
        logger.warning("Failed to fetch JWKS from Supabase: %s", e)
        return None


async def decode_supabase_jwt(token: str) -> dict:
    """
    Decode and validate a JWT issued by Supabase Auth.

    Supports both HS256 (legacy) and ES256 (current) algorithms.

    Args:
        token: JWT token string

    Returns:
        dict: Token payload with fields like 'sub', 'email', 'role', etc.

    Raises:
        JWTError: If the token is invalid, expired or signed with an unknown key
    """
    # Try HS256 first (legacy, for compatibility)
    if SUPABASE_JWT_SECRET:
        try:
            return jwt.decode(
                token,
                SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                options={"verify_aud": False}
            )
        except JWTError as e:
            logger.debug("HS256 validation failed: %s, trying JWKS", e)

    # Get header without validation to extract 'kid'
    unverified_header = jwt.get_unverified_header(token)
    algorithm = unverified_header.get("alg", "ES256")
    kid = unverified_header.get("kid")
    if algorithm == "HS256":
        raise JWTError("HS256 token not signed with the Supabase secret")

    jwks = await get_jwks()
    if not jwks:
        raise JWTError("Could not fetch JWKS from Supabase")

    public_key = next((key for key in jwks.get("keys", []) if key.get("kid") == kid), None)
    if not public_key:
        raise JWTError(f"Could not find public key for kid: {kid}")

    return jwt.decode(
        token,
        public_key,
        algorithms=[algorithm],
        options={"verify_aud": False}
    )


def _user_to_dict(user) -> dict:
    """Normalize a supabase ``User`` object into a plain dict."""
    return {
        "id": str(user.id),
        "email": user.email,
        "user_metadata": dict(user.user_metadata or {}),
        "app_metadata": dict(user.app_metadata or {}),
    }


class SupabaseIdentityProvider:
    """
    Identity provider backed by a Supabase project.

    A service-role client performs admin operations; password sign-in uses
    a separate client so the admin client never carries a user session.
    """

    def __init__(self, url: str, service_role_key: str, anon_key: str | None = None):
        self.admin_client: Client = create_client(url, service_role_key)
        self._url = url
        self._sign_in_key = anon_key or service_role_key

    async def verify_token(self, token: str) -> dict:
        return await decode_supabase_jwt(token)

    async def get_user(self, uid: str) -> dict | None:
        try:
            response = await run_in_threadpool(self.admin_client.auth.admin.get_user_by_id, uid)
        except Exception as e:
            logger.warning("Supabase lookup for %s failed: %s", uid, e)
            return None
        if not response or not response.user:
            return None
        return _user_to_dict(response.user)

    async def create_user(self, email: str, password: str, metadata: dict, app_metadata: dict | None = None) -> dict:
        """
        Create a confirmed account.

        ``metadata`` holds profile fields the learner may edit later;
        ``app_metadata`` holds entitlement fields only the service role can set.

        Raises:
            Conflict: If the email is already registered
            UpstreamFailure: For any other provider error
        """
        try:
            response = await run_in_threadpool(
                self.admin_client.auth.admin.create_user,
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": metadata,
                    "app_metadata": app_metadata or {},
                },
            )
        except Exception as e:
            if "already" in str(e).lower():
                raise Conflict("User already exists with this email") from e
            logger.error("Supabase create_user failed: %s", e)
            raise UpstreamFailure("Failed to create user account", detail=str(e)) from e
        return _user_to_dict(response.user)

    async def update_user_metadata(self, uid: str, metadata: dict) -> None:
        await run_in_threadpool(
            self.admin_client.auth.admin.update_user_by_id,
            uid,
            {"user_metadata": metadata},
        )

    async def sign_in(self, email: str, password: str) -> dict:
        """
        Verify a password with Supabase.

        Raises:
            Unauthenticated: If the credentials are rejected
        """
        client = create_client(self._url, self._sign_in_key)
        try:
            response = await run_in_threadpool(
                client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except Exception as e:
            logger.info("Supabase sign-in rejected: %s", e)
            raise Unauthenticated("Invalid email or password") from e
        if not response or not response.user:
            raise Unauthenticated("Invalid email or password")
        return _user_to_dict(response.user)


_provider: SupabaseIdentityProvider | None = None


def get_optional_identity_provider() -> SupabaseIdentityProvider | None:
    """
    The configured identity provider, or None in degraded mode.

    Used by the access middleware, which still accepts self-issued tokens
    when Supabase is not configured.
    """
    global _provider
    if _provider is None and SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY:
        _provider = SupabaseIdentityProvider(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_ANON_KEY)
    return _provider


def get_identity_provider(
    provider: SupabaseIdentityProvider | None = Depends(get_optional_identity_provider),
) -> SupabaseIdentityProvider:
    """
    FastAPI dependency for endpoints that cannot work without Supabase.

    Raises:
        ServiceUnavailable: If Supabase credentials are not configured
    """
    if provider is None:
        raise ServiceUnavailable("Authentication service not available")
    return provider
