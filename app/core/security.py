"""
Self-issued access tokens and administrator password hashing.

Learners normally authenticate with Supabase-issued tokens; the API also
issues its own HS256 tokens after register/login and for the administrator
login, which the access middleware accepts as a fallback.
"""
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from app.core.config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_HOURS


# Argon2 hashing context for the administrator password
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def create_access_token(
    uid: str,
    email: str,
    is_admin: bool = False,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Sign a self-issued access token.

    Args:
        uid (str): Subject id (identity provider user id, or "admin")
        email (str): Email address of the subject
        is_admin (bool): Marks the synthetic administrator token
        expires_delta (timedelta, optional): Lifetime; defaults to
            ACCESS_TOKEN_EXPIRE_HOURS

    Returns:
        str: Encoded JWT
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    payload = {
        "uid": uid,
        "sub": uid,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if is_admin:
        payload["isAdmin"] = True
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a self-issued token and return its claims.

    Raises:
        jose.JWTError: If the signature is invalid or the token has expired
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def hash_password(password: str) -> str:
    """Hash a password using Argon2 (used to produce ADMIN_PASSWORD_HASH)."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Verify a password against its Argon2 hash.

    Malformed or missing hashes count as a mismatch.
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False
