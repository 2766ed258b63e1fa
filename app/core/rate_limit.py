"""
Rate limiting configuration and utilities.
"""
import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import RATE_LIMIT_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """
    Key function for rate limiting: the client IP address.

    SlowAPIMiddleware evaluates limits before any route dependency runs,
    so the caller is not authenticated yet at this point.

    Returns:
        str: Unique identifier for rate limiting
    """
    return f"ip:{get_remote_address(request)}"


if REDIS_URL == "memory://":
    logger.warning("REDIS_URL not configured; rate limiter uses in-memory storage")

# Initialize limiter
limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["300/hour"],
    storage_uri=REDIS_URL,
    strategy="fixed-window",
    headers_enabled=False,
    enabled=RATE_LIMIT_ENABLED,
)

# Limits for unauthenticated auth endpoints
AUTH_RATE_LIMIT = "20/minute"
REGISTER_RATE_LIMIT = "10/minute"
