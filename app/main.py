import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import (
    ENVIRONMENT,
    LOG_LEVEL,
    DB_AUTO_INIT,
    FRONTEND_URL,
    ALLOWED_ORIGINS,
    SUPABASE_URL,
    RAZORPAY_KEY_ID,
)
from app.core.database import engine, Base
from app.core.exceptions import register_exception_handlers
from app.core.logging_config import setup_logging
from app.core.middleware import request_logging_middleware
from app.core.rate_limit import limiter
from app.api.router import api_router

# Models must be imported so their tables are registered on Base.metadata
from app.models import user, payment, subscription_history, subject, unit, chapter, video  # noqa: F401

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)


# --- Lifespan events (startup / shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context.

    On startup:
      - Log which integrations are configured (degraded mode otherwise).
      - Ensure all database tables exist when DB_AUTO_INIT is on.
    """
    logger.info("Starting Brainac API (%s)", ENVIRONMENT)
    if not SUPABASE_URL:
        logger.warning("Supabase not configured: register/login unavailable, self-issued tokens only")
    if not RAZORPAY_KEY_ID:
        logger.warning("Razorpay not configured: payment endpoints unavailable")

    if DB_AUTO_INIT:
        async with engine.begin() as conn:
            # Create tables automatically if they do not exist
            await conn.run_sync(Base.metadata.create_all)

    yield

    await engine.dispose()
    logger.info("Brainac API shut down")


# --- FastAPI application instance ---
app = FastAPI(
    title="Brainac API",
    version="1.0.0",
    lifespan=lifespan,
    description="""
    Backend for the Brainac learning platform.

    ## Authentication

    `Authorization: Bearer <token>` with either a Supabase access token or a
    token issued by `/api/auth/register`, `/api/auth/login` or
    `/api/auth/admin/login`.

    ## Access

    - Subjects are scoped to the learner's class (6-10).
    - Videos require an active subscription or a running free trial.
    - `/api/admin/*` requires the admin role.

    All responses use the envelope `{success, data?, error?, message?}`.
    """
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
register_exception_handlers(app)

# --- CORS configuration ---
origins = [
    FRONTEND_URL,
    "http://localhost:3000",        # Local frontend dev servers
    "http://localhost:5173",
    "http://localhost:8080",
    *ALLOWED_ORIGINS,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(origins)),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_logging_middleware)


# --- Liveness / discovery ---
@app.get("/health")
async def health():
    return {
        "success": True,
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": ENVIRONMENT,
    }


@app.get("/api")
async def api_index(request: Request):
    """Discovery document listing the API's route groups."""
    return {
        "success": True,
        "message": "Brainac API",
        "version": app.version,
        "docs": "/docs",
        "endpoints": {
            "auth": "/api/auth",
            "subjects": "/api/subjects",
            "subscription": "/api/subscription",
            "admin": "/api/admin",
            "health": "/health",
        },
    }


# --- Mount API routers ---
app.include_router(api_router, prefix="/api")
