import logging
import ssl
import uuid
from datetime import datetime, timezone
from urllib.parse import urlparse

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy.types import TypeDecorator

from app.core.config import DATABASE_URL

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """
    Convert a provider connection string into an async SQLAlchemy URL.

    asyncpg fails if it sees "sslmode" in the URL, and hosted Postgres
    providers hand out plain postgres:// URLs.
    """
    if "?sslmode=" in database_url:
        database_url = database_url.split("?sslmode=")[0]

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return database_url


def build_engine(database_url: str):
    database_url = normalize_database_url(database_url)
    connect_args = {}
    engine_kwargs = {}

    if database_url.startswith("postgresql+asyncpg://"):
        # Decide if SSL should be used (remote) or not (local/docker)
        host = urlparse(database_url).hostname or ""
        if host not in ("db", "localhost", "127.0.0.1"):
            logger.info("Creating SSL context for remote database host %s", host)
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
            connect_args["ssl"] = ssl_context
        # Disable pooling for serverless deployments
        engine_kwargs["poolclass"] = NullPool
    else:
        logger.info("Using local database %s", database_url)

    return create_async_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        **engine_kwargs,
    )


engine = build_engine(DATABASE_URL)

# Create the session factory (Session Local)
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


# Base class for models (Tables)
class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column.

    Values are stored in UTC; backends that drop the offset (SQLite) get it
    re-attached on the way out so comparisons with aware datetimes work.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# Dependency to get DB session in FastAPI endpoints
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
