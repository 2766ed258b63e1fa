"""
Shared fixtures for the Brainac API test suite.

Each test gets its own SQLite database file, a fake Supabase identity
provider and a real ``RazorpayGateway`` whose HTTP traffic is answered by
an ``httpx.MockTransport``.
"""
import json
import os

# Must be set before the app (and its config module) is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["SUPABASE_URL"] = ""
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = ""

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import JWTError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.main import app
from app.api.endpoints.webhooks import get_webhook_secret
from app.core.database import Base, get_db, utcnow
from app.core.exceptions import Conflict, Unauthenticated
from app.core.payment_gateway import RazorpayGateway, get_optional_payment_gateway
from app.core.rate_limit import limiter
from app.core.security import create_access_token
from app.core.supabase_auth import get_optional_identity_provider
from app.models.user import User

RAZORPAY_KEY_ID = "rzp_test_key"
RAZORPAY_SECRET = "test_secret"
WEBHOOK_SECRET = "whsec_test"

limiter.enabled = False


class FakeIdentityProvider:
    """In-memory stand-in for ``SupabaseIdentityProvider``."""

    def __init__(self):
        self.accounts = {}
        self.passwords = {}
        self.metadata_updates = []

    async def verify_token(self, token: str) -> dict:
        # Only self-issued tokens are used in tests
        raise JWTError("Not a Supabase token")

    async def get_user(self, uid: str) -> dict | None:
        return self.accounts.get(uid)

    async def create_user(self, email: str, password: str, metadata: dict, app_metadata: dict | None = None) -> dict:
        if any(account["email"] == email for account in self.accounts.values()):
            raise Conflict("User already exists with this email")
        uid = f"sb-{len(self.accounts) + 1}"
        self.accounts[uid] = {
            "id": uid,
            "email": email,
            "user_metadata": dict(metadata),
            "app_metadata": dict(app_metadata or {}),
        }
        self.passwords[email] = password
        return self.accounts[uid]

    async def update_user_metadata(self, uid: str, metadata: dict) -> None:
        self.metadata_updates.append((uid, metadata))
        self.accounts.setdefault(uid, {"id": uid, "email": None, "user_metadata": {}})
        self.accounts[uid]["user_metadata"].update(metadata)

    async def sign_in(self, email: str, password: str) -> dict:
        if self.passwords.get(email) != password:
            raise Unauthenticated("Invalid email or password")
        return next(a for a in self.accounts.values() if a["email"] == email)


class RazorpayStub:
    """
    Answers Razorpay REST calls made through ``httpx.MockTransport``.

    Paths listed in ``failing`` get a 400 response with a Razorpay-style
    error body; every request is recorded in ``requests``.
    """

    def __init__(self):
        self.requests = []
        self.failing = set()
        self.payment_status = "captured"
        self._orders = 0

    def fail(self, *fragments: str) -> None:
        self.failing.update(fragments)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = {}
        if request.content:
            body = json.loads(request.content)
        self.requests.append((request.method, path, body))

        if any(fragment in path for fragment in self.failing):
            return httpx.Response(400, json={"error": {"description": "Gateway rejected request"}})

        if path == "/orders":
            self._orders += 1
            return httpx.Response(200, json={
                "id": f"order_test_{self._orders}",
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "created",
            })
        if path == "/plans":
            return httpx.Response(200, json={"id": "plan_test_1", "period": body["period"]})
        if path == "/subscriptions":
            return httpx.Response(200, json={
                "id": "sub_test_1",
                "status": "created",
                "short_url": "https://rzp.io/i/test",
            })
        if path.startswith("/subscriptions/"):
            subscription_id, action = path.split("/")[2:4]
            return httpx.Response(200, json={"id": subscription_id, "status": action})
        if path.startswith("/payments/"):
            return httpx.Response(200, json={"id": path.split("/")[2], "status": self.payment_status})
        return httpx.Response(404, json={"error": {"description": "Unknown endpoint"}})


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def razorpay():
    return RazorpayStub()


@pytest.fixture
def gateway(razorpay):
    return RazorpayGateway(
        RAZORPAY_KEY_ID,
        RAZORPAY_SECRET,
        base_url="https://api.razorpay.test",
        timeout=5,
        transport=httpx.MockTransport(razorpay.handle),
    )


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest_asyncio.fixture
async def client(session_factory, identity_provider, gateway, webhook_secret):
    """HTTP client against the app with every external seam replaced."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_optional_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_optional_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_webhook_secret] = lambda: webhook_secret

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Factory inserting a learner profile directly into the database."""
    async def _make_user(
        uid: str = "user-1",
        email: str | None = None,
        grade: int = 6,
        status: str = "trial",
        trial_days_left: float = 5,
        role: str = "user",
        **fields,
    ) -> User:
        now = utcnow()
        user = User(
            id=uid,
            email=email or f"{uid}@example.com",
            first_name="Test",
            last_name="Learner",
            display_name="Test Learner",
            grade=grade,
            role=role,
            subscription_status=status,
            trial_start_date=now - timedelta(days=7 - trial_days_left),
            trial_end_date=now + timedelta(days=trial_days_left),
            created_at=now,
            updated_at=now,
            **fields,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    """Builds a bearer header carrying a self-issued token for a user."""
    def _auth_headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}

    return _auth_headers


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('admin', 'admin@brainac.in', is_admin=True)}"}
