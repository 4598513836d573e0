"""
Pytest configuration and fixtures for testing
"""
import uuid

import httpx
import pytest
import stripe
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from config import settings
from database import Base, get_db

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    future=True,
)

# Create test session factory
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

STRONG_PASSWORD = "StrongPass123!"


async def override_get_db():
    """Override get_db to use test database"""
    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def _create_tables():
    # Import models to ensure they're registered with Base
    import database_models  # noqa: F401
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _drop_tables():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


class FakeStripeGateway:
    """
    Stands in for StripeGateway. Records every call so tests can assert the
    processor was (or was not) contacted.
    """

    def __init__(self):
        self.calls = []
        self.subscription_customers = {}
        self.fail_with = None
        self._customers = 0
        self._subscriptions = 0

    def _record(self, call_name, **kwargs):
        self.calls.append((call_name, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def create_customer(self, email, name, metadata):
        self._record("create_customer", email=email, name=name, metadata=metadata)
        self._customers += 1
        return {"id": f"cus_test_{self._customers}"}

    def retrieve_customer(self, customer_id):
        self._record("retrieve_customer", customer_id=customer_id)
        return {"id": customer_id}

    def create_subscription(self, customer_id, items, add_invoice_items, metadata):
        self._record(
            "create_subscription",
            customer_id=customer_id,
            items=items,
            add_invoice_items=add_invoice_items,
            metadata=metadata,
        )
        self._subscriptions += 1
        subscription_id = f"sub_test_{self._subscriptions}"
        self.subscription_customers[subscription_id] = customer_id
        return {
            "id": subscription_id,
            "customer": customer_id,
            "latest_invoice": {"payment_intent": {"client_secret": f"{subscription_id}_secret"}},
        }

    def retrieve_subscription(self, subscription_id):
        self._record("retrieve_subscription", subscription_id=subscription_id)
        return {"id": subscription_id, "customer": self.subscription_customers.get(subscription_id)}

    def call_names(self):
        return [name for name, _ in self.calls]


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Every test signs tokens with a known secret"""
    monkeypatch.setattr(settings, "jwt_secret_key", "test-secret-key-for-jwt-signing")


@pytest.fixture
def session_factory():
    return TestAsyncSessionLocal


@pytest.fixture
async def test_db():
    """
    Fixture that provides an isolated, in-memory SQLite database connection for each test.

    This fixture:
    - Creates all tables before the test runs
    - Yields a clean AsyncSession for the test
    - Drops all tables after the test completes
    """
    await _create_tables()

    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    await _drop_tables()


@pytest.fixture
def fake_gateway():
    return FakeStripeGateway()


@pytest.fixture
async def async_client(fake_gateway, tmp_path, monkeypatch):
    """
    Async HTTP client against the app with the test database, a fake Stripe
    gateway and photo storage under a temporary directory.
    """
    from main import app
    from services.billing_service import get_stripe_gateway
    from services.quickbooks_service import get_quickbooks_transport

    monkeypatch.setattr("utils.photo_storage.MEDIA_DIR", tmp_path)
    monkeypatch.setattr(settings, "stripe_product_id", "prod_test_plan")
    monkeypatch.setattr(settings, "stripe_fees_product_id", "prod_test_fees")
    monkeypatch.setattr(settings, "trust_forwarded_for", True)

    await _create_tables()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_quickbooks_transport] = lambda: None

    transport = httpx.ASGITransport(app=app)
    # Each test gets its own rate limit buckets
    headers = {"X-Forwarded-For": f"test-{uuid.uuid4().hex}"}
    async with httpx.AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
        yield client

    app.dependency_overrides.clear()
    await _drop_tables()


@pytest.fixture
def signup(async_client):
    """Sign a contractor up and return {"user_id", "headers"} for Bearer auth"""
    counter = {"n": 0}

    async def _signup(email=None, first_name="Casey", last_name="Builder"):
        counter["n"] += 1
        email = email or f"contractor{counter['n']}@example.com"
        response = await async_client.post(
            "/api/auth/signup",
            json={
                "email": email,
                "password": STRONG_PASSWORD,
                "first_name": first_name,
                "last_name": last_name,
            },
        )
        assert response.status_code == 200, response.text
        body = response.json()
        return {
            "user_id": int(body["user_id"]),
            "email": email,
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _signup


@pytest.fixture
def set_user_fields(session_factory):
    """Write User columns directly, e.g. to age a trial or grant a plan"""
    from sqlalchemy import update
    from database_models import User

    async def _set(user_id, **fields):
        async with session_factory() as session:
            await session.execute(update(User).where(User.id == user_id).values(**fields))
            await session.commit()

    return _set


@pytest.fixture
def stripe_error():
    return stripe.APIConnectionError("Stripe is unreachable")


@pytest.fixture
def make_project(async_client):
    """Create a client and one of their projects for a signed-up contractor"""

    async def _make(account, client_name="Acme Homes", project_name="Kitchen remodel", **project_fields):
        client = await async_client.post(
            "/api/clients",
            json={"name": client_name, "email": "acme@example.com"},
            headers=account["headers"],
        )
        assert client.status_code == 201, client.text
        project = await async_client.post(
            "/api/projects",
            json={"name": project_name, "client_id": client.json()["id"], **project_fields},
            headers=account["headers"],
        )
        assert project.status_code == 201, project.text
        return {"client_id": client.json()["id"], "project_id": project.json()["id"]}

    return _make


@pytest.fixture
def portal_login(async_client, signup, make_project):
    """Contractor, client, project and a logged-in portal user for that client"""

    async def _login(email="homeowner@example.com", password="portal-pass"):
        account = await signup()
        ids = await make_project(account)
        created = await async_client.post(
            "/api/client-portal/create-user",
            json={"client_id": ids["client_id"], "email": email, "password": password},
            headers=account["headers"],
        )
        assert created.status_code == 201, created.text
        login = await async_client.post(
            "/api/client-portal/login", json={"email": email, "password": password}
        )
        assert login.status_code == 200, login.text
        return {
            **ids,
            "contractor": account,
            "email": email,
            "headers": {"Authorization": f"Bearer {login.json()['token']}"},
        }

    return _login


@pytest.fixture
def png_bytes():
    """PNG signature followed by filler; enough for the content sniffing check"""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
