"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A fake Uber Eats API served through httpx.MockTransport
- Order payload factories for the three platforms
"""
# Credentials have to be in the environment before `app` is imported:
# the settings object is built at import time.
import os
os.environ.setdefault("UBER_EATS_CLIENT_ID", "test-client-id")
os.environ.setdefault("UBER_EATS_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import itertools
from typing import Any, AsyncGenerator, Callable
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.models  # noqa: F401
from app.api.dependencies.pipeline import (
    get_credential_broker,
    get_order_fetcher,
    reset_credential_cache,
)
from app.core.circuit_breaker import CircuitBreaker
from app.db.database import Base, get_db
from app.domain.services.uber_eats import UberEatsCredentialBroker, UberEatsOrderFetcher
from app.domain.services.uber_eats.base import close_shared_http_client
from app.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TOKEN_URL = "https://auth.uber.test/oauth/v2/token"
RESOURCE_BASE = "https://api.uber.test/v1/delivery/order"
TEST_CLIENT_ID = "test-client-id"
TEST_CLIENT_SECRET = "test-client-secret"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# Fake Uber Eats API
# ============================================================================

class FakeUberEatsApi:
    """
    Stand-in for the Uber Eats token and order endpoints.

    Tests tweak the ``*_response`` / ``*_error`` attributes to
    simulate platform failures; every request is recorded.
    """

    def __init__(self) -> None:
        self.access_token = "test-access-token"
        self.expires_in = 2592000
        self.token_response: httpx.Response | None = None
        self.token_error: Exception | None = None
        self.order_error: Exception | None = None
        self.order_response: httpx.Response | None = None
        self.orders: dict[str, Any] = {}
        self.token_requests: list[httpx.Request] = []
        self.order_requests: list[httpx.Request] = []

    def add_order(self, order: dict[str, Any]) -> str:
        """Publish an order; returns its resource_href"""
        self.orders[str(order["id"])] = order
        return f"{RESOURCE_BASE}/{order['id']}"

    def token_form(self, index: int = -1) -> dict[str, str]:
        body = self.token_requests[index].content.decode()
        return {key: values[0] for key, values in parse_qs(body).items()}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            self.token_requests.append(request)
            if self.token_error is not None:
                raise self.token_error
            if self.token_response is not None:
                return self.token_response
            return httpx.Response(
                200,
                json={
                    "access_token": self.access_token,
                    "token_type": "Bearer",
                    "expires_in": self.expires_in,
                    "scope": "eats.order",
                },
            )

        self.order_requests.append(request)
        if self.order_error is not None:
            raise self.order_error
        if self.order_response is not None:
            return self.order_response
        if request.headers.get("Authorization") != f"Bearer {self.access_token}":
            return httpx.Response(401, json={"code": "unauthorized", "message": "invalid token"})

        order_id = request.url.path.rsplit("/", 1)[-1]
        if order_id not in self.orders:
            return httpx.Response(404, json={"code": "not_found", "message": "order not found"})
        return httpx.Response(200, json=self.orders[order_id])


@pytest.fixture
def uber_eats_api() -> FakeUberEatsApi:
    return FakeUberEatsApi()


@pytest.fixture
async def uber_eats_http(uber_eats_api: FakeUberEatsApi) -> AsyncGenerator[httpx.AsyncClient, None]:
    """httpx client whose transport is the fake Uber Eats API"""
    async with httpx.AsyncClient(transport=httpx.MockTransport(uber_eats_api.handler)) as client:
        yield client


@pytest.fixture
def credential_broker(uber_eats_http: httpx.AsyncClient) -> UberEatsCredentialBroker:
    return UberEatsCredentialBroker(
        TEST_CLIENT_ID,
        TEST_CLIENT_SECRET,
        token_url=TOKEN_URL,
        timeout_seconds=5.0,
        http_client=uber_eats_http,
    )


@pytest.fixture
def order_fetcher(uber_eats_http: httpx.AsyncClient) -> UberEatsOrderFetcher:
    return UberEatsOrderFetcher(timeout_seconds=5.0, http_client=uber_eats_http)


@pytest.fixture(scope="function")
async def test_client(
    db_session: AsyncSession,
    credential_broker: UberEatsCredentialBroker,
    order_fetcher: UberEatsOrderFetcher,
):
    """Create test client with database and Uber Eats overrides"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_credential_broker] = lambda: credential_broker
    app.dependency_overrides[get_order_fetcher] = lambda: order_fetcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Payload Factories
# ============================================================================

_order_numbers = itertools.count(1001)


@pytest.fixture
def rappi_order_factory() -> Callable[..., dict[str, Any]]:
    """Factory for Rappi order bodies (the webhook body is the order)"""
    def _create(**overrides: Any) -> dict[str, Any]:
        number = next(_order_numbers)
        order = {
            "code": f"RP-{number}",
            "total": 187.5,
            "store": {"id": "900123", "name": "Tacos El Paisa"},
            "client": {"id": "55001", "first_name": "Laura"},
            "products": [
                {"id": "p-1", "name": "Taco al pastor", "units": 3, "price": 42.5},
                {"id": "p-2", "name": "Agua de horchata", "units": 1, "price": 60.0},
            ],
            "payment_method": "cc",
        }
        order.update(overrides)
        return order

    return _create


@pytest.fixture
def didi_food_order_factory() -> Callable[..., dict[str, Any]]:
    """Factory for Didi Food order bodies"""
    def _create(**overrides: Any) -> dict[str, Any]:
        number = next(_order_numbers)
        order = {
            "orderNumber": f"DD-{number}",
            "merchantId": "m-4410",
            "orderStatus": 100,
            "price": {"orderPrice": 23000, "currency": "MXN"},
            "items": [{"name": "Hamburguesa doble", "amount": 1}],
        }
        order.update(overrides)
        return order

    return _create


@pytest.fixture
def uber_eats_order_factory() -> Callable[..., dict[str, Any]]:
    """Factory for the order document served behind resource_href"""
    def _create(**overrides: Any) -> dict[str, Any]:
        number = next(_order_numbers)
        order = {
            "id": f"c7a1e0d2-{number}",
            "display_id": str(number),
            "current_state": "CREATED",
            "store": {"id": "store-77", "name": "Pizza Napoli"},
            "eater": {"first_name": "Ana"},
            "cart": {"items": [{"id": "margherita", "title": "Margherita", "quantity": 2}]},
        }
        order.update(overrides)
        return order

    return _create


@pytest.fixture
def uber_eats_event_factory() -> Callable[..., dict[str, Any]]:
    """Factory for the webhook envelope Uber Eats posts"""
    events = itertools.count(1)

    def _create(resource_href: str, event_type: str = "orders.notification", **overrides: Any) -> dict[str, Any]:
        event = {
            "event_id": f"evt-{next(events)}",
            "event_type": event_type,
            "event_time": 1718000000,
            "meta": {"resource_id": resource_href.rsplit("/", 1)[-1], "status": "pos", "user_id": "store-77"},
            "resource_href": resource_href,
        }
        event.update(overrides)
        return event

    return _create


# ============================================================================
# Global State Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Fresh breakers per test so failures do not leak between tests"""
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def reset_token_cache():
    """Drop the process-wide cached Uber Eats token"""
    reset_credential_cache()
    yield
    reset_credential_cache()


@pytest.fixture(autouse=True)
async def close_uber_eats_http_client():
    """Clients built from settings share one pooled httpx client per test"""
    yield
    await close_shared_http_client()
