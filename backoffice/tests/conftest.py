"""
Test fixtures for the back-office API.

Provides:
- In-memory SQLite database per test (aiosqlite + StaticPool)
- Async test client with session and cache overrides
- Factories for products, users and orders
- Bearer token headers for customers and administrators
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ["ENVIRONMENT"] = "development"
os.environ["JWT_SECRET"] = "test_jwt_secret"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test_webhook_secret"
# Engine in backoffice.app.core.database is never used by tests (dependencies are overridden)
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RESTOCK_ON_CANCEL"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.app.api.deps import get_cache, get_session
from backoffice.app.core.auth import create_access_token
from backoffice.app.core.base import Base
from backoffice.app.core.clock import utcnow
from backoffice.app.main import app
from backoffice.app.models.order import Order
from backoffice.app.models.product import Product
from backoffice.app.models.user import User

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
WEBHOOK_SECRET = "test_webhook_secret"


class MockCacheService:
    """Mock Redis cache for testing without actual Redis."""

    def __init__(self):
        self._cache = {}
        self.invalidations = 0

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: int = 300):
        self._cache[key] = value

    async def get_dashboard_stats(self):
        return self._cache.get("dashboard:stats")

    async def set_dashboard_stats(self, stats):
        self._cache["dashboard:stats"] = stats

    async def get_revenue_analytics(self, period: str):
        return self._cache.get(f"dashboard:revenue:{period}")

    async def set_revenue_analytics(self, period: str, analytics):
        self._cache[f"dashboard:revenue:{period}"] = analytics

    async def invalidate_dashboard(self):
        self.invalidations += 1
        for key in [k for k in self._cache if k.startswith("dashboard:")]:
            self._cache.pop(key, None)


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def mock_cache() -> MockCacheService:
    """Provide mock cache service for testing."""
    return MockCacheService()


@pytest.fixture
async def client(
    session_factory: async_sessionmaker,
    mock_cache: MockCacheService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Each request gets its own session, separate from ``test_session``.
    """
    async def override_get_session():
        async with session_factory() as session:
            yield session

    async def override_get_cache():
        yield mock_cache

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_cache] = override_get_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
def make_product(test_session: AsyncSession):
    """Factory: insert a product with the given stock."""
    async def _make(name: str = "Linen Shirt", price: str = "100.00", stock: int = 10,
                    image_url: Optional[str] = "https://img.example/shirt.jpg") -> Product:
        product = Product(name=name, price=Decimal(price), stock=stock, image_url=image_url)
        test_session.add(product)
        await test_session.commit()
        await test_session.refresh(product)
        return product
    return _make


@pytest.fixture
def make_user(test_session: AsyncSession):
    async def _make(user_id: str, role: str = "customer") -> User:
        user = User(id=user_id, username=user_id, email=f"{user_id}@example.com", role=role)
        test_session.add(user)
        await test_session.commit()
        return user
    return _make


@pytest.fixture
def make_order(test_session: AsyncSession):
    """
    Factory: insert an order row directly, bypassing checkout.
    Useful for putting an order into an arbitrary state.
    """
    counter = {"n": 0}

    async def _make(
        order_status: str = "pending",
        payment_status: str = "pending",
        payment_method: str = "cash_on_delivery",
        total: str = "210.00",
        created_at: Optional[datetime] = None,
        order_number: Optional[str] = None,
        user_id: str = "customer-1",
        items: Optional[list] = None,
        payment_intent_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> Order:
        counter["n"] += 1
        created_at = created_at or utcnow()
        total_value = Decimal(total)
        order = Order(
            order_number=order_number or f"ORD-9{counter['n']:05d}",
            user_id=user_id,
            items=items if items is not None else [
                {"productId": 1, "name": "Linen Shirt", "price": 100.0, "image": None,
                 "quantity": 2, "size": "M", "color": "white"},
            ],
            shipping_address={"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
            payment_intent_id=payment_intent_id or f"pi_test_{counter['n']}",
            payment_method=payment_method,
            payment_status=payment_status,
            paid_at=paid_at,
            subtotal=total_value,
            shipping_cost=Decimal("0"),
            total=total_value,
            order_status=order_status,
            created_at=created_at,
            updated_at=created_at,
        )
        test_session.add(order)
        await test_session.commit()
        await test_session.refresh(order)
        return order
    return _make


# --- Checkout payloads ---

SHIPPING_ADDRESS = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "country": "UK",
    "streetAddress": "12 St James's Square",
    "townCity": "London",
    "province": "Greater London",
    "zipCode": "SW1Y 4JH",
    "phone": "+44 20 7946 0000",
    "email": "ada@example.com",
}


@pytest.fixture
def checkout_payload():
    """Factory: a valid POST /orders body for the given lines."""
    def _payload(lines, payment_intent_id: str = "COD-1700000000000",
                 subtotal: str = "200.00", shipping_cost: str = "10.00", total: str = "210.00",
                 **extra) -> dict:
        body = {
            "items": [
                {"productId": product_id, "quantity": quantity, "size": "M", "color": "white"}
                for product_id, quantity in lines
            ],
            "shippingAddress": dict(SHIPPING_ADDRESS),
            "paymentIntentId": payment_intent_id,
            "subtotal": subtotal,
            "shippingCost": shipping_cost,
            "total": total,
        }
        body.update(extra)
        return body
    return _payload


@pytest.fixture
def shipping_address() -> dict:
    """Snake_case shipping address as the order engine receives it."""
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "country": "UK",
        "street_address": "12 St James's Square",
        "town_city": "London",
        "province": "Greater London",
        "zip_code": "SW1Y 4JH",
        "phone": "+44 20 7946 0000",
        "email": "ada@example.com",
    }


# --- Auth Helpers ---

@pytest.fixture
def auth_headers():
    """Factory: Authorization header for an arbitrary subject and role."""
    def _headers(user_id: str = "customer-1", role: str = "customer") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
    return _headers


@pytest.fixture
def customer_headers(auth_headers) -> dict:
    return auth_headers("customer-1", "customer")


@pytest.fixture
def admin_headers(auth_headers) -> dict:
    return auth_headers("admin-1", "admin")


@pytest.fixture
def webhook_headers() -> dict:
    return {"X-Webhook-Secret": WEBHOOK_SECRET}
