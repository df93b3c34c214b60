"""
Tests for reporting (dashboard stats and revenue analytics).
"""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.services.reporting import (
    InvalidPeriodError,
    ReportingService,
    percent_change,
    period_bounds,
)

NOW = datetime(2026, 10, 19, 15, 0)


# --- Pure helpers ---

@pytest.mark.parametrize("period, start", [
    ("7d", date(2026, 10, 13)),
    ("30d", date(2026, 9, 20)),
    ("3m", date(2026, 7, 19)),
])
def test_period_bounds(period, start):
    assert period_bounds(period, NOW) == (start, date(2026, 10, 19))


def test_period_bounds_rejects_unknown():
    with pytest.raises(InvalidPeriodError):
        period_bounds("1y", NOW)


def test_percent_change():
    assert percent_change(Decimal("210"), Decimal("100")) == 110.0
    assert percent_change(Decimal("50"), Decimal("200")) == -75.0
    assert percent_change(Decimal("10"), Decimal("0")) is None


# --- Aggregates ---

@pytest.mark.asyncio
async def test_revenue_series_single_order(test_session: AsyncSession, make_order):
    """One completed 210.00 order on the third day of a 7-day window."""
    await make_order(payment_status="completed", order_status="processing", total="210.00",
                     created_at=datetime(2026, 10, 15, 9, 45))

    analytics = await ReportingService(test_session).revenue_analytics("7d", now=NOW)

    series = analytics["dailyRevenue"]
    assert len(series) == 7
    assert [point["date"] for point in series][0] == "2026-10-13"
    assert series[2] == {"date": "2026-10-15", "day": "Thu", "revenue": 210.0, "orders": 1}
    assert all(point["revenue"] == 0.0 for i, point in enumerate(series) if i != 2)
    assert analytics["maxRevenue"] == 210.0
    assert analytics["hasData"] is True


@pytest.mark.asyncio
async def test_revenue_series_ignores_unpaid_and_out_of_range(test_session: AsyncSession, make_order):
    await make_order(payment_status="pending", total="99.00", created_at=datetime(2026, 10, 18, 8, 0))
    await make_order(payment_status="failed", total="99.00", created_at=datetime(2026, 10, 18, 8, 0))
    await make_order(payment_status="completed", total="500.00", created_at=datetime(2026, 10, 12, 23, 59))

    analytics = await ReportingService(test_session).revenue_analytics("7d", now=NOW)

    assert analytics["hasData"] is False
    assert analytics["maxRevenue"] == 0.0
    assert sum(point["orders"] for point in analytics["dailyRevenue"]) == 0


@pytest.mark.asyncio
async def test_revenue_series_sums_same_day(test_session: AsyncSession, make_order):
    for total in ("10.10", "20.20"):
        await make_order(payment_status="completed", total=total, created_at=datetime(2026, 10, 19, 1, 0))

    series = (await ReportingService(test_session).revenue_analytics("7d", now=NOW))["dailyRevenue"]

    assert series[-1]["revenue"] == 30.3
    assert series[-1]["orders"] == 2


@pytest.mark.asyncio
async def test_dashboard_stats(test_session: AsyncSession, make_order, make_product, make_user):
    await make_user("customer-1")
    await make_user("customer-2")
    await make_user("admin-1", role="admin")
    await make_product(name="Shirt")
    await make_product(name="Scarf")
    now = utcnow()
    await make_order(payment_status="completed", order_status="delivered", total="210.00",
                     created_at=now - timedelta(days=2))
    await make_order(payment_status="completed", order_status="processing", total="100.00",
                     created_at=now - timedelta(days=40))
    await make_order(payment_status="pending", order_status="pending", total="55.00",
                     created_at=now - timedelta(days=1))

    stats = await ReportingService(test_session).dashboard_stats(now=now)

    assert stats["totalRevenue"] == 310.0
    assert stats["totalOrders"] == 2
    assert stats["activeUsers"] == 2
    assert stats["totalProducts"] == 2
    assert stats["orderMetrics"] == {
        "completed": 1,
        "pending": 1,
        "processing": 1,
        "shipped": 0,
        "cancelled": 0,
    }
    assert stats["revenueChange"] == 110.0
    assert stats["ordersChange"] == 0.0


@pytest.mark.asyncio
async def test_dashboard_stats_empty_store(test_session: AsyncSession):
    stats = await ReportingService(test_session).dashboard_stats()

    assert stats["totalRevenue"] == 0.0
    assert stats["totalOrders"] == 0
    assert stats["revenueChange"] is None
    assert stats["ordersChange"] is None
    assert set(stats["orderStatusCounts"].values()) == {0}


# --- Endpoints ---

@pytest.mark.asyncio
async def test_dashboard_requires_admin(client: AsyncClient, customer_headers):
    assert (await client.get("/dashboard/stats")).status_code == 401
    assert (await client.get("/dashboard/stats", headers=customer_headers)).status_code == 403
    assert (await client.get("/analytics/revenue", headers=customer_headers)).status_code == 403


@pytest.mark.asyncio
async def test_dashboard_stats_endpoint(client: AsyncClient, make_order, admin_headers):
    await make_order(payment_status="completed", order_status="shipped", total="42.50")

    response = await client.get("/dashboard/stats", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["totalRevenue"] == 42.5
    assert data["orderMetrics"]["shipped"] == 1


@pytest.mark.asyncio
async def test_revenue_endpoint_empty(client: AsyncClient, admin_headers):
    response = await client.get("/analytics/revenue", params={"period": "30d"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["period"] == "30d"
    assert len(data["dailyRevenue"]) == 30
    assert data["hasData"] is False


@pytest.mark.asyncio
async def test_revenue_endpoint_default_period(client: AsyncClient, admin_headers):
    response = await client.get("/analytics/revenue", headers=admin_headers)
    assert response.json()["period"] == "7d"


@pytest.mark.asyncio
async def test_revenue_endpoint_invalid_period(client: AsyncClient, admin_headers):
    response = await client.get("/analytics/revenue", params={"period": "1y"}, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_dashboard_cached_until_invalidated(client: AsyncClient, make_order, admin_headers, mock_cache):
    first = await client.get("/dashboard/stats", headers=admin_headers)
    assert first.json()["totalOrders"] == 0
    assert mock_cache._cache["dashboard:stats"] == first.json()

    order = await make_order(payment_status="pending", order_status="pending", total="80.00")
    cached = await client.get("/dashboard/stats", headers=admin_headers)
    assert cached.json()["totalOrders"] == 0

    await client.patch(
        f"/orders/{order.id}/payment-status", json={"paymentStatus": "completed"}, headers=admin_headers,
    )
    fresh = await client.get("/dashboard/stats", headers=admin_headers)
    assert fresh.json()["totalOrders"] == 1
    assert fresh.json()["totalRevenue"] == 80.0
