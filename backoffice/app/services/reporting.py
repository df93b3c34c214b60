"""
Reporting aggregator: read-only dashboard statistics over persisted orders.

Revenue counts only orders whose payment is completed. Every aggregate is
tolerant of an empty store; empty days are reported as zero, never invented.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.core.constants import (
    DASHBOARD_CHANGE_WINDOW_DAYS,
    ONE_CENT,
    ORDER_STATUSES,
    PERCENT_BASE,
    REVENUE_PERIODS,
    ZERO,
)
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.models.order import Order
from backoffice.app.models.product import Product
from backoffice.app.models.user import User

COMPLETED = Order.payment_status == "completed"


class ReportingServiceError(ServiceError):
    """Base exception for reporting errors."""


class InvalidPeriodError(ReportingServiceError):
    def __init__(self, period: str):
        super().__init__(f"Invalid period '{period}'. Allowed: {', '.join(REVENUE_PERIODS)}", 400)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(ONE_CENT)


def _as_date(value: Any) -> date:
    # SQLite returns date() buckets as ISO strings
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def period_bounds(period: str, now: Optional[datetime] = None) -> Tuple[date, date]:
    """Inclusive calendar-day range ending today for ``7d``, ``30d`` or ``3m``."""
    today = (now or utcnow()).date()
    if period == "7d":
        return today - timedelta(days=6), today
    if period == "30d":
        return today - timedelta(days=29), today
    if period == "3m":
        return today - relativedelta(months=3), today
    raise InvalidPeriodError(period)


def percent_change(current: Decimal, previous: Decimal) -> Optional[float]:
    if previous == ZERO:
        return None
    return float(((current - previous) / previous * PERCENT_BASE).quantize(Decimal("0.1")))


class ReportingService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def total_revenue_and_count(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[Decimal, int]:
        """Sum of ``total`` and number of completed-payment orders, optionally in ``[start, end)``."""
        conditions = [COMPLETED]
        if start is not None:
            conditions.append(Order.created_at >= start)
        if end is not None:
            conditions.append(Order.created_at < end)
        row = (await self.session.execute(
            select(func.sum(Order.total), func.count(Order.id)).where(*conditions)
        )).one()
        return _to_decimal(row[0]), int(row[1] or 0)

    async def order_status_counts(self, *conditions) -> Dict[str, int]:
        """Orders per status (every status present, defaulting to 0)."""
        result = await self.session.execute(
            select(Order.order_status, func.count(Order.id))
            .where(*conditions)
            .group_by(Order.order_status)
        )
        counts = {status: 0 for status in ORDER_STATUSES}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def pending_payments_count(self, *conditions) -> int:
        result = await self.session.execute(
            select(func.count(Order.id)).where(Order.payment_status == "pending", *conditions)
        )
        return result.scalar_one()

    async def listing_stats(self, *conditions) -> Dict[str, int]:
        """Status breakdown shown next to a filtered order listing."""
        counts = await self.order_status_counts(*conditions)
        return {
            "total": sum(counts.values()),
            **counts,
            "pendingPayments": await self.pending_payments_count(*conditions),
        }

    async def daily_revenue_series(self, start: date, end: date) -> List[Dict[str, Any]]:
        """
        Completed-payment revenue bucketed by calendar day over ``[start, end]``.

        Every day in the range is present, ascending; days without orders
        carry zero revenue.
        """
        day = func.date(Order.created_at)
        result = await self.session.execute(
            select(day, func.sum(Order.total), func.count(Order.id))
            .where(
                COMPLETED,
                Order.created_at >= datetime.combine(start, time.min),
                Order.created_at < datetime.combine(end + timedelta(days=1), time.min),
            )
            .group_by(day)
        )
        buckets = {_as_date(bucket): (_to_decimal(revenue), count) for bucket, revenue, count in result.all()}

        series = []
        current = start
        while current <= end:
            revenue, count = buckets.get(current, (ZERO, 0))
            series.append({
                "date": current.isoformat(),
                "day": current.strftime("%a"),
                "revenue": float(revenue),
                "orders": count,
            })
            current += timedelta(days=1)
        return series

    async def revenue_analytics(self, period: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        start, end = period_bounds(period, now)
        series = await self.daily_revenue_series(start, end)
        max_revenue = max((point["revenue"] for point in series), default=0.0)
        return {
            "period": period,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "dailyRevenue": series,
            "maxRevenue": max_revenue,
            "hasData": any(point["orders"] for point in series),
        }

    async def period_change(self, days: int, now: Optional[datetime] = None) -> Dict[str, Optional[float]]:
        """Percent change of completed revenue and order count: last ``days`` vs. the ``days`` before."""
        now = now or utcnow()
        window = timedelta(days=days)
        current_revenue, current_count = await self.total_revenue_and_count(now - window, now)
        previous_revenue, previous_count = await self.total_revenue_and_count(now - 2 * window, now - window)
        return {
            "revenueChange": percent_change(current_revenue, previous_revenue),
            "ordersChange": percent_change(Decimal(current_count), Decimal(previous_count)),
        }

    async def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        total_revenue, total_orders = await self.total_revenue_and_count()
        counts = await self.order_status_counts()
        active_users = (await self.session.execute(
            select(func.count(User.id)).where(User.role != "admin")
        )).scalar_one()
        total_products = (await self.session.execute(select(func.count(Product.id)))).scalar_one()
        changes = await self.period_change(DASHBOARD_CHANGE_WINDOW_DAYS, now)

        return {
            "totalRevenue": float(total_revenue),
            "totalOrders": total_orders,
            "activeUsers": active_users,
            "totalProducts": total_products,
            "orderMetrics": {
                "completed": counts["delivered"],
                "pending": counts["pending"],
                "processing": counts["processing"],
                "shipped": counts["shipped"],
                "cancelled": counts["cancelled"],
            },
            "orderStatusCounts": counts,
            **changes,
        }
