"""Back-office dashboard: aggregate stats and the revenue series."""
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.api.deps import get_cache, get_session
from backoffice.app.core.auth import require_admin
from backoffice.app.core.constants import DEFAULT_REVENUE_PERIOD
from backoffice.app.core.database import bounded
from backoffice.app.services.cache import CacheService
from backoffice.app.services.reporting import ReportingService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/dashboard/stats")
async def dashboard_stats(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Revenue totals, status metrics, product/user counts and 30-day changes."""
    cached = await cache.get_dashboard_stats()
    if cached is not None:
        return cached

    stats = await bounded(ReportingService(session).dashboard_stats())
    await cache.set_dashboard_stats(stats)
    return stats


@router.get("/analytics/revenue")
async def revenue_analytics(
    period: Literal["7d", "30d", "3m"] = Query(DEFAULT_REVENUE_PERIOD),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """
    Daily completed-payment revenue for the period.

    ``hasData`` is false when the period has no completed orders; the series
    is then all zeros and the dashboard shows an empty-state chart.
    """
    cached = await cache.get_revenue_analytics(period)
    if cached is not None:
        return cached

    analytics = await bounded(ReportingService(session).revenue_analytics(period))
    await cache.set_revenue_analytics(period, analytics)
    return analytics
