"""Order endpoints: checkout, the admin listing and the two transition PATCHes."""
import math
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.api.deps import get_cache, get_session
from backoffice.app.core.auth import Principal, get_current_principal, require_admin
from backoffice.app.core.database import bounded
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.limiter import limiter
from backoffice.app.core.logging import get_logger
from backoffice.app.core.settings import get_settings
from backoffice.app.schemas import OrderCreate, OrderStatusUpdate, PaymentStatusUpdate
from backoffice.app.services.cache import CacheService
from backoffice.app.services.orders import OrderService, order_filter_conditions, serialize_order
from backoffice.app.services.payment import resolve_payment_method
from backoffice.app.services.reporting import ReportingService

router = APIRouter()
logger = get_logger(__name__)

PaymentMethodFilter = Literal["card", "bank_transfer", "cash_on_delivery"]
PaymentStatusFilter = Literal["pending", "completed", "failed", "refunded"]
OrderStatusFilter = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


async def _rollback(session: AsyncSession, e: ServiceError, event: str, **context):
    await session.rollback()
    logger.warning(event, error=e.message, error_code=e.status_code, **context)


# --- 1. Checkout ---
@router.post("", status_code=201)
@limiter.limit(get_settings().ORDER_CREATE_RATE_LIMIT)
async def create_order(
    request: Request,
    data: OrderCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    principal: Principal = Depends(get_current_principal),
):
    """
    Create an order from the caller's cart.

    Stock reservation, order numbering and the insert share one transaction:
    on any failure nothing is persisted and no stock changes.
    """
    service = OrderService(session)
    try:
        payment_method = resolve_payment_method(data.payment_intent_id, data.payment_method)
        order = await bounded(service.create_order(
            user_id=principal.user_id,
            items=[item.model_dump() for item in data.items],
            shipping_address=data.shipping_address.model_dump(),
            payment_intent_id=data.payment_intent_id,
            payment_method=payment_method,
            subtotal=data.subtotal,
            shipping_cost=data.shipping_cost,
            total=data.total,
        ))
        await bounded(session.commit())
    except ServiceError as e:
        await _rollback(session, e, "Order creation failed", user_id=principal.user_id)
        raise

    await cache.invalidate_dashboard()
    return {"success": True, "order": serialize_order(order)}


# --- 2. Listing (admin) ---
@router.get("")
async def list_orders(
    payment_method: Optional[PaymentMethodFilter] = Query(None, alias="paymentMethod"),
    payment_status: Optional[PaymentStatusFilter] = Query(None, alias="paymentStatus"),
    order_status: Optional[OrderStatusFilter] = Query(None, alias="orderStatus"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200, alias="perPage"),
    session: AsyncSession = Depends(get_session),
    _admin: Principal = Depends(require_admin),
):
    """Filtered orders, newest first, with status counts over the same filter."""
    service = OrderService(session)
    orders, total = await bounded(service.list_orders(
        payment_method=payment_method,
        payment_status=payment_status,
        order_status=order_status,
        page=page,
        per_page=per_page,
    ))
    conditions = order_filter_conditions(payment_method, payment_status, order_status)
    stats = await bounded(ReportingService(session).listing_stats(*conditions))

    return {
        "success": True,
        "count": len(orders),
        "total": total,
        "page": page,
        "pages": math.ceil(total / per_page) if total else 0,
        "orders": [serialize_order(order) for order in orders],
        "stats": stats,
    }


# --- 3. The caller's own orders ---
@router.get("/mine")
async def my_orders(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    orders = await bounded(OrderService(session).list_user_orders(principal.user_id))
    return {
        "success": True,
        "count": len(orders),
        "orders": [serialize_order(order) for order in orders],
    }


# --- 4. Single order (owner or admin) ---
@router.get("/{order_id}")
async def get_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
):
    order = await bounded(OrderService(session).get_order(order_id))
    if not principal.is_admin and order.user_id != principal.user_id:
        raise HTTPException(status_code=403, detail="Not your order")
    return {"success": True, "order": serialize_order(order)}


# --- 5. Order status (admin) ---
@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    admin: Principal = Depends(require_admin),
):
    service = OrderService(session)
    try:
        order = await bounded(service.update_order_status(order_id, data.order_status))
        await bounded(session.commit())
    except ServiceError as e:
        await _rollback(
            session, e, "Order status update rejected",
            order_id=order_id, target=data.order_status, admin_id=admin.user_id,
        )
        raise

    await cache.invalidate_dashboard()
    return {"success": True, "order": serialize_order(order)}


# --- 6. Payment status (admin) ---
@router.patch("/{order_id}/payment-status")
async def update_payment_status(
    order_id: str,
    data: PaymentStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    admin: Principal = Depends(require_admin),
):
    service = OrderService(session)
    try:
        order = await bounded(service.update_payment_status(
            order_id, data.payment_status, data.paid_at, source="admin",
        ))
        await bounded(session.commit())
    except ServiceError as e:
        await _rollback(
            session, e, "Payment status update rejected",
            order_id=order_id, target=data.payment_status, admin_id=admin.user_id,
        )
        raise

    await cache.invalidate_dashboard()
    return {"success": True, "order": serialize_order(order)}
