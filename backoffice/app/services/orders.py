"""
Order lifecycle engine.

Creation turns a checkout into a persisted order: validate, reserve stock,
derive the initial payment/order state, assign a number, insert. Transitions
advance the coupled payment-status / order-status state machine under a row
lock. Every method leaves the commit to the caller, so a failure anywhere
rolls back stock and order together.
"""
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import to_naive_utc, utcnow
from backoffice.app.core.constants import (
    MANUAL_PAYMENT_METHODS,
    MAX_INT4,
    MAX_MONEY,
    ONE_CENT,
    ORDER_STATUS_RANK,
    ORDER_STATUSES,
    PAYMENT_METHODS,
    SETTABLE_PAYMENT_STATUSES,
    TERMINAL_ORDER_STATUSES,
    ZERO,
)
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.logging import get_logger
from backoffice.app.core.metrics import (
    order_status_transitions_total,
    orders_created_total,
    payment_status_updates_total,
)
from backoffice.app.core.settings import get_settings
from backoffice.app.models.order import Order
from backoffice.app.services.inventory import InventoryService, aggregate_lines
from backoffice.app.services.numbering import OrderNumberingService

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# (snake_case input key, camelCase snapshot key)
REQUIRED_ADDRESS_FIELDS = (
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("country", "country"),
    ("street_address", "streetAddress"),
    ("town_city", "townCity"),
    ("province", "province"),
    ("zip_code", "zipCode"),
    ("phone", "phone"),
    ("email", "email"),
)
OPTIONAL_ADDRESS_FIELDS = (
    ("company_name", "companyName"),
    ("additional_info", "additionalInfo"),
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class OrderServiceError(ServiceError):
    """Base exception for order service errors."""


class OrderValidationError(OrderServiceError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, 400)

    @property
    def details(self):
        return {"field": self.field}


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", 404)


class InvalidStatusError(OrderServiceError):
    def __init__(self, value: str, allowed: Sequence[str]):
        self.value = value
        super().__init__(f"Invalid status '{value}'. Allowed: {', '.join(allowed)}", 400)


class InvalidTransitionError(OrderServiceError):
    def __init__(self, current: str, target: str, reason: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from '{current}' to '{target}': {reason}", 400)


class PaymentNotCompletedError(OrderServiceError):
    def __init__(self, payment_status: str):
        self.payment_status = payment_status
        super().__init__(
            f"Payment must be completed before processing (payment status is '{payment_status}')",
            400,
        )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(ONE_CENT)


def _money(value: Any, field: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise OrderValidationError(field, f"{field} must be a number")
    if not amount.is_finite():
        raise OrderValidationError(field, f"{field} must be a number")
    if amount < ZERO:
        raise OrderValidationError(field, f"{field} must not be negative")
    if amount > MAX_MONEY:
        raise OrderValidationError(field, f"{field} must not exceed {MAX_MONEY}")
    return quantize_money(amount)


def validate_totals(subtotal: Any, shipping_cost: Any, total: Any) -> Tuple[Decimal, Decimal, Decimal]:
    """Non-negative money fields with ``total == subtotal + shippingCost`` to the cent."""
    subtotal = _money(subtotal, "subtotal")
    shipping_cost = _money(shipping_cost, "shippingCost")
    total = _money(total, "total")
    if total != subtotal + shipping_cost:
        raise OrderValidationError(
            "total",
            f"total {total} does not equal subtotal {subtotal} + shippingCost {shipping_cost}",
        )
    return subtotal, shipping_cost, total


def validate_items(items: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not items:
        raise OrderValidationError("items", "Order must contain at least one item")
    validated = []
    for index, item in enumerate(items):
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not isinstance(product_id, int) or isinstance(product_id, bool) or not 1 <= product_id <= MAX_INT4:
            raise OrderValidationError(f"items[{index}].productId", "productId must be a positive integer")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or not 1 <= quantity <= MAX_INT4:
            raise OrderValidationError(f"items[{index}].quantity", f"quantity must be between 1 and {MAX_INT4}")
        price = item.get("price")
        if price is not None:
            price = _money(price, f"items[{index}].price")
        validated.append({**item, "price": price})
    return validated


def validate_shipping_address(address: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Check required fields and return the camelCase snapshot."""
    if not address:
        raise OrderValidationError("shippingAddress", "Shipping address is required")
    snapshot: Dict[str, Any] = {}
    for key, label in REQUIRED_ADDRESS_FIELDS:
        value = (address.get(key) or "").strip()
        if not value:
            raise OrderValidationError(f"shippingAddress.{label}", f"{label} is required")
        snapshot[label] = value
    if not EMAIL_RE.match(snapshot["email"]):
        raise OrderValidationError("shippingAddress.email", "email is not a valid address")
    for key, label in OPTIONAL_ADDRESS_FIELDS:
        value = (address.get(key) or "").strip()
        snapshot[label] = value or None
    return snapshot


def initial_state(payment_method: str, now: datetime) -> Tuple[str, Optional[datetime], str]:
    """(payment_status, paid_at, order_status) for a freshly created order."""
    if payment_method in MANUAL_PAYMENT_METHODS:
        return "pending", None, "pending"
    # Card payments are confirmed by the processor before checkout completes
    return "completed", now, "processing"


def check_order_transition(current: str, target: str, payment_status: str) -> bool:
    """
    Validate an order status change.

    Returns False when ``target`` equals ``current`` (no-op), True when the
    change should be applied.

    Raises:
        InvalidStatusError, InvalidTransitionError, PaymentNotCompletedError
    """
    if target not in ORDER_STATUSES:
        raise InvalidStatusError(target, ORDER_STATUSES)
    if current in TERMINAL_ORDER_STATUSES:
        raise InvalidTransitionError(current, target, f"order is already {current}")
    if target == current:
        return False
    if target == "cancelled":
        return True
    if ORDER_STATUS_RANK[target] < ORDER_STATUS_RANK[current]:
        raise InvalidTransitionError(current, target, "order status cannot move backwards")
    if target == "processing" and payment_status != "completed":
        raise PaymentNotCompletedError(payment_status)
    if target == "delivered" and current != "shipped":
        raise InvalidTransitionError(current, target, "order must be shipped before delivered")
    return True


def order_filter_conditions(
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
    order_status: Optional[str] = None,
) -> list:
    """WHERE clauses for the admin order filters; unset filters match everything."""
    conditions = []
    if payment_method:
        conditions.append(Order.payment_method == payment_method)
    if payment_status:
        conditions.append(Order.payment_status == payment_status)
    if order_status:
        conditions.append(Order.order_status == order_status)
    return conditions


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_order(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "userId": order.user_id,
        "items": order.items,
        "shippingAddress": order.shipping_address,
        "paymentInfo": {
            "paymentIntentId": order.payment_intent_id,
            "paymentMethod": order.payment_method,
            "paymentStatus": order.payment_status,
            "paidAt": _iso(order.paid_at),
        },
        "subtotal": float(order.subtotal),
        "shippingCost": float(order.shipping_cost),
        "total": float(order.total),
        "orderStatus": order.order_status,
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
        "deliveredAt": _iso(order.delivered_at),
        "cancelledAt": _iso(order.cancelled_at),
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class OrderService:
    """Service class for the order lifecycle."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.inventory = InventoryService(session)
        self.numbering = OrderNumberingService(session)

    async def create_order(
        self,
        user_id: str,
        items: Sequence[Dict[str, Any]],
        shipping_address: Dict[str, Any],
        payment_intent_id: str,
        payment_method: str,
        subtotal: Any,
        shipping_cost: Any,
        total: Any,
    ) -> Order:
        """
        Create an order from a checkout.

        Args:
            user_id: subject of the caller's identity token
            items: line items with product_id, quantity and optional
                   name/price/image/size/color asserted by the client
            shipping_address: snake_case address fields
            payment_intent_id: reference from the payment collaborator
            payment_method: card, bank_transfer or cash_on_delivery
            subtotal, shipping_cost, total: pre-computed money fields

        Raises:
            OrderValidationError: malformed input (with the offending field)
            ProductNotFoundError / InsufficientStockError: reservation failed
            OrderNumberingExhaustedError: numbering could not find a free number

        Caller must commit the session after this returns and roll back on error.
        """
        if payment_method not in PAYMENT_METHODS:
            raise OrderValidationError("paymentMethod", f"Unknown payment method '{payment_method}'")
        if not payment_intent_id:
            raise OrderValidationError("paymentIntentId", "paymentIntentId is required")
        lines = validate_items(items)
        address = validate_shipping_address(shipping_address)
        subtotal, shipping_cost, total = validate_totals(subtotal, shipping_cost, total)

        products = await self.inventory.reserve(
            (line["product_id"], line["quantity"]) for line in lines
        )

        snapshot = []
        for line in lines:
            product = products[line["product_id"]]
            price = line["price"] if line["price"] is not None else quantize_money(Decimal(product.price))
            snapshot.append({
                "productId": product.id,
                "name": line.get("name") or product.name,
                "price": float(price),
                "image": line.get("image") or product.image_url,
                "quantity": line["quantity"],
                "size": line.get("size"),
                "color": line.get("color"),
            })

        now = utcnow()
        payment_status, paid_at, order_status = initial_state(payment_method, now)
        order = Order(
            user_id=str(user_id),
            items=snapshot,
            shipping_address=address,
            payment_intent_id=payment_intent_id,
            payment_method=payment_method,
            payment_status=payment_status,
            paid_at=paid_at,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=total,
            order_status=order_status,
            created_at=now,
            updated_at=now,
        )
        await self.numbering.insert_numbered(order)

        orders_created_total.labels(payment_method=payment_method).inc()
        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            payment_method=payment_method,
            order_status=order_status,
            total=str(total),
        )
        return order

    async def get_order(self, order_id: str) -> Order:
        order = await self.session.get(Order, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def _get_order_for_update(self, order_id: str) -> Order:
        """Get order with row-level lock so transitions on one order serialize."""
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    def _set_order_status(self, order: Order, target: str, now: datetime) -> None:
        previous = order.order_status
        order.order_status = target
        order.updated_at = now
        if target == "delivered":
            order.delivered_at = now
        elif target == "cancelled":
            order.cancelled_at = now
        order_status_transitions_total.labels(from_status=previous, to_status=target).inc()
        logger.info(
            "Order status changed",
            order_id=order.id,
            order_number=order.order_number,
            from_status=previous,
            to_status=target,
        )

    async def update_order_status(self, order_id: str, new_status: str) -> Order:
        """
        Administrator-driven order status change.
        Caller must commit the session after this returns.
        """
        if new_status not in ORDER_STATUSES:
            raise InvalidStatusError(new_status, ORDER_STATUSES)
        order = await self._get_order_for_update(order_id)
        if not check_order_transition(order.order_status, new_status, order.payment_status):
            return order

        self._set_order_status(order, new_status, utcnow())

        if new_status == "cancelled":
            if order.payment_status == "completed":
                logger.warning(
                    "Paid order cancelled; refund is not issued automatically",
                    order_id=order.id,
                    order_number=order.order_number,
                )
            if get_settings().RESTOCK_ON_CANCEL:
                totals = aggregate_lines((item["productId"], item["quantity"]) for item in order.items)
                for product_id, quantity in sorted(totals.items()):
                    await self.inventory.restore(product_id, quantity)
                logger.info("Stock restored for cancelled order", order_id=order.id, products=len(totals))
        return order

    async def update_payment_status(
        self,
        order_id: str,
        payment_status: str,
        paid_at: Optional[datetime] = None,
        source: str = "admin",
    ) -> Order:
        """
        Set the payment status of an order (administrator or payment callback).

        ``completed`` stamps ``paid_at`` once and unblocks a pending order;
        repeating it changes nothing. ``failed`` leaves the order status alone.
        Caller must commit the session after this returns.
        """
        if payment_status not in SETTABLE_PAYMENT_STATUSES:
            raise InvalidStatusError(payment_status, SETTABLE_PAYMENT_STATUSES)
        order = await self._get_order_for_update(order_id)
        now = utcnow()
        previous = order.payment_status

        order.payment_status = payment_status
        order.updated_at = now
        if payment_status == "completed":
            if order.paid_at is None:
                order.paid_at = to_naive_utc(paid_at) or now
            if order.order_status == "pending":
                self._set_order_status(order, "processing", now)
            elif order.order_status == "cancelled":
                logger.warning("Payment completed for a cancelled order", order_id=order.id)

        payment_status_updates_total.labels(status=payment_status, source=source).inc()
        logger.info(
            "Payment status changed",
            order_id=order.id,
            order_number=order.order_number,
            from_status=previous,
            to_status=payment_status,
            source=source,
        )
        return order

    async def apply_payment_callback(
        self,
        payment_intent_id: str,
        payment_status: str,
        paid_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        """Route a processor callback to the order holding ``payment_intent_id``; None if unknown."""
        result = await self.session.execute(
            select(Order.id)
            .where(Order.payment_intent_id == payment_intent_id)
            .order_by(Order.created_at.desc())
            .limit(1)
        )
        order_id = result.scalar_one_or_none()
        if order_id is None:
            logger.warning("Payment callback for unknown intent", payment_intent_id=payment_intent_id)
            return None
        return await self.update_payment_status(order_id, payment_status, paid_at, source="callback")

    async def list_orders(
        self,
        payment_method: Optional[str] = None,
        payment_status: Optional[str] = None,
        order_status: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Order], int]:
        """Filtered orders, newest first, with the total number of matches."""
        conditions = order_filter_conditions(payment_method, payment_status, order_status)

        total = (await self.session.execute(
            select(func.count(Order.id)).where(*conditions)
        )).scalar_one()
        result = await self.session.execute(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total

    async def list_user_orders(self, user_id: str) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == str(user_id))
            .order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())
