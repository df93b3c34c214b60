"""
Payment collaborator boundary.

Two concerns live here: deciding the payment method of a checkout request
(legacy clients still encode manual methods as a prefix of the payment
reference), and translating processor webhook events into payment status
changes on the order engine.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.constants import PAYMENT_REFERENCE_PREFIXES
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.logging import get_logger
from backoffice.app.models.order import Order
from backoffice.app.services.orders import OrderService, OrderValidationError

logger = get_logger(__name__)

# Processor event -> payment status understood by the order engine
WEBHOOK_EVENT_STATUSES = {
    "payment.succeeded": "completed",
    "payment.failed": "failed",
    "payment.canceled": "failed",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PaymentServiceError(ServiceError):
    """Base exception for payment service errors."""


class MalformedWebhookError(PaymentServiceError):
    def __init__(self, reason: str):
        super().__init__(f"Malformed payment webhook: {reason}", 400)


# ---------------------------------------------------------------------------
# Payment method resolution
# ---------------------------------------------------------------------------

def infer_payment_method(payment_intent_id: str) -> str:
    """Payment method implied by a legacy reference prefix; processor intents are card payments."""
    for prefix, method in PAYMENT_REFERENCE_PREFIXES.items():
        if payment_intent_id.startswith(prefix):
            return method
    return "card"


def resolve_payment_method(payment_intent_id: str, payment_method: Optional[str] = None) -> str:
    """
    Explicit method wins; without one the reference prefix decides.

    Raises:
        OrderValidationError: the explicit method contradicts a manual-payment prefix
    """
    inferred = infer_payment_method(payment_intent_id)
    if payment_method is None:
        return inferred
    if inferred != "card" and inferred != payment_method:
        raise OrderValidationError(
            "paymentMethod",
            f"paymentMethod '{payment_method}' contradicts payment reference '{payment_intent_id}'",
        )
    return payment_method


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PaymentService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.orders = OrderService(session)

    async def handle_webhook(self, event_data: Dict[str, Any]) -> Optional[Order]:
        """
        Apply a processor notification to the matching order.

        Returns the updated order, or None when the event is not one we act on
        or the payment intent is unknown. The caller is responsible for
        ``session.commit()``.
        """
        event_type = event_data.get("event")
        payment_object = event_data.get("object") or {}
        if not isinstance(payment_object, dict):
            raise MalformedWebhookError("object must be a JSON object")
        payment_intent_id = payment_object.get("id")
        if not payment_intent_id:
            raise MalformedWebhookError("missing object.id")

        payment_status = WEBHOOK_EVENT_STATUSES.get(event_type)
        if payment_status is None:
            logger.info("Webhook event ignored", webhook_event=event_type, payment_intent_id=payment_intent_id)
            return None

        paid_at = None
        raw_paid_at = payment_object.get("paid_at") or payment_object.get("captured_at")
        if raw_paid_at:
            try:
                paid_at = datetime.fromisoformat(str(raw_paid_at).replace("Z", "+00:00"))
            except ValueError:
                logger.warning("Webhook has invalid paid_at", paid_at=raw_paid_at)

        order = await self.orders.apply_payment_callback(payment_intent_id, payment_status, paid_at)
        if order is not None:
            logger.info(
                "Webhook processed",
                order_id=order.id,
                payment_intent_id=payment_intent_id,
                webhook_event=event_type,
                payment_status=order.payment_status,
                order_status=order.order_status,
            )
        return order
