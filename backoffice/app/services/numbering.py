"""
Order numbering: human-readable ``ORD-NNNNNN`` identifiers.

The next number is derived from the most recently created sequential number,
which is a read-then-write race under concurrent checkouts. The unique index
on ``orders.order_number`` is the real guard: the insert runs inside a
savepoint and a collision is retried with a timestamp/random fallback number,
so numbers are unique always and increasing on a best-effort basis only.
"""
import random
import re
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.constants import FIRST_ORDER_NUMBER, ORDER_NUMBER_PREFIX, ORDER_NUMBER_WIDTH
from backoffice.app.core.exceptions import StoreUnavailableError
from backoffice.app.core.logging import get_logger
from backoffice.app.core.metrics import order_number_fallbacks_total
from backoffice.app.core.settings import get_settings
from backoffice.app.models.order import Order

logger = get_logger(__name__)

SEQUENTIAL_NUMBER_RE = re.compile(r"^ORD-(\d+)$")


class OrderNumberingExhaustedError(StoreUnavailableError):
    """Every numbering attempt collided; surfaced as a store failure."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"order numbering exhausted after {attempts} attempts")


def format_order_number(sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{sequence:0{ORDER_NUMBER_WIDTH}d}"


def next_sequential_number(last_number: Optional[str]) -> Optional[str]:
    """
    Successor of ``last_number``; ``ORD-000001`` when there is none.

    Returns None when ``last_number`` is not in the sequential form, which
    tells the caller to use a fallback number.
    """
    if last_number is None:
        return FIRST_ORDER_NUMBER
    match = SEQUENTIAL_NUMBER_RE.match(last_number)
    if not match:
        return None
    return format_order_number(int(match.group(1)) + 1)


def fallback_order_number() -> str:
    """Collision-resistant number: epoch milliseconds plus four random digits."""
    return f"{ORDER_NUMBER_PREFIX}{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"


class OrderNumberingService:
    """Assigns order numbers and persists orders under the uniqueness guard."""

    def __init__(self, session: AsyncSession, max_attempts: Optional[int] = None):
        self.session = session
        self.max_attempts = max_attempts or get_settings().ORDER_NUMBER_MAX_ATTEMPTS

    async def latest_sequential_number(self) -> Optional[str]:
        # Fallback numbers (ORD-<millis>-<rand>) are skipped so one fallback
        # does not switch every later order to the fallback scheme.
        result = await self.session.execute(
            select(Order.order_number)
            .where(Order.order_number.not_like(f"{ORDER_NUMBER_PREFIX}%-%"))
            .order_by(Order.created_at.desc(), Order.order_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _number_taken(self, number: str) -> bool:
        result = await self.session.execute(
            select(Order.id).where(Order.order_number == number).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def next_number(self) -> str:
        last_number = await self.latest_sequential_number()
        number = next_sequential_number(last_number)
        if number is None:
            logger.warning("Unparseable last order number, using fallback", last_number=last_number)
            order_number_fallbacks_total.inc()
            return fallback_order_number()
        return number

    async def insert_numbered(self, order: Order) -> Order:
        """
        Assign a number to ``order`` and insert it.

        Raises:
            OrderNumberingExhaustedError: every attempt hit the unique index
        """
        number = await self.next_number()
        for attempt in range(1, self.max_attempts + 1):
            order.order_number = number
            try:
                async with self.session.begin_nested():
                    self.session.add(order)
                    await self.session.flush()
            except IntegrityError:
                # Savepoint rolled back; the order is transient again.
                # Only a taken number is retried; any other constraint propagates.
                if not await self._number_taken(number):
                    raise
                logger.warning("Order number collision", order_number=number, attempt=attempt)
                order_number_fallbacks_total.inc()
                number = fallback_order_number()
                continue
            return order

        logger.error("Order numbering exhausted", attempts=self.max_attempts)
        raise OrderNumberingExhaustedError(self.max_attempts)
