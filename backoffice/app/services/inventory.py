"""
Inventory ledger: the single source of truth for sellable quantity per product.

Stock is never read-modified-written in Python. Every mutation is a single
conditional UPDATE so concurrent checkouts racing for the last units cannot
both succeed and stock can never go negative.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.logging import get_logger
from backoffice.app.core.metrics import stock_rejections_total
from backoffice.app.models.product import Product

logger = get_logger(__name__)


class InventoryServiceError(ServiceError):
    """Base exception for inventory errors."""


class ProductNotFoundError(InventoryServiceError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found", 404)

    @property
    def details(self):
        return {"productId": self.product_id}


class InsufficientStockError(InventoryServiceError):
    def __init__(self, product_id: int, available: int, requested: int, product_name: Optional[str] = None):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        label = f"'{product_name}'" if product_name else str(product_id)
        super().__init__(
            f"Insufficient stock for product {label}: available {available}, requested {requested}",
            409,
        )

    @property
    def details(self):
        return {
            "productId": self.product_id,
            "available": self.available,
            "requested": self.requested,
        }


def aggregate_lines(lines: Iterable[Tuple[int, int]]) -> Dict[int, int]:
    """Sum requested quantities per product (the same product may appear in several lines)."""
    totals: Dict[int, int] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


class InventoryService:
    """Stock checks and atomic stock mutations. Caller owns the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _reject(self, error: InventoryServiceError) -> InventoryServiceError:
        reason = "product_not_found" if isinstance(error, ProductNotFoundError) else "insufficient_stock"
        stock_rejections_total.labels(reason=reason).inc()
        logger.info("Stock rejected", reason=reason, product_id=error.product_id)
        return error

    async def _current_stock(self, product_id: int) -> Optional[int]:
        result = await self.session.execute(
            select(Product.stock).where(Product.id == product_id)
        )
        return result.scalar_one_or_none()

    async def check_stock(self, product_id: int, quantity: int) -> Product:
        """
        Return the product if at least ``quantity`` units are available.

        Raises:
            ProductNotFoundError: unknown product
            InsufficientStockError: stock below ``quantity``
        """
        result = await self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise self._reject(ProductNotFoundError(product_id))
        if product.stock < quantity:
            raise self._reject(InsufficientStockError(product_id, product.stock, quantity, product.name))
        return product

    async def decrement(self, product_id: int, quantity: int) -> int:
        """
        Atomically take ``quantity`` units; returns the remaining stock.

        Compare-and-swap: the guard ``stock >= quantity`` is evaluated by the
        store inside the UPDATE itself.
        """
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        remaining = await self._current_stock(product_id)
        if result.rowcount != 1:
            if remaining is None:
                raise self._reject(ProductNotFoundError(product_id))
            raise self._reject(InsufficientStockError(product_id, remaining, quantity))
        return remaining

    async def restore(self, product_id: int, quantity: int) -> int:
        """Atomically return ``quantity`` units to stock; returns the new stock."""
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ProductNotFoundError(product_id)
        return await self._current_stock(product_id)

    async def reserve(self, lines: Iterable[Tuple[int, int]]) -> Dict[int, Product]:
        """
        All-or-nothing reservation for a checkout.

        Locks the product rows in ascending id order, validates every line
        before touching stock, then decrements each product once. If a
        decrement loses a race after validation, the decrements already
        applied in this batch are restored before the error is raised.

        Returns the locked products keyed by id.
        """
        totals = aggregate_lines(lines)
        product_ids = sorted(totals)
        if not product_ids:
            return {}

        result = await self.session.execute(
            select(Product)
            .where(Product.id.in_(product_ids))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        products = {p.id: p for p in result.scalars().all()}

        for product_id in product_ids:
            product = products.get(product_id)
            if product is None:
                raise self._reject(ProductNotFoundError(product_id))
            if product.stock < totals[product_id]:
                raise self._reject(
                    InsufficientStockError(product_id, product.stock, totals[product_id], product.name)
                )

        applied: List[Tuple[int, int]] = []
        try:
            for product_id in product_ids:
                await self.decrement(product_id, totals[product_id])
                applied.append((product_id, totals[product_id]))
        except InventoryServiceError:
            for product_id, quantity in reversed(applied):
                await self.restore(product_id, quantity)
            logger.warning(
                "Reservation lost a stock race; partial decrements restored",
                restored=len(applied),
            )
            raise

        logger.debug("Stock reserved", products=len(product_ids), units=sum(totals.values()))
        return products
