from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DECIMAL, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.app.core.base import Base
from backoffice.app.core.clock import utcnow


class Product(Base):
    """Inventory view of a catalog product. Catalog CRUD lives elsewhere."""
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2))
    stock: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )
