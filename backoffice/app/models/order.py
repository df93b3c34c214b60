import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DECIMAL, JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.app.core.base import Base
from backoffice.app.core.clock import utcnow


def _new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_order_id)
    order_number: Mapped[str] = mapped_column(String(40), unique=True)
    user_id: Mapped[str] = mapped_column(String(64))
    items: Mapped[list] = mapped_column(JSON())  # line-item snapshots, never rewritten
    shipping_address: Mapped[dict] = mapped_column(JSON())
    # Payment sub-record
    payment_intent_id: Mapped[str] = mapped_column(String(255))
    payment_method: Mapped[str] = mapped_column(String(32))
    payment_status: Mapped[str] = mapped_column(String(32), default='pending')
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Totals
    subtotal: Mapped[Decimal] = mapped_column(DECIMAL(10, 2))
    shipping_cost: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal('0'))
    total: Mapped[Decimal] = mapped_column(DECIMAL(10, 2))
    order_status: Mapped[str] = mapped_column(String(32), default='pending')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_payment_intent_id', 'payment_intent_id'),  # Callback lookup
        Index('ix_orders_payment_status', 'payment_status'),
        Index('ix_orders_order_status', 'order_status'),
        Index('ix_orders_created_at', 'created_at'),
        # Revenue series: completed payments by date
        Index('ix_orders_payment_status_created', 'payment_status', 'created_at'),
    )
