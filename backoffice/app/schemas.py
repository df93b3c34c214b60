from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backoffice.app.core.constants import MAX_INT4
from backoffice.app.core.sanitize import sanitize_user_input


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (and snake_case for internal callers)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Orders: checkout ---
class OrderItemIn(CamelModel):
    product_id: int = Field(ge=1, le=MAX_INT4)
    quantity: int
    name: Optional[str] = None
    price: Optional[Decimal] = None
    image: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name", "size", "color")
    @classmethod
    def sanitize_text_fields(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(v, max_length=255)

    @field_validator("image")
    @classmethod
    def sanitize_image(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(v, max_length=1024)


class ShippingAddressIn(CamelModel):
    """Shipping snapshot. Required fields are enforced by the order engine."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    country: Optional[str] = None
    street_address: Optional[str] = None
    town_city: Optional[str] = None
    province: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    additional_info: Optional[str] = None

    @field_validator("*")
    @classmethod
    def sanitize_text_fields(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(str(v), max_length=2000)


class OrderCreate(CamelModel):
    items: List[OrderItemIn] = Field(default_factory=list)
    shipping_address: ShippingAddressIn
    payment_intent_id: str = Field(min_length=1, max_length=255)
    payment_method: Optional[Literal["card", "bank_transfer", "cash_on_delivery"]] = None
    subtotal: Decimal
    shipping_cost: Decimal = Decimal("0")
    total: Decimal

    @field_validator("payment_intent_id")
    @classmethod
    def sanitize_intent(cls, v: str) -> str:
        return sanitize_user_input(v, max_length=255)


# --- Orders: transitions ---
class OrderStatusUpdate(CamelModel):
    order_status: str


class PaymentStatusUpdate(CamelModel):
    payment_status: str
    paid_at: Optional[datetime] = None
