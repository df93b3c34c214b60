"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backoffice.app.services.inventory import (
    InventoryService,
    InventoryServiceError,
    InsufficientStockError,
    ProductNotFoundError,
)
from backoffice.app.services.numbering import (
    OrderNumberingService,
    OrderNumberingExhaustedError,
)
from backoffice.app.services.orders import (
    OrderService,
    OrderServiceError,
    OrderValidationError,
    OrderNotFoundError,
    InvalidStatusError,
    InvalidTransitionError,
    PaymentNotCompletedError,
    serialize_order,
)
from backoffice.app.services.payment import (
    PaymentService,
    PaymentServiceError,
    MalformedWebhookError,
    infer_payment_method,
    resolve_payment_method,
)
from backoffice.app.services.reporting import (
    ReportingService,
    ReportingServiceError,
    InvalidPeriodError,
    period_bounds,
)
from backoffice.app.services.cache import CacheService

__all__ = [
    # Inventory ledger
    "InventoryService",
    "InventoryServiceError",
    "InsufficientStockError",
    "ProductNotFoundError",
    # Order numbering
    "OrderNumberingService",
    "OrderNumberingExhaustedError",
    # Order lifecycle
    "OrderService",
    "OrderServiceError",
    "OrderValidationError",
    "OrderNotFoundError",
    "InvalidStatusError",
    "InvalidTransitionError",
    "PaymentNotCompletedError",
    "serialize_order",
    # Payment boundary
    "PaymentService",
    "PaymentServiceError",
    "MalformedWebhookError",
    "infer_payment_method",
    "resolve_payment_method",
    # Reporting
    "ReportingService",
    "ReportingServiceError",
    "InvalidPeriodError",
    "period_bounds",
    # Cache
    "CacheService",
]
