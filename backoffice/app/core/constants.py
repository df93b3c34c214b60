"""
Shared constants for the order lifecycle engine.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Order statuses
# ---------------------------------------------------------------------------
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")

TERMINAL_ORDER_STATUSES = ("delivered", "cancelled")

# Forward order of the fulfilment path; "cancelled" sits outside it
ORDER_STATUS_RANK = {
    "pending": 0,
    "processing": 1,
    "shipped": 2,
    "delivered": 3,
}

# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

# Values an administrator or a payment callback may set
SETTABLE_PAYMENT_STATUSES = ("completed", "failed")

PAYMENT_METHODS = ("card", "bank_transfer", "cash_on_delivery")

# Methods settled outside the payment processor (paid later, by hand)
MANUAL_PAYMENT_METHODS = ("bank_transfer", "cash_on_delivery")

# Legacy payment reference prefixes for manual methods
PAYMENT_REFERENCE_PREFIXES = {
    "COD-": "cash_on_delivery",
    "BANK-": "bank_transfer",
}

# ---------------------------------------------------------------------------
# Order numbers
# ---------------------------------------------------------------------------
ORDER_NUMBER_PREFIX = "ORD-"
ORDER_NUMBER_WIDTH = 6
FIRST_ORDER_NUMBER = "ORD-000001"

# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
REVENUE_PERIODS = ("7d", "30d", "3m")
DEFAULT_REVENUE_PERIOD = "7d"
DASHBOARD_CHANGE_WINDOW_DAYS = 30

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
# DECIMAL(10, 2) money columns
MAX_MONEY = Decimal("99999999.99")
# int4 product ids and stock quantities
MAX_INT4 = 2**31 - 1
PERCENT_BASE = Decimal("100")
