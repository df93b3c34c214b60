"""
Unified base exception classes for all services.

Each service extends ServiceError with its own base (e.g. OrderServiceError)
so that callers can catch either the service family or every service error.
Infrastructure failures of the backing store live here because every service
can raise them.
"""
from typing import Any, Dict


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def details(self) -> Dict[str, Any]:
        """Extra machine-readable fields rendered next to the error message."""
        return {}


class StoreTimeoutError(ServiceError):
    """A store operation did not finish within its time bound."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Store operation timed out after {timeout:g}s", 504)


class StoreUnavailableError(ServiceError):
    """The backing store refused or dropped the connection."""

    def __init__(self, reason: str = "store unavailable"):
        self.reason = reason
        super().__init__("Order store is temporarily unavailable", 503)
