"""
Prometheus metrics for application monitoring.
"""
import time

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import generate_latest as generate_latest_openmetrics
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Order lifecycle metrics
orders_created_total = Counter(
    'orders_created_total',
    'Total number of orders created',
    ['payment_method']
)

order_status_transitions_total = Counter(
    'order_status_transitions_total',
    'Accepted order status transitions',
    ['from_status', 'to_status']
)

payment_status_updates_total = Counter(
    'payment_status_updates_total',
    'Payment status updates applied to orders',
    ['status', 'source']
)

# Inventory metrics
stock_rejections_total = Counter(
    'stock_rejections_total',
    'Order lines rejected by the inventory check',
    ['reason']
)

# Numbering metrics
order_number_fallbacks_total = Counter(
    'order_number_fallbacks_total',
    'Orders that received a collision-resistant fallback number'
)


def _endpoint_label(request: Request) -> str:
    """Route template such as ``/orders/{order_id}/status``; raw path for unmatched requests."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            endpoint = _endpoint_label(request)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

        return response


def get_metrics_response(openmetrics: bool = False) -> Response:
    """
    Get Prometheus metrics response.

    Args:
        openmetrics: If True, return OpenMetrics format, else Prometheus format
    """
    if openmetrics:
        content = generate_latest_openmetrics()
        content_type = "application/openmetrics-text; version=1.0.0; charset=utf-8"
    else:
        content = generate_latest()
        content_type = CONTENT_TYPE_LATEST

    return Response(content=content, media_type=content_type)
