import sys
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.api import dashboard, orders, payments
from backoffice.app.api.deps import get_session
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.limiter import limiter
from backoffice.app.core.logging import RequestContextMiddleware, get_logger, setup_logging
from backoffice.app.core.metrics import PrometheusMiddleware, get_metrics_response
from backoffice.app.core.settings import get_settings
from backoffice.app.services.cache import CacheService

APP_VERSION = "1.0.0"

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# JSON logs in production, console renderer in development
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    redis_host=settings.REDIS_HOST,
    restock_on_cancel=settings.RESTOCK_ON_CANCEL,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: log readiness
    - Shutdown: cleanup connections (Redis)
    """
    logger.info("Application starting up", version=APP_VERSION)
    yield
    logger.info("Application shutting down")
    await CacheService.close()


app = FastAPI(title="Storefront Back Office", version=APP_VERSION, lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render every service-layer error as {success: false, error, ...details}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, **exc.details},
    )


ALLOWED_ORIGINS = settings.allowed_origins_list
if not ALLOWED_ORIGINS:
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
# Added after CORS so they run first on the way in
app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(dashboard.router, tags=["dashboard"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database and Redis connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": APP_VERSION,
        "checks": {
            "database": "ok",
            "redis": "ok"
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    try:
        redis = await CacheService.get_redis()
        await redis.ping()
    except (RedisError, OSError) as e:
        logger.error("Redis health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """Prometheus metrics endpoint (OpenMetrics format when ``openmetrics`` is set)."""
    return get_metrics_response(openmetrics=openmetrics)
