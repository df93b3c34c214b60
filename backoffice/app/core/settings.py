"""
Application settings with validation using pydantic-settings.
Validates all required environment variables at startup.
"""
import socket
from urllib.parse import quote_plus
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolve_db_host(host: str) -> str:
    """Resolve DB host to IP so asyncpg avoids getaddrinfo in asyncio context (e.g. in Docker)."""
    if not host or host in ("localhost", "127.0.0.1"):
        return host
    try:
        return socket.gethostbyname(host)
    except socket.gaierror:
        return host


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    DB_USER: str = Field(default="postgres", description="PostgreSQL username")
    DB_PASSWORD: str = Field(default="", description="PostgreSQL password")
    DB_NAME: str = Field(default="backoffice", description="PostgreSQL database name")
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: str = Field(default="5432", description="PostgreSQL port")
    DATABASE_URL: Optional[str] = Field(default=None, description="Full async database URL (overrides DB_* fields)")

    # Database pool configuration
    DB_POOL_SIZE: int = Field(default=20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=40, description="Database max overflow connections")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database connection recycle time (seconds)")

    # Redis configuration
    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database number")

    # Identity tokens (issued by the external auth service, verified here)
    JWT_SECRET: Optional[str] = Field(default=None, description="Shared secret for bearer identity tokens")
    JWT_ALGORITHM: str = Field(default="HS256", description="Signature algorithm of identity tokens")

    # Payment processor callbacks
    PAYMENT_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Shared secret sent by the payment processor in X-Webhook-Secret")

    # CORS configuration
    ALLOWED_ORIGINS: str = Field(default="", description="Comma-separated list of allowed CORS origins")

    # Environment
    ENVIRONMENT: str = Field(default="production", description="Environment: development or production")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Order engine
    STORE_CALL_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0, description="Upper bound for a single order/inventory store operation")
    ORDER_NUMBER_MAX_ATTEMPTS: int = Field(default=5, ge=1, description="Insert attempts before order numbering gives up")
    RESTOCK_ON_CANCEL: bool = Field(default=False, description="Return reserved stock to inventory when an order is cancelled")
    DASHBOARD_CACHE_TTL: int = Field(default=60, ge=0, description="Dashboard stats cache TTL in seconds (0 disables caching)")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable request rate limiting")
    ORDER_CREATE_RATE_LIMIT: str = Field(default="30/minute", description="Rate limit for checkout requests per client")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        if v not in ("development", "production"):
            raise ValueError("ENVIRONMENT must be 'development' or 'production'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    def validate_production_settings(self) -> list[str]:
        """
        Validate that all required settings are present in production.
        Returns list of missing settings.
        """
        errors = []

        if self.ENVIRONMENT == "production":
            if not self.JWT_SECRET:
                errors.append("JWT_SECRET is required in production")
            if not self.PAYMENT_WEBHOOK_SECRET:
                errors.append("PAYMENT_WEBHOOK_SECRET is required in production")
            if not self.ALLOWED_ORIGINS:
                errors.append("ALLOWED_ORIGINS is required in production")
            if not self.DATABASE_URL and not self.DB_PASSWORD:
                errors.append("DB_PASSWORD is required in production")

        return errors

    @property
    def db_url(self) -> str:
        """Get database URL. Resolve host to IP so connections work in Docker/async context."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        host = _resolve_db_host(self.DB_HOST)
        password = quote_plus(self.DB_PASSWORD)
        return f"postgresql+asyncpg://{self.DB_USER}:{password}@{host}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if not self.ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()
        # Validate production settings
        errors = _settings.validate_production_settings()
        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)
    return _settings
