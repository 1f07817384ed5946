"""Configuration settings for the API server and the catalog page client."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with Pydantic validation."""

    # Database settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///./travel.db",
        env="DATABASE_URL",
        description="Async SQLAlchemy database URL"
    )

    # Environment settings
    environment: str = Field(
        default="development",
        env="ENVIRONMENT",
        description="Application environment"
    )

    log_level: str = Field(
        default="INFO",
        env="LOG_LEVEL",
        description="Application log level"
    )

    # Admin panel token validation
    bearer_token_secret: str = Field(
        default="change-me",
        env="BEARER_TOKEN_SECRET",
        description="Secret key for admin bearer token validation"
    )

    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (the Tilda site domain in production)"
    )

    host: str = Field(default="0.0.0.0", env="HOST", description="Server host")
    port: int = Field(default=3000, env="PORT", description="Server port")

    # Idempotent application intake
    idempotency_ttl_seconds: int = Field(
        default=3600,
        env="IDEMPOTENCY_TTL_SECONDS",
        description="Time-to-live for idempotency keys in seconds"
    )

    idempotency_cache_size: int = Field(
        default=10000,
        env="IDEMPOTENCY_CACHE_SIZE",
        description="Maximum number of idempotency keys to cache"
    )

    otlp_endpoint: str | None = Field(
        default=None,
        env="OTLP_ENDPOINT",
        description="OTLP collector endpoint; exporters are disabled when unset"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_environments = ["development", "staging", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from a comma separated string or a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def debug(self) -> bool:
        """Return True if in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Return True if in production mode."""
        return self.environment == "production"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


class ClientSettings(BaseSettings):
    """
    Settings for the catalog page client.

    All delays are in seconds. They mirror the pauses the page needs to let
    the Tilda engine finish its own asynchronous initialization.
    """

    site_url: str = Field(default="http://localhost:3000", description="Origin the page is served from")
    api_base_url: str = Field(default="/api", description="API prefix relative to the site origin")
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    tours_per_page: int = Field(default=6, ge=1, description="Grid page size")
    default_tour_image: str = Field(default="/assets/images/hero_background-min.jpg")
    view_all_url: str = Field(default="/all-tours.html")

    guard_interval_seconds: float = Field(default=0.3, gt=0)
    viewport_debounce_seconds: float = Field(default=0.1, ge=0)
    carousel_retry_delay_seconds: float = Field(default=0.1, ge=0)
    pagination_delay_seconds: float = Field(default=0.1, ge=0)
    view_all_delay_seconds: float = Field(default=0.05, ge=0)
    currency_refresh_delay_seconds: float = Field(default=1.0, ge=0)
    initial_load_delay_seconds: float = Field(default=1.0, ge=0)
    container_poll_seconds: float = Field(default=0.5, gt=0)
    active_form_window_seconds: float = Field(default=1.0, ge=0)

    submission_lock_seconds: float = Field(default=2.0, ge=0)
    submission_expiry_seconds: float = Field(
        default=15.0, gt=0, description="Hard release of a submission lock whose request never returns"
    )
    session_grace_seconds: float = Field(default=2.0, ge=0)

    currency: str = Field(default="RUB", description="Display currency: RUB or USD")
    currency_rates_url: str = Field(default="https://neverend.travel/api/currencies")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate display currency."""
        if v.upper() not in ("RUB", "USD"):
            raise ValueError("Currency must be RUB or USD")
        return v.upper()

    @property
    def api_url(self) -> str:
        """Absolute API root the client talks to."""
        return self.site_url.rstrip("/") + "/" + self.api_base_url.strip("/")

    model_config = {
        "env_prefix": "CLIENT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Global settings instances
settings = Settings()
client_settings = ClientSettings()
