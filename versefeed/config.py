"""Configuration management for VerseFeed.

This module provides centralized configuration using Pydantic Settings.
Values come from environment variables or a local ``.env`` file.

Environment Profiles:
    - DEVELOPMENT: Verbose logging, human-readable output, safe defaults
    - PRODUCTION: JSON logs, conservative settings
    - TESTING: In-memory database, minimal logging, no log files
    - STAGING: Production-like with more logging

Example:
    >>> from versefeed.config import settings, Environment
    >>> print(settings.razorpay_api_base)
    https://api.razorpay.com/v1
    >>> if not settings.has_payment_credentials:
    ...     print("Payment bridge disabled")
"""

from enum import StrEnum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """Runtime environment with specific behavior profiles.

    Attributes:
        DEVELOPMENT: Verbose logging, safe defaults
        PRODUCTION: Conservative settings, structured logs
        TESTING: In-memory database, minimal logging, fast execution
        STAGING: Pre-production validation environment
    """

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Attributes:
        razorpay_key_id: Razorpay key id (required by the payment bridge)
        razorpay_key_secret: Razorpay key secret (required by the payment bridge)
        razorpay_api_base: Razorpay REST API base URL
        default_currency: Currency used when an order omits one
        subscription_total_count: Billing cycles requested for new subscriptions
        payment_timeout_seconds: Overall timeout for outbound processor calls
        auth_secret_key: HMAC key used to verify bearer tokens
        data_dir: Base directory for the database, uploads and log files
        database_path: Path to SQLite database file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment Configuration
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Runtime environment (development, production, testing, staging)",
    )

    # Payment Processor Configuration
    razorpay_key_id: Optional[str] = Field(
        None,
        alias="RAZORPAY_KEY_ID",
        description="Razorpay key id used for basic auth",
    )
    razorpay_key_secret: Optional[str] = Field(
        None,
        alias="RAZORPAY_KEY_SECRET",
        description="Razorpay key secret used for basic auth",
    )
    razorpay_api_base: str = Field(
        "https://api.razorpay.com/v1",
        description="Razorpay REST API base URL",
    )
    default_currency: str = Field(
        "INR",
        min_length=3,
        max_length=3,
        description="Currency applied to orders that do not specify one",
    )
    subscription_total_count: int = Field(
        12,
        ge=1,
        le=120,
        description="Number of billing cycles requested for a subscription",
    )
    payment_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Overall timeout for outbound payment processor calls",
    )

    # Identity Configuration
    auth_secret_key: str = Field(
        "dev-secret-change-me-please",
        alias="AUTH_SECRET_KEY",
        description="Secret used to verify HS256 bearer tokens",
    )
    auth_algorithm: str = Field(
        "HS256",
        description="JWT signing algorithm",
    )
    auth_token_ttl_minutes: int = Field(
        60 * 24 * 7,
        ge=1,
        description="Lifetime of developer tokens minted by the CLI",
    )

    # Data Directory Configuration
    data_dir: Path = Field(
        Path("./data"),
        description="Base directory for database, uploads and logs",
    )

    # Database Configuration
    database_path: Path = Field(
        Path("versefeed.db"),  # Will be updated to data_dir/versefeed.db by validator
        description="Path to SQLite database file (defaults to data_dir/versefeed.db)",
    )

    # HTTP Server
    host: str = Field("127.0.0.1", description="Bind address for `versefeed serve`")
    port: int = Field(8000, ge=1, le=65535, description="Bind port for `versefeed serve`")
    cors_max_age: int = Field(
        86400,
        ge=0,
        description="Access-Control-Max-Age advertised on preflight responses",
    )

    # File Storage
    upload_ticket_ttl_seconds: int = Field(
        3600,
        ge=1,
        description="Lifetime of an upload URL issued by generateUploadUrl",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_to_file: bool = Field(
        default=True,
        description="Enable file logging in addition to console",
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (recommended for production)",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand and resolve data directory path."""
        path = Path(v).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("auth_secret_key")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        """Reject secrets too short to sign tokens safely."""
        if not v or len(v) < 16:
            raise ValueError("AUTH_SECRET_KEY must be at least 16 characters")
        return v

    @field_validator("razorpay_key_id", "razorpay_key_secret", mode="before")
    @classmethod
    def blank_credential_is_missing(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty credential variables as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def set_database_path_default(self) -> "Settings":
        """Set database_path to data_dir/versefeed.db if not explicitly provided."""
        if self.database_path == Path("versefeed.db"):
            self.database_path = self.data_dir / "versefeed.db"
        if str(self.database_path) != ":memory:":
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
        return self

    @model_validator(mode="after")
    def apply_environment_profile(self) -> "Settings":
        """Apply environment-specific defaults.

        Profiles:
            - PRODUCTION: INFO logging, JSON logs
            - DEVELOPMENT: DEBUG logging, human-readable logs
            - TESTING: In-memory database, ERROR logging, no file logging
            - STAGING: INFO logging, JSON logs

        Returns:
            Modified settings instance with environment-specific adjustments
        """
        if self.environment == Environment.PRODUCTION:
            if self.log_level == "DEBUG":  # Don't override explicit DEBUG
                self.log_level = "INFO"
            self.log_json = True

        elif self.environment == Environment.DEVELOPMENT:
            self.log_level = "DEBUG"
            self.log_json = False

        elif self.environment == Environment.TESTING:
            self.database_path = Path(":memory:")
            self.log_level = "ERROR"
            self.log_to_file = False
            self.log_json = False

        elif self.environment == Environment.STAGING:
            self.log_level = "INFO"
            self.log_json = True

        return self

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"

    @property
    def upload_dir(self) -> Path:
        """Get directory holding uploaded blobs."""
        upload_path = self.data_dir / "uploads"
        upload_path.mkdir(parents=True, exist_ok=True)
        return upload_path

    @property
    def has_payment_credentials(self) -> bool:
        """Check if both Razorpay credentials are configured."""
        return bool(self.razorpay_key_id) and bool(self.razorpay_key_secret)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @property
    def is_staging(self) -> bool:
        """Check if running in staging environment."""
        return self.environment == Environment.STAGING

    def redact_token(self, token: Optional[str] = None) -> str:
        """Redact a credential for logging.

        Args:
            token: Value to redact (defaults to razorpay_key_id)

        Returns:
            Redacted string
        """
        token = token if token is not None else self.razorpay_key_id
        if not token:
            return "None"
        return f"{token[:8]}...{token[-4:]}" if len(token) > 12 else "***"


def get_settings() -> Settings:
    """Build a fresh Settings instance from the current environment."""
    return Settings()


# Global settings instance
settings = get_settings()
