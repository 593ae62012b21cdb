"""Configuration management for SystemRPG.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded at application
startup and is immutable during runtime.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me-in-production-use-openssl-rand-hex-32"


class Settings(BaseSettings):
    """Application configuration settings.

    Settings are loaded from environment variables and .env files.
    All configuration values are validated at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SYSTEMRPG_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "SystemRPG"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"
    debug: bool = False
    context_path: str = "/api/v1"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Database Settings
    database_url: str = "sqlite+aiosqlite:///./data/systemrpg.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600
    db_echo: bool = False

    # JWT Settings
    jwt_secret: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="HMAC secret used when jwt_algorithm is HS256",
    )
    jwt_algorithm: Literal["HS256", "RS256"] = "RS256"
    jwt_key_id: str = "systemrpg-backend-key-2025"
    jwt_rsa_private_key: str | None = Field(
        default=None,
        description="Base64 encoded PKCS8 DER private key for RS256",
    )
    jwt_rsa_public_key: str | None = Field(
        default=None,
        description="Base64 encoded X.509 SubjectPublicKeyInfo DER public key for RS256",
    )
    access_token_expire_seconds: int = 900
    refresh_token_expire_seconds: int = 604800

    # Token Blacklist Settings
    blacklist_prune_enabled: bool = True
    blacklist_prune_interval_seconds: int = 86400
    blacklist_lookup_timeout_seconds: float = 2.0
    blacklist_max_retries: int = 3
    blacklist_retry_backoff_seconds: float = 0.05

    # Localization Settings
    default_locale: Literal["en", "pt-BR"] = "en"

    # CORS Settings
    cors_origins: list[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = Field(default=["*"])
    cors_allow_headers: list[str] = Field(default=["*"])

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("context_path")
    @classmethod
    def normalize_context_path(cls, v: str) -> str:
        """Ensure the context path has a leading slash and no trailing slash."""
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @model_validator(mode="after")
    def validate_signing_material(self) -> "Settings":
        """Validate JWT key configuration for the selected algorithm."""
        has_private = bool(self.jwt_rsa_private_key and self.jwt_rsa_private_key.strip())
        has_public = bool(self.jwt_rsa_public_key and self.jwt_rsa_public_key.strip())
        if has_private != has_public:
            raise ValueError(
                "jwt_rsa_private_key and jwt_rsa_public_key must be configured together"
            )
        if self.jwt_algorithm == "HS256" and self.is_production:
            if self.jwt_secret == DEFAULT_JWT_SECRET or len(self.jwt_secret.encode("utf-8")) < 32:
                raise ValueError(
                    "jwt_secret must be changed and at least 32 bytes long in production"
                )
        return self

    @model_validator(mode="after")
    def validate_sqlite_workers(self) -> "Settings":
        """Validate that SQLite is not used with multiple workers."""
        if self.workers > 1 and self.database_url.startswith("sqlite"):
            raise ValueError(
                "SQLite does not support multiple worker processes. "
                f"Requested {self.workers} workers, but SQLite requires workers=1. "
                "Either use --workers 1 or switch to PostgreSQL."
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == "testing"

    @property
    def has_rsa_keys(self) -> bool:
        """Whether a fixed RSA key pair is configured."""
        return bool(self.jwt_rsa_private_key and self.jwt_rsa_public_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    This function caches the settings instance to avoid reloading
    configuration on every call. Settings are loaded once at startup.

    Returns:
        Settings: Cached application settings instance.
    """
    return Settings()
