from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"

SUPPORTED_DISCOVERY_TYPES = ("s3", "sqs", "sns", "rds", "lambda")


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        from portalight.shared.core.security import EncryptionKeyManager

        EncryptionKeyManager.clear_key_caches()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for Portalight.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "Portalight"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Database
    DATABASE_URL: str = ""
    DB_SSL_MODE: str = "require"  # disable | require | verify-ca | verify-full
    DB_SSL_CA_CERT_PATH: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_ECHO: bool = False

    # Encryption (secrets, tokens, webhook keys)
    ENCRYPTION_KEY: Optional[str] = None
    ENCRYPTION_FALLBACK_KEYS: list[str] = Field(default_factory=list)
    KDF_SALT: Optional[str] = None

    # Auth
    JWT_SECRET: Optional[str] = None
    JWT_AUDIENCE: str = "authenticated"
    JWT_EXPIRE_MINUTES: int = 60

    # AWS
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / moto server
    DISCOVERY_DEFAULT_TYPES: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_DISCOVERY_TYPES)
    )
    # When a type's listing API fails, keep its previously discovered
    # resources active instead of sweeping them to deleted.
    DISCOVERY_PROTECT_FAILED_TYPES: bool = True

    # GitHub catalog source
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT_SECONDS: float = 15.0
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_APP_TOKEN_REFRESH_MARGIN_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in {ENV_PRODUCTION, ENV_STAGING}

    @model_validator(mode="after")
    def validate_security_config(self) -> "Settings":
        self.DISCOVERY_DEFAULT_TYPES = [
            t.strip().lower() for t in self.DISCOVERY_DEFAULT_TYPES if t.strip()
        ]
        unknown = set(self.DISCOVERY_DEFAULT_TYPES) - set(SUPPORTED_DISCOVERY_TYPES)
        if unknown:
            raise ValueError(
                f"Unsupported DISCOVERY_DEFAULT_TYPES: {', '.join(sorted(unknown))}"
            )

        if self.TESTING:
            return self

        if self.is_production:
            missing = [
                name
                for name in ("ENCRYPTION_KEY", "KDF_SALT", "JWT_SECRET")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} must be configured in {self.ENVIRONMENT}"
                )
            if self.JWT_SECRET and len(self.JWT_SECRET) < 32:
                raise ValueError("JWT_SECRET must be at least 32 characters")
            if self.DB_SSL_MODE == "disable":
                raise ValueError("DB_SSL_MODE=disable is not allowed in production")
        return self
