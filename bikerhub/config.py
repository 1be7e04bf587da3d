from __future__ import annotations

from loguru import logger
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "bikerhub-jwt-secret-key-2024-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Server
    APP_NAME: str = "BikerHUB API"
    APP_VERSION: str = "2.0.0"
    ENVIRONMENT: str = "development"
    PORT: int = 5000
    API_URL: str = "http://localhost:5000"
    FRONTEND_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "bikerhub"
    DB_MAX_POOL_SIZE: int = 10
    DB_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    DB_SOCKET_TIMEOUT_MS: int = 45000

    # JWT
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 7 * 24 * 60
    JWT_REFRESH_EXPIRES_MINUTES: int = 30 * 24 * 60
    JWT_ISSUER: str = "bikerhub-api"
    JWT_AUDIENCE: str = "bikerhub-users"

    # Security
    BCRYPT_ROUNDS: int = 12
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    # Uploads
    UPLOAD_DIR: str = "uploads"
    MAX_FILE_SIZE: int = 5 * 1024 * 1024
    MAX_FILES: int = 5
    ALLOWED_MIME_TYPES: str = (
        "image/jpeg,image/png,image/webp,image/gif,application/pdf,application/msword,"
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    )

    # Logging
    LOG_LEVEL: str = "info"
    LOG_CONSOLE_ENABLED: bool = True
    LOG_FILE_ENABLED: bool = False
    LOG_FILE_NAME: str = "logs/app.log"
    LOG_FILE_MAX_SIZE: str = "10 MB"
    LOG_FILE_MAX_FILES: int = 5

    # Scheduled jobs
    CRON_ENABLED: bool = True
    CRON_TIMEZONE: str = "UTC"
    PENDING_ORDER_TTL_HOURS: int = 48

    # Commerce
    TAX_RATE: float = 0.0
    SUPPORTED_CURRENCIES: str = "USD,EUR,GBP"

    # Bootstrap admin
    ADMIN_USERNAME: str = "admin"
    ADMIN_EMAIL: str = "admin@bikerhub.com"
    ADMIN_PASSWORD: str = "admin123"

    @model_validator(mode="after")
    def apply_environment_overrides(self) -> "Settings":
        if self.is_development:
            self.LOG_LEVEL = "debug"
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins(self) -> list[str]:
        return _split(self.CORS_ORIGINS)

    @property
    def allowed_mime_types(self) -> list[str]:
        return _split(self.ALLOWED_MIME_TYPES)

    @property
    def supported_currencies(self) -> list[str]:
        return [c.upper() for c in _split(self.SUPPORTED_CURRENCIES)]

    @property
    def max_file_size_mb(self) -> int:
        return max(1, self.MAX_FILE_SIZE // (1024 * 1024))


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def validate_settings(s: Settings) -> list[str]:
    """Warn about missing or unsafe configuration. Returns the missing keys."""
    required = ["DATABASE_URL", "JWT_SECRET"]
    missing = [key for key in required if not getattr(s, key)]
    if missing:
        logger.warning("Missing required configuration: {}", ", ".join(missing))
        logger.warning("Please check your .env file")
    if s.is_production and s.JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is left at its default value in production")
    return missing


settings = Settings()
