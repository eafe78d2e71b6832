"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


DEV_JWT_SECRET_KEY = "dev-access-secret-change-me"
DEV_JWT_REFRESH_SECRET_KEY = "dev-refresh-secret-change-me"


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "WorkMint_Hub"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database
    DATABASE_URL: str = "sqlite:///./workmint.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Proxy / client IP handling
    # Only trust X-Forwarded-* headers when running behind a trusted reverse proxy (e.g. nginx).
    TRUST_PROXY_HEADERS: bool = False

    # JWT
    JWT_SECRET_KEY: str = DEV_JWT_SECRET_KEY
    JWT_REFRESH_SECRET_KEY: str = DEV_JWT_REFRESH_SECRET_KEY
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Password hashing / policy
    BCRYPT_ROUNDS: int = 12
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 256

    # Login throttling (enforced in the API layer using Redis)
    AUTH_LOGIN_IP_LIMIT_PER_MINUTE: int = 10
    AUTH_LOGIN_USER_FAIL_THRESHOLD: int = 5
    AUTH_LOGIN_USER_LOCK_SECONDS: int = 15 * 60  # 15 minutes

    # User provisioning: retries when a generated autoId collides in the store.
    AUTO_ID_MAX_ATTEMPTS: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
