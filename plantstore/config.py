# plantstore/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me-to-a-very-secret-key"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "development"  # development | test | production
    DATABASE_URL: str = "sqlite:///./plantstore.db"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | console
    SERVICE_NAME: str = "plantstore-api"
    API_VERSION: str = "0.1.0"

    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 30 * 24 * 3600  # 30 days
    TOKEN_COOKIE_NAME: str = "jwt"

    MAX_FAILED_ATTEMPTS: int = 5
    LOCK_TIME_SECONDS: int = 900  # 15 minutes
    PASSWORD_RESET_EXPIRE_SECONDS: int = 600  # 10 minutes
    REQUIRE_EMAIL_VERIFICATION: bool = True

    MAX_SESSIONS: int = 50
    SESSION_RETENTION_DAYS: int = 30

    TRUST_PROXY: bool = False
    AUTH_RATE_LIMIT_MAX: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 3600  # 1 hour
    API_RATE_LIMIT_MAX: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 900  # 15 minutes

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def DEBUG_TOKENS(self) -> bool:
        # reset tokens are echoed back in responses outside production
        return not self.is_production

    def validate_for_startup(self) -> None:
        if self.is_production and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise ConfigurationError("JWT_SECRET must be set in production")
        if self.MAX_SESSIONS < 1:
            raise ConfigurationError("MAX_SESSIONS must be at least 1")


settings = Settings()
