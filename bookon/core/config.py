from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "BookOn API"
    # Comma-separated origins for CORS (e.g. https://bookon.app,https://admin.bookon.app). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@bookon.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""
    # If False, queued emails wait for the worker instead of being sent inline.
    EMAIL_SEND_IMMEDIATE: bool = False

    # Cancellation policy
    CANCELLATION_ADMIN_FEE: Decimal = Decimal("2.00")
    CANCELLATION_NOTICE_HOURS: int = 24

    # Wallet
    WALLET_CREDIT_EXPIRY_DAYS: int = 365
    WALLET_EXPIRY_WARNING_DAYS: int = 30


settings = Settings()
