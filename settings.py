from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Marketplace configuration, loaded from environment variables or a .env file.
    """

    PROJECT_NAME: str = "Marketplace Negotiation API"
    VERSION: str = "1.0.0"

    # MongoDB
    DATABASE_URL: Optional[str] = Field(None, description="MongoDB connection string")
    DATABASE_NAME: str = Field("marketplace", description="MongoDB database name")

    # Access tokens
    JWT_SECRET: str = Field("change-me", description="Secret used to verify access tokens")
    JWT_ALGORITHM: str = Field("HS256", description="Signing algorithm of access tokens")

    CORS_ORIGINS: List[str] = Field(default=["*"], description="Allowed CORS origins")
    LOG_LEVEL: str = Field("INFO", description="Root logging level")
    PORT: int = Field(8000, description="Port used when run with uvicorn directly")

    # Order workflow
    STRICT_ORDER_TRANSITIONS: bool = Field(
        True, description="Reject status changes outside the order state machine"
    )
    ORDER_NUMBER_RETRIES: int = Field(1, ge=0, description="Retries after an order number collision")
    RECONCILE_MAX_ATTEMPTS: int = Field(3, ge=1, description="Attempts for dependent-order reconciliation")
    DEFAULT_COUNTRY: str = Field("Nepal", description="Shipping country when none is given")

    # Notifications
    CURRENCY_LABEL: str = Field("Rs.", description="Currency prefix used in notification texts")
    NOTIFICATION_LIMIT: int = Field(50, ge=1, description="Notifications returned per listing")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings_instance = None


def get_settings() -> Settings:
    """Return the cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
