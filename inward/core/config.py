"""Application configuration."""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Vehicle Inward Console API"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # JWT (REQUIRED) - tokens are issued by the auth provider, only verified here
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Reserved workspace owned by the platform super-admins
    SUPER_ADMIN_TENANT_ID: str = "00000000-0000-0000-0000-000000000001"

    # Notifications
    NOTIFICATIONS_ENABLED: bool = True
    WHATSAPP_DEFAULT_PROVIDER: str = "mock"
    WHATSAPP_TIMEOUT_SECONDS: float = 20.0
    WHATSAPP_CLOUD_API_BASE_URL: str = "https://graph.facebook.com/v19.0"
    TWILIO_API_BASE_URL: str = "https://api.twilio.com/2010-04-01"
    WHATSAPP_DEFAULT_COUNTRY_CODE: str = "91"

    # CORS
    # Comma separated
    CORS_ORIGINS: str = "*"

    @field_validator("WHATSAPP_DEFAULT_PROVIDER")
    @classmethod
    def check_provider(cls, v):
        allowed = {"mock", "cloud-api", "twilio", "custom"}
        if v not in allowed:
            raise ValueError(f"WHATSAPP_DEFAULT_PROVIDER must be one of {sorted(allowed)}")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    class Config:
        env_file = ".env"      # Local only
        case_sensitive = True
        extra = "ignore"      # Ignore unrelated env vars


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
