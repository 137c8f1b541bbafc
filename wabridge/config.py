from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration - required from .env
    LOG_LEVEL: str

    # App secret used to sign webhook deliveries (X-Hub-Signature-256)
    WEBHOOK_SECRET: str

    # WhatsApp Business channel identity
    WB_PHONE_NUMBER_ID: str
    WB_VERIFY_TOKEN: str
    WB_CHANNEL: str = "whatsapp_business"

    # Graph API access for media downloads
    WB_ACCESS_TOKEN: str = ""
    WB_GRAPH_URL: str = "https://graph.facebook.com"
    WB_GRAPH_VERSION: str = "v20.0"

    # Local media storage
    MEDIA_ROOT: str = "./storage"
    MEDIA_FETCH_TIMEOUT: float = 10.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
