from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    PROJECT_NAME: str = "WhatsApp CRM Inbox"
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"

    # Meta WhatsApp Cloud API
    GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
    GRAPH_API_VERSION: str = "v18.0"
    WHATSAPP_VERIFY_TOKEN: str = ""  # Global verify token for the webhook handshake (per-config tokens also accepted)
    WHATSAPP_APP_SECRET: str = ""    # Optional: Set to enable X-Hub-Signature-256 verification

    # Public frontend (used to build form links sent in auto-replies)
    PUBLIC_APP_URL: str = "http://localhost:3000"
    DEFAULT_PHONE_REGION: str = "IN"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
