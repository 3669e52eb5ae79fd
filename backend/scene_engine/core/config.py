import os
from typing import Optional

from pydantic_settings import BaseSettings

from dotenv import load_dotenv
load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Paint Scene Engine API"
    API_V1_PREFIX: str = "/api/v1"

    # For local dev sqlite is fine; any SQLAlchemy URL works
    SQLALCHEMY_DATABASE_URI: str = os.getenv(
        "DATABASE_URL", "sqlite:///./app.db"
    )
    REDIS_URL: str = "redis://localhost:6379"
    MEDIA_ROOT: str = "media"
    LOG_LEVEL: str = "INFO"

    # Provider selection + credentials (settings table overrides these per run)
    IMAGE_PROVIDER: str = "gemini"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_IMAGE_MODEL: str = "gemini-3-pro-image-preview"
    GEMINI_TEXT_MODEL: str = "gemini-3-pro-image-preview"

    # Vertex AI variant (service account)
    GOOGLE_CLOUD_PROJECT_ID: Optional[str] = None
    GOOGLE_CLOUD_LOCATION: str = "us-central1"
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None

    PROVIDER_TIMEOUT_SECONDS: float = 180.0
    RENDER_JOB_TIMEOUT: int = 1800
    IMAGE_SIZE: str = "2K"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
