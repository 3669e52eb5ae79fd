import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from scene_engine import models
from scene_engine.core.config import settings
from scene_engine.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_PLACEHOLDER = "your-api-key-here"

MISSING_KEY_MESSAGE = (
    "No valid API key configured. Add a Gemini API key in the settings "
    "or set GEMINI_API_KEY."
)


@dataclass(frozen=True)
class RunConfig:
    """Provider selection and credentials, resolved once per run."""

    provider: str
    api_key: Optional[str]
    image_size: str = "2K"
    timeout: float = 180.0


def _setting(db: Session, key: str) -> Optional[str]:
    row = db.get(models.Setting, key)
    value = (row.value or "").strip() if row else ""
    return value or None


def resolve_run_config(db: Session) -> RunConfig:
    """
    Settings table first, environment second. A missing or placeholder key is
    a ConfigurationError for the API-key providers; Vertex authenticates with
    the service account instead.
    """
    provider = (_setting(db, "image_provider") or settings.IMAGE_PROVIDER or "gemini").lower()
    api_key = _setting(db, "gemini_api_key") or (settings.GEMINI_API_KEY or "").strip() or None

    if api_key == API_KEY_PLACEHOLDER:
        api_key = None

    if provider == "vertex":
        if not settings.GOOGLE_CLOUD_PROJECT_ID or not settings.GOOGLE_APPLICATION_CREDENTIALS:
            raise ConfigurationError(
                "Vertex AI needs GOOGLE_CLOUD_PROJECT_ID and GOOGLE_APPLICATION_CREDENTIALS."
            )
    elif not api_key:
        raise ConfigurationError(MISSING_KEY_MESSAGE)

    return RunConfig(
        provider=provider,
        api_key=api_key,
        image_size=settings.IMAGE_SIZE,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
