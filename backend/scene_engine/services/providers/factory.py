from scene_engine.core.errors import ConfigurationError
from scene_engine.services.providers.base import BaseImageProvider
from scene_engine.services.providers.gemini import GeminiImageProvider, VertexImageProvider
from scene_engine.services.run_config import RunConfig

PROVIDERS = {
    "gemini": GeminiImageProvider,
    "google": GeminiImageProvider,
    "vertex": VertexImageProvider,
}


def get_image_provider(config: RunConfig) -> BaseImageProvider:
    provider_cls = PROVIDERS.get(config.provider)
    if provider_cls is None:
        raise ConfigurationError(f"Unknown image provider: {config.provider}")
    return provider_cls(api_key=config.api_key, timeout=config.timeout)
