from typing import Any, Optional


class SceneEngineError(Exception):
    """Base class for errors raised inside a generation run."""


class ConfigurationError(SceneEngineError):
    """Provider credentials or selection are missing or still a placeholder."""


class SceneBusyError(SceneEngineError):
    def __init__(self, scene_id: int):
        super().__init__(f"Scene {scene_id} is already generating")
        self.scene_id = scene_id


class ProviderError(SceneEngineError):
    """A generation provider call failed; the provider's message is preserved."""

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        status: Optional[int] = None,
        details: Optional[Any] = None,
    ):
        self.provider = provider
        self.operation = operation
        self.original_message = message
        self.status = status
        self.details = details
        self.code = classify_provider_error(message, status)
        super().__init__(f"{provider} {operation} failed: {message}")


def classify_provider_error(message: str, status: Optional[int]) -> str:
    text = (message or "").lower()
    if status == 429:
        return "rate_limit"
    if status == 503:
        return "unavailable"
    if status == 451 or "safety" in text or "blocked" in text:
        return "safety_block"
    if status == 408 or "timeout" in text or "timed out" in text:
        return "timeout"
    return "provider_error"


def is_retryable_status(status: Optional[int]) -> bool:
    return status in (429, 500, 503)
