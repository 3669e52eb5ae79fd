import base64
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import requests
from google.oauth2 import service_account
import google.auth.transport.requests

from scene_engine.core.config import settings
from scene_engine.core.errors import ProviderError, is_retryable_status
from scene_engine.services.providers.base import BaseImageProvider, GeneratedImage

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
COST_PER_IMAGE = 0.04

BLOCKING_FINISH_REASONS = ("SAFETY", "OTHER", "RECITATION")


def _block_message(reason: Optional[str]) -> str:
    reason = (reason or "").upper()
    if reason == "SAFETY":
        return "Blocked by the safety filter."
    if reason == "OTHER":
        return (
            "Blocked, possibly copyright or trademark content in the reference images."
        )
    if reason == "RECITATION":
        return "Blocked: copyrighted material detected."
    if not reason or reason == "UNKNOWN":
        return "No image returned (possibly a safety or copyright block)."
    return f"Blocked: {reason}."


def _inline(image) -> Dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": image.mime_type,
            "data": base64.b64encode(image.data).decode(),
        }
    }


class GeminiImageProvider(BaseImageProvider):
    """
    Image generation, prompt enrichment and consistency analysis through the
    Gemini generateContent REST endpoint (API key).
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        image_model: str = None,
        text_model: str = None,
        timeout: float = None,
        retry_delay: float = 2.0,
    ):
        self.api_key = api_key
        self.image_model = image_model or settings.GEMINI_IMAGE_MODEL
        self.text_model = text_model or settings.GEMINI_TEXT_MODEL
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _endpoint(self, model: str) -> str:
        return f"{settings.GEMINI_API_BASE}/models/{model}:generateContent"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key or "",
            "Content-Type": "application/json",
        }

    def _post(self, model: str, payload: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """POST with exponential backoff on 429/500/503 and transport timeouts."""
        url = self._endpoint(model)
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                resp = requests.post(url, headers=self._headers(), json=payload, timeout=self.timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt < MAX_ATTEMPTS:
                    self._backoff(operation, attempt, str(e))
                    continue
                raise ProviderError(self.name, operation, f"request timed out: {e}", status=408) from e

            if resp.status_code == 200:
                if attempt > 1:
                    logger.info("%s %s succeeded after %d attempts", self.name, operation, attempt)
                return resp.json()

            message = self._error_message(resp)
            if is_retryable_status(resp.status_code) and attempt < MAX_ATTEMPTS:
                self._backoff(operation, attempt, f"{resp.status_code} {message}")
                continue
            raise ProviderError(self.name, operation, message, status=resp.status_code)

        # unreachable: the last attempt either returns or raises
        raise ProviderError(self.name, operation, "no attempts left")

    def _backoff(self, operation: str, attempt: int, reason: str) -> None:
        delay = self.retry_delay * (2 ** (attempt - 1))
        logger.warning(
            "%s %s attempt %d failed (%s), retrying in %.1fs",
            self.name, operation, attempt, reason, delay,
        )
        time.sleep(delay)

    @staticmethod
    def _error_message(resp) -> str:
        try:
            body = resp.json()
            return body.get("error", {}).get("message") or resp.text
        except ValueError:
            return resp.text

    @staticmethod
    def _text_of(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def enrich(self, system_instruction: str, user_instruction: str) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": [{"text": user_instruction}]}],
        }
        data = self._post(self.text_model, payload, "enrich")
        text = self._text_of(data).strip()
        logger.info("Enriched prompt generated (%d chars)", len(text))
        return text

    def generate_image(
        self,
        prompt: str,
        reference_images: Sequence,
        aspect_ratio: str,
        image_size: str = "2K",
        source_image=None,
        motif_count: int = 0,
    ) -> GeneratedImage:
        parts: List[Dict[str, Any]] = []

        if source_image is not None:
            parts.append({"text": "SOURCE IMAGE (the existing image that must be edited as requested):"})
            parts.append(_inline(source_image))

        refs = list(reference_images)[:14]
        if refs:
            parts.append({"text": "REFERENCE IMAGES (materials, blueprint, extra references, motifs last):"})
            parts.extend(_inline(img) for img in refs)
            if motif_count:
                parts.append({
                    "text": f"CANVAS MOTIFS: the last {motif_count} image(s) above are the only "
                            "artworks allowed on the canvas. Show them exactly as given."
                })

        parts.append({"text": "FINAL INSTRUCTIONS:"})
        parts.append({"text": prompt + "\n\nRespond with a single image, not text only."})

        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio, "imageSize": image_size},
            },
        }

        logger.info(
            "Generating image: %d reference images, source=%s, aspect=%s",
            len(refs), source_image is not None, aspect_ratio,
        )
        data = self._post(self.image_model, payload, "image-generation")

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            logger.warning("Image generation blocked (no candidates): %s", reason)
            raise ProviderError(self.name, "image-generation", _block_message(reason), status=451)

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        if finish_reason in BLOCKING_FINISH_REASONS:
            logger.warning("Image generation blocked: %s", finish_reason)
            raise ProviderError(
                self.name,
                "image-generation",
                _block_message(finish_reason),
                status=451,
                details=candidate.get("safetyRatings"),
            )

        for part in (candidate.get("content") or {}).get("parts") or []:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                return GeneratedImage(
                    data=base64.b64decode(inline["data"]),
                    mime_type=inline.get("mimeType") or "image/png",
                    cost_estimate=COST_PER_IMAGE,
                )

        raise ProviderError(self.name, "image-extraction", "Response contains no image (text only)", status=422)

    def analyze_consistency(self, image, material_ground_truth: str, scene_description: Optional[str]) -> str:
        parts = [
            {"text": material_ground_truth},
            {"text": f"SCENE CONTEXT:\n{scene_description or 'unspecified'}"},
            {"text": "GENERATED IMAGE TO VERIFY:"},
            _inline(image),
        ]
        payload = {"contents": [{"role": "user", "parts": parts}]}
        data = self._post(self.text_model, payload, "consistency-analysis")
        text = self._text_of(data)
        logger.info("Received verification analysis (%d chars)", len(text))
        return text


class VertexImageProvider(GeminiImageProvider):
    """Same models through Vertex AI, authenticated with a service account."""

    name = "vertex"

    _credentials = None

    def _get_access_token(self) -> str:
        """OAuth2 access token from the service account, refreshed only once expired."""
        if self._credentials is None:
            scopes = ["https://www.googleapis.com/auth/cloud-platform"]
            self._credentials = service_account.Credentials.from_service_account_file(
                settings.GOOGLE_APPLICATION_CREDENTIALS, scopes=scopes
            )
        if not self._credentials.valid:
            req = google.auth.transport.requests.Request()
            self._credentials.refresh(req)
        return self._credentials.token

    def _endpoint(self, model: str) -> str:
        location = settings.GOOGLE_CLOUD_LOCATION
        return (
            f"https://{location}-aiplatform.googleapis.com/v1/"
            f"projects/{settings.GOOGLE_CLOUD_PROJECT_ID}/locations/{location}"
            f"/publishers/google/models/{model}:generateContent"
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Content-Type": "application/json",
        }
