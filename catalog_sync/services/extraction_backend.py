"""
Structured-extraction backend (Ollama-compatible HTTP API).

A single call turns prompt text into a JSON object or raises
ExtractionBackendError. Retries live in the extraction client, not here.
"""

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import httpx

from catalog_sync.core.config import Settings
from catalog_sync.errors import ExtractionBackendError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a data extraction assistant. Extract information from the provided text "
    "and return it as valid JSON.\n"
    "Only output valid JSON, nothing else. Do not include any explanations, markdown "
    "formatting, or code blocks - just pure JSON."
)

HEALTH_TIMEOUT_SECONDS = 5.0
MAX_PREDICT_TOKENS = 4096

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Drop a surrounding ```json ... ``` block if the model added one."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _FENCE_RE.sub("", stripped).strip()
    return stripped


def parse_json_object(text: str) -> Dict[str, Any]:
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionBackendError(
            f"Failed to parse JSON from backend response: {exc}",
            body=cleaned[:500],
        ) from exc
    if not isinstance(parsed, dict):
        raise ExtractionBackendError(
            f"Expected a JSON object, got {type(parsed).__name__}",
            body=cleaned[:500],
        )
    return parsed


class OllamaBackend:
    """Client for /api/generate and /api/tags."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.EXTRACTION_BACKEND_URL.rstrip("/")
        self.model = settings.EXTRACTION_MODEL
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.EXTRACTION_TIMEOUT_SECONDS))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _build_request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "system": SYSTEM_PROMPT,
            "stream": False,
            "options": {
                "temperature": self.settings.EXTRACTION_TEMPERATURE,
                "num_predict": MAX_PREDICT_TOKENS,
            },
        }

    async def generate(self, prompt: str) -> str:
        """Raw completion text for a prompt."""
        client = self._get_client()
        started = time.monotonic()
        logger.info("Calling extraction backend model=%s prompt_length=%d", self.model, len(prompt))

        try:
            response = await client.post(
                f"{self.base_url}/api/generate",
                json=self._build_request_body(prompt),
                timeout=self.settings.EXTRACTION_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException as exc:
            raise ExtractionBackendError("Extraction backend request timed out") from exc
        except httpx.HTTPError as exc:
            raise ExtractionBackendError(f"Failed to call extraction backend: {exc}") from exc

        if not response.is_success:
            raise ExtractionBackendError(
                f"Extraction backend error: {response.status_code}",
                status_code=response.status_code,
                body=response.text[:500],
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExtractionBackendError("Extraction backend returned non-JSON envelope") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ExtractionBackendError("Extraction backend response has no text")

        logger.info(
            "Extraction backend responded: %d chars in %dms (eval_count=%s)",
            len(text), int((time.monotonic() - started) * 1000), data.get("eval_count"),
        )
        return text

    async def extract_structured(self, prompt: str) -> Dict[str, Any]:
        """Prompt text in, JSON object out."""
        text = await self.generate(prompt)
        try:
            return parse_json_object(text)
        except ExtractionBackendError:
            logger.error("Failed to parse backend JSON response: %s", text[:500])
            raise

    async def list_models(self) -> List[str]:
        client = self._get_client()
        try:
            response = await client.get(f"{self.base_url}/api/tags")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExtractionBackendError(
                "Failed to get models", status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionBackendError(f"Failed to get models: {exc}") from exc

        models = response.json().get("models") or []
        return [model["name"] for model in models if isinstance(model, dict) and model.get("name")]

    async def check_health(self) -> bool:
        """True when the model listing endpoint answers within a short timeout."""
        client = self._get_client()
        try:
            response = await client.get(f"{self.base_url}/api/tags", timeout=HEALTH_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            logger.warning("Extraction backend health check failed: %s", exc)
            return False
        return response.is_success
