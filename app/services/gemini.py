"""Integration helpers for the Gemini ``generateContent`` API."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Literal, Sequence, Union

import httpx

from ..config import AISettings, EnvironmentSettingsProvider, Settings, SettingsProvider
from ..errors import ClientError, ConfigError, ParseError, TransientNetworkError
from ..models import ChatMessage
from ..utils import Err, JsonResult, extract_json

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]

TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

Message = Union[ChatMessage, dict[str, str]]


def convert_messages(messages: Sequence[Message]) -> dict[str, Any]:
    """Map chat-style messages onto Gemini ``contents``/``systemInstruction``."""

    normalised = [
        message if isinstance(message, ChatMessage) else ChatMessage.model_validate(message)
        for message in messages
    ]
    system_text = "\n\n".join(
        message.content for message in normalised if message.role == "system"
    )
    body: dict[str, Any] = {
        "contents": [
            {
                "role": "model" if message.role == "assistant" else "user",
                "parts": [{"text": message.content}],
            }
            for message in normalised
            if message.role != "system"
        ]
    }
    if system_text:
        body["systemInstruction"] = {"parts": [{"text": system_text}]}
    return body


class GeminiClient:
    """Client responsible for talking to the generation endpoint.

    Server errors and dropped connections are retried with exponential
    backoff; client errors and a missing key fail immediately.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        settings_provider: SettingsProvider | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        self._settings = settings
        self._client = http_client
        self._provider = settings_provider or EnvironmentSettingsProvider(settings)
        self._sleep = sleep
        self._jitter = jitter
        self._max_retries = settings.generation_max_retries
        self.calls = 0

    async def resolve_settings(
        self, *, api_key: str | None = None, model: str | None = None
    ) -> AISettings:
        current = await self._provider.get_settings()
        resolved_key = (api_key or "").strip() or (current.api_key or "").strip()
        if not resolved_key:
            logger.error("Gemini API key missing; set it in the AI settings")
            raise ConfigError("NO_API_KEY: a Gemini API key is required")
        return AISettings(model=model or current.model, api_key=resolved_key)

    async def generate_text(
        self,
        messages: Sequence[Message],
        *,
        api_key: str | None = None,
        model: str | None = None,
    ) -> str:
        """Return the generated text for ``messages``.

        Raises ``ConfigError``, ``ClientError``, ``TransientNetworkError`` once
        retries are exhausted, or ``ParseError`` when no text came back.
        """

        resolved = await self.resolve_settings(api_key=api_key, model=model)
        payload = {
            **convert_messages(messages),
            "generationConfig": GENERATION_CONFIG,
            "safetySettings": SAFETY_SETTINGS,
        }
        data = await self._post_with_retries(resolved, payload)
        text = self._extract_text(data)
        if not text or not text.strip():
            raise ParseError("NO_CONTENT: Gemini returned no generated text")
        return text

    async def generate_json(
        self,
        messages: Sequence[Message],
        *,
        expect: Literal["object", "array"] | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ) -> JsonResult:
        """Generate and parse a JSON payload; parse failures come back tagged."""

        try:
            text = await self.generate_text(messages, api_key=api_key, model=model)
        except ParseError as exc:
            return Err(exc)
        return extract_json(text, expect=expect)

    async def _post_with_retries(
        self, resolved: AISettings, payload: dict[str, Any]
    ) -> dict[str, Any]:
        base_url = str(self._settings.gemini_api_url).rstrip("/")
        url = f"{base_url}/models/{resolved.model}:generateContent"
        attempt = 0
        while True:
            self.calls += 1
            try:
                response = await self._client.post(
                    url,
                    params={"key": resolved.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
            except TRANSIENT_TRANSPORT_ERRORS as exc:
                if attempt < self._max_retries:
                    attempt += 1
                    await self._backoff(attempt, f"Network error ({exc.__class__.__name__})")
                    continue
                logger.warning("Gemini call failed after %s attempts: %s", attempt + 1, exc)
                raise TransientNetworkError(
                    f"Network error talking to Gemini: {exc.__class__.__name__}"
                ) from exc

            status = response.status_code
            if 500 <= status < 600:
                if attempt < self._max_retries:
                    attempt += 1
                    await self._backoff(attempt, f"Transient error {status}")
                    continue
                logger.warning(
                    "Gemini call failed after %s attempts: HTTP %s", attempt + 1, status
                )
                raise TransientNetworkError(
                    f"HTTP {status}: {response.text}", status_code=status
                )
            if status >= 400:
                logger.warning("Gemini rejected the request: HTTP %s", status)
                raise ClientError(f"HTTP {status}: {response.text}", status_code=status)

            try:
                data = response.json()
            except ValueError as exc:
                raise ParseError("Gemini returned a non-JSON envelope") from exc
            if not isinstance(data, dict):
                raise ParseError("Unexpected Gemini response structure")
            return data

    async def _backoff(self, attempt: int, reason: str) -> None:
        base = self._settings.generation_backoff_seconds * (2 ** (attempt - 1))
        delay = base + self._jitter() * self._settings.generation_jitter_seconds
        logger.warning(
            "[Gemini] %s. Retrying in %.2fs (attempt %s/%s)",
            reason,
            delay,
            attempt,
            self._max_retries,
        )
        await self._sleep(delay)

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str | None:
        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts or not isinstance(parts[0], dict):
            return None
        text = parts[0].get("text")
        return text if isinstance(text, str) else None
