"""HTTP clients for the generation providers."""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..config import settings
from ..errors import ProviderError, ProviderNotConfigured
from ..telemetry import TelemetryEvents, track_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatTurn:
    """A prior conversation turn in the provider's role vocabulary."""

    role: str
    text: str


class TextProvider(Protocol):
    async def complete(self, instruction: str) -> str: ...


class VisionProvider(Protocol):
    async def complete(
        self,
        instruction: str,
        prior_turns: list[ChatTurn],
        text: str,
        image_data_uri: str,
    ) -> str: ...


class HTTPProvider:
    """Shared request handling: credential check, POST, status mapping.

    A caller-supplied ``client`` is used as is and never closed, which lets
    tests plug in an ``httpx.MockTransport``. Without one, a client is
    opened per request.
    """

    name = "provider"
    key_setting = "api_key"

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        model: str,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = client
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderNotConfigured(self.name, self.key_setting)
        return self.api_key

    async def _post(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> dict[str, Any]:
        if self.client is not None:
            response = await self.client.post(url, headers=headers, json=body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=headers, json=body)

        if not response.is_success:
            logger.error(f"{self.name} returned {response.status_code}: {response.text}")
            track_event(
                TelemetryEvents.PROVIDER_REQUEST_FAILED,
                {"provider": self.name, "status_code": response.status_code},
            )
            raise ProviderError(self.name, response.status_code, response.text)

        return response.json()


class GeminiTextProvider(HTTPProvider):
    """Text-only generation through the Gemini ``generateContent`` endpoint.

    Only the freshly built instruction is sent; earlier turns are not.
    """

    name = "Gemini"
    key_setting = "gemini_api_key"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-3-flash-preview",
        temperature: float = 0.7,
        top_k: int = 40,
        top_p: float = 0.95,
        max_output_tokens: int = 8192,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        super().__init__(api_key, base_url, model, client, timeout)
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.max_output_tokens = max_output_tokens

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient | None = None) -> "GeminiTextProvider":
        return cls(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            temperature=settings.generation_temperature,
            top_k=settings.generation_top_k,
            top_p=settings.generation_top_p,
            max_output_tokens=settings.generation_max_output_tokens,
            client=client,
            timeout=settings.provider_timeout_seconds,
        )

    def build_body(self, instruction: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": instruction}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "topK": self.top_k,
                "topP": self.top_p,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    async def complete(self, instruction: str) -> str:
        api_key = self._require_key()
        data = await self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            {"x-goog-api-key": api_key},
            self.build_body(instruction),
        )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, 200, f"Response contained no text: {data}") from e


class ChatCompletionsProvider(HTTPProvider):
    """OpenAI-compatible ``/chat/completions`` client (Groq by default)."""

    name = "Groq"
    key_setting = "groq_api_key"

    async def chat(self, messages: list[dict[str, Any]], **params: Any) -> str:
        api_key = self._require_key()
        data = await self._post(
            f"{self.base_url}/chat/completions",
            {"Authorization": f"Bearer {api_key}"},
            {"model": self.model, "messages": messages, **params},
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, 200, f"Response contained no message: {data}") from e


class ChatCompletionsVisionProvider(ChatCompletionsProvider):
    """Image-capable generation; sends the whole prior conversation."""

    name = "Groq vision"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
        temperature: float = 0.7,
        max_tokens: int = 8192,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        super().__init__(api_key, base_url, model, client, timeout)
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient | None = None) -> "ChatCompletionsVisionProvider":
        return cls(
            api_key=settings.groq_api_key,
            base_url=settings.vision_base_url,
            model=settings.vision_model,
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_output_tokens,
            client=client,
            timeout=settings.provider_timeout_seconds,
        )

    @staticmethod
    def build_messages(
        instruction: str, prior_turns: list[ChatTurn], text: str, image_data_uri: str
    ) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": instruction},
            *({"role": turn.role, "content": turn.text} for turn in prior_turns),
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": text},
                    {"type": "image_url", "image_url": {"url": image_data_uri}},
                ],
            },
        ]

    async def complete(
        self,
        instruction: str,
        prior_turns: list[ChatTurn],
        text: str,
        image_data_uri: str,
    ) -> str:
        return await self.chat(
            self.build_messages(instruction, prior_turns, text, image_data_uri),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
