"""
OpenAI-Compatible HTTP Backend
================================

Thin ``httpx`` client for any service exposing the OpenAI-style
``/chat/completions``, ``/embeddings`` and ``/models`` endpoints
(OpenAI, Ollama, Groq, Mistral, Together, vLLM, LM Studio, ...).

Entry config keys:
  base_url        — overrides the provider default
  api_key         — falls back to the ``<PROVIDER>_API_KEY`` env var
  model           — remote model name (default: entry name, then id)
  embedding_model — model used for /embeddings (default: ``model``)
  timeout_s       — request timeout (default 60s)
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from switchyard.core.exceptions import BackendError
from switchyard.infra.runtime.backends import BackendMetadata, ChatMessage, ModelBackend
from switchyard.infra.telemetry import get_logger

if TYPE_CHECKING:
    from switchyard.registry.entries import RegistryEntry

logger = get_logger(__name__)

DEFAULT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "ollama": "http://localhost:11434/v1",
    "local": "http://localhost:11434/v1",
    "groq": "https://api.groq.com/openai/v1",
    "mistral": "https://api.mistral.ai/v1",
    "together": "https://api.together.xyz/v1",
    "vllm": "http://localhost:8000/v1",
    "lmstudio": "http://localhost:1234/v1",
}

class OpenAICompatibleBackend(ModelBackend):
    """Chat, streaming, embeddings and vision over the OpenAI wire shape."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        base_url: str,
        api_key: str | None = None,
        embedding_model: str | None = None,
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self.model = model
        self.embedding_model = embedding_model or model
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_entry(cls, entry: RegistryEntry) -> OpenAICompatibleBackend:
        cfg = entry.config
        return cls(
            provider=entry.provider,
            model=cfg.get("model") or entry.name or entry.id,
            base_url=cfg.get("base_url") or DEFAULT_BASE_URLS.get(
                entry.provider, DEFAULT_BASE_URLS["openai"]
            ),
            api_key=cfg.get("api_key") or os.getenv(f"{entry.provider.upper()}_API_KEY"),
            embedding_model=cfg.get("embedding_model"),
            timeout_s=float(cfg.get("timeout_s", 60.0)),
        )

    # ── Transport ─────────────────────────────────────────────────

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self._base_url, headers=headers, timeout=self._timeout_s
            )
        return self._client

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http().post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"HTTP {exc.response.status_code} from {path}", self.provider
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"{type(exc).__name__}: {exc}", self.provider) from exc

    def _chat_payload(self, messages: list[ChatMessage], options: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        payload.update({k: v for k, v in options.items() if v is not None})
        return payload

    # ── Capability Contract ───────────────────────────────────────

    async def chat_completion(self, messages: list[ChatMessage], **options: Any) -> str:
        data = await self._post("/chat/completions", self._chat_payload(messages, options))
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise BackendError("malformed chat completion response", self.provider) from exc

    async def stream_chat_completion(
        self,
        messages: list[ChatMessage],
        on_chunk: Callable[[str], None],
        **options: Any,
    ) -> str:
        payload = self._chat_payload(messages, options)
        payload["stream"] = True
        parts: list[str] = []
        try:
            async with self._http().stream("POST", "/chat/completions", json=payload) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    body = line[len("data:"):].strip()
                    if body == "[DONE]":
                        break
                    delta = json.loads(body)["choices"][0].get("delta", {}).get("content")
                    if delta:
                        parts.append(delta)
                        on_chunk(delta)
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"HTTP {exc.response.status_code} while streaming", self.provider
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"{type(exc).__name__}: {exc}", self.provider) from exc
        return "".join(parts)

    async def generate_embeddings(self, texts: list[str], **options: Any) -> list[list[float]]:
        data = await self._post(
            "/embeddings", {"model": self.embedding_model, "input": texts, **options}
        )
        rows = sorted(data.get("data", []), key=lambda row: row.get("index", 0))
        return [row["embedding"] for row in rows]

    async def chat_with_image(self, text: str, image: Any, **options: Any) -> str:
        content = [
            {"type": "text", "text": text},
            {"type": "image_url", "image_url": {"url": image}},
        ]
        return await self.chat_completion([{"role": "user", "content": content}], **options)

    async def is_available(self) -> bool:
        try:
            response = await self._http().get("/models")
        except httpx.HTTPError as exc:
            logger.debug("backend_unreachable", provider=self.provider, error=str(exc))
            return False
        return response.status_code < 400

    def metadata(self) -> BackendMetadata:
        return BackendMetadata(
            provider=self.provider,
            model=self.model,
            supports_streaming=True,
            supports_embeddings=True,
            supports_vision=True,
            extra={"base_url": self._base_url},
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
