"""
Model Backend Protocol — Provider-Agnostic Capability Contract
================================================================

Defines the contract every backend model client implements, and the
provider → factory map the registry uses to build clients.

Contract:
  - chat_completion(messages)         required
  - stream_chat_completion(...)       optional (default: one chunk)
  - generate_embeddings(texts)        optional
  - chat_with_image(text, image)      optional
  - is_available()                    reachability probe

New providers are added by registering a factory; registry and router
code never switch on provider names.

Usage:
    factories = BackendFactoryRegistry()
    factories.register_provider("mock", lambda entry: MockBackend(entry))
    registry = ModelRegistry(factories=factories)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from switchyard.core.exceptions import ConfigurationError, UnsupportedOperation

if TYPE_CHECKING:
    from switchyard.registry.entries import RegistryEntry

ChatMessage = dict[str, Any]  # {"role": "user" | "assistant" | "system", "content": str}

@dataclass
class BackendMetadata:
    """Descriptive information reported by a backend."""

    provider: str
    model: str
    supports_streaming: bool = False
    supports_embeddings: bool = False
    supports_vision: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

class ModelBackend(ABC):
    """
    Abstract backend model client.

    One instance is created per registry entry by the provider's factory.
    """

    provider: str = "unknown"

    @abstractmethod
    async def chat_completion(self, messages: list[ChatMessage], **options: Any) -> str:
        """Return the assistant text for a chat transcript."""
        ...

    async def stream_chat_completion(
        self,
        messages: list[ChatMessage],
        on_chunk: Callable[[str], None],
        **options: Any,
    ) -> str:
        """Stream a completion. Default: deliver the full completion as one chunk."""
        text = await self.chat_completion(messages, **options)
        on_chunk(text)
        return text

    async def generate_embeddings(self, texts: list[str], **options: Any) -> list[list[float]]:
        raise UnsupportedOperation("embeddings", self.provider)

    async def chat_with_image(self, text: str, image: Any, **options: Any) -> str:
        raise UnsupportedOperation("vision", self.provider)

    async def is_available(self) -> bool:
        """Reachability probe. Default: assume reachable."""
        return True

    def metadata(self) -> BackendMetadata:
        return BackendMetadata(provider=self.provider, model=type(self).__name__)

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources."""
        pass

BackendFactory = Callable[["RegistryEntry"], ModelBackend]

class BackendFactoryRegistry:
    """Provider name → backend factory mapping."""

    def __init__(self, factories: dict[str, BackendFactory] | None = None) -> None:
        self._factories: dict[str, BackendFactory] = dict(factories or {})

    def register_provider(self, provider: str, factory: BackendFactory) -> None:
        self._factories[provider] = factory

    def unregister_provider(self, provider: str) -> None:
        self._factories.pop(provider, None)

    def has_provider(self, provider: str) -> bool:
        return provider in self._factories

    def providers(self) -> list[str]:
        return sorted(self._factories)

    def create(self, entry: RegistryEntry) -> ModelBackend:
        """Build the backend for an entry; unknown providers are a configuration error."""
        factory = self._factories.get(entry.provider)
        if factory is None:
            raise ConfigurationError(
                f"Unsupported model provider: {entry.provider} "
                f"(known: {', '.join(self.providers()) or 'none'})"
            )
        return factory(entry)

def default_factories() -> BackendFactoryRegistry:
    """Factory map with the OpenAI-compatible HTTP client for common providers."""
    from switchyard.infra.runtime.backends.http import (
        DEFAULT_BASE_URLS,
        OpenAICompatibleBackend,
    )

    return BackendFactoryRegistry({
        provider: OpenAICompatibleBackend.from_entry for provider in DEFAULT_BASE_URLS
    })

__all__ = [
    "BackendFactory",
    "BackendFactoryRegistry",
    "BackendMetadata",
    "ChatMessage",
    "ModelBackend",
    "default_factories",
]
