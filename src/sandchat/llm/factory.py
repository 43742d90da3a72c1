"""Provider routing: from a catalogue model to a ready LLM provider.

Each backend family is one ``ProviderStrategy`` registered under its provider
tag in ``PROVIDER_STRATEGIES``. Tags without an entry fall back to the local
inference server, which needs no credential. Adding a backend means adding
one strategy class and one registry entry.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import (
    DEFAULT_REASONING_EFFORT,
    GROQ_BASE_URL,
    LOCAL_API_KEY,
    LOCAL_BASE_URL,
    MISTRAL_BASE_URL,
)
from ..credentials import SecretStore
from .base import LLMProvider
from .catalog import Model
from .providers import AnthropicProvider, GeminiProvider, OpenAICompatibleProvider

logger = structlog.get_logger(__name__)


class Endpoint(BaseModel):
    """Resolved request target for one model."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(description="Provider tag from the catalogue entry")
    strategy: str = Field(description="Display name of the backend strategy")
    model_id: str
    base_url: str | None = None
    credential: str | None = Field(
        default=None,
        description="Secret store key the API key was read from (None when no key is needed)"
    )
    api_key: str = Field(default="", repr=False)
    options: dict[str, Any] = Field(default_factory=dict)


class ProviderStrategy(ABC):
    """One backend integration: credential, endpoint shape and client."""

    name: ClassVar[str]
    credential: ClassVar[str | None] = None
    base_url: ClassVar[str | None] = None

    def provider_options(self, model: Model) -> dict[str, Any]:
        """Backend-specific request options for a model."""
        return {}

    def resolve(self, model: Model, secrets: SecretStore) -> Endpoint:
        # Missing keys pass through as "" and fail later as AuthenticationError
        api_key = secrets.get_api_key(self.credential) if self.credential else LOCAL_API_KEY
        return Endpoint(
            provider=model.provider,
            strategy=self.name,
            model_id=model.id,
            base_url=self.base_url,
            credential=self.credential,
            api_key=api_key,
            options=self.provider_options(model),
        )

    @abstractmethod
    def create(self, endpoint: Endpoint) -> LLMProvider:
        """Build the provider client for a resolved endpoint."""


class OpenAIStrategy(ProviderStrategy):
    name = "OpenAI"
    credential = "OpenAI"

    def provider_options(self, model: Model) -> dict[str, Any]:
        if model.reasoning:
            return {"reasoning_effort": DEFAULT_REASONING_EFFORT}
        return {}

    def create(self, endpoint: Endpoint) -> LLMProvider:
        return OpenAICompatibleProvider(api_key=endpoint.api_key, model=endpoint.model_id)


class GroqStrategy(ProviderStrategy):
    name = "Groq"
    credential = "Groq"
    base_url = GROQ_BASE_URL

    def provider_options(self, model: Model) -> dict[str, Any]:
        if model.reasoning:
            # Reasoning is returned in a separate delta field instead of <think> tags
            return {"extra_body": {"reasoning_format": "parsed"}}
        return {}

    def create(self, endpoint: Endpoint) -> LLMProvider:
        return OpenAICompatibleProvider(
            api_key=endpoint.api_key,
            model=endpoint.model_id,
            base_url=endpoint.base_url,
        )


class MistralStrategy(ProviderStrategy):
    name = "Mistral"
    credential = "Mistral"
    base_url = MISTRAL_BASE_URL

    def create(self, endpoint: Endpoint) -> LLMProvider:
        # Mistral rejects stream_options
        return OpenAICompatibleProvider(
            api_key=endpoint.api_key,
            model=endpoint.model_id,
            base_url=endpoint.base_url,
            stream_usage=False,
        )


class GoogleStrategy(ProviderStrategy):
    name = "Google"
    credential = "Google"

    def provider_options(self, model: Model) -> dict[str, Any]:
        options: dict[str, Any] = {"use_search_grounding": True}
        if model.reasoning:
            options["thinking_config"] = {"include_thoughts": True}
        return options

    def create(self, endpoint: Endpoint) -> LLMProvider:
        return GeminiProvider(api_key=endpoint.api_key, model=endpoint.model_id)


class AnthropicStrategy(ProviderStrategy):
    name = "Anthropic"
    credential = "Anthropic"

    def provider_options(self, model: Model) -> dict[str, Any]:
        if model.reasoning:
            return {"thinking": {"type": "enabled", "budget_tokens": 2048}}
        return {}

    def create(self, endpoint: Endpoint) -> LLMProvider:
        return AnthropicProvider(api_key=endpoint.api_key, model=endpoint.model_id)


class LocalStrategy(ProviderStrategy):
    """LM Studio's OpenAI-compatible server on localhost."""

    name = "LM Studio"
    base_url = LOCAL_BASE_URL

    def create(self, endpoint: Endpoint) -> LLMProvider:
        return OpenAICompatibleProvider(
            api_key=endpoint.api_key,
            model=endpoint.model_id,
            base_url=endpoint.base_url,
        )


DEFAULT_STRATEGY: ProviderStrategy = LocalStrategy()

PROVIDER_STRATEGIES: dict[str, ProviderStrategy] = {
    "openai": OpenAIStrategy(),
    "groq": GroqStrategy(),
    "mistral": MistralStrategy(),
    "google": GoogleStrategy(),
    "anthropic": AnthropicStrategy(),
    "lmstudio": DEFAULT_STRATEGY,
}


def get_strategy(provider: str) -> ProviderStrategy:
    """Get the strategy for a provider tag, falling back to the local server."""
    return PROVIDER_STRATEGIES.get(provider.lower(), DEFAULT_STRATEGY)


def resolve_endpoint(model: Model, secrets: SecretStore) -> Endpoint:
    """Resolve a catalogue model to its request target.

    Args:
        model: Catalogue entry selected for the turn
        secrets: Store the API key is read from (never validated here)

    Returns:
        Endpoint with credential, base URL and provider options
    """
    endpoint = get_strategy(model.provider).resolve(model, secrets)
    logger.info(
        "provider_resolved",
        model=model.id,
        provider=model.provider,
        strategy=endpoint.strategy,
        has_api_key=bool(endpoint.api_key),
    )
    return endpoint


def create_llm_provider(model: Model, secrets: SecretStore) -> tuple[LLMProvider, Endpoint]:
    """Create an LLM provider instance for a catalogue model.

    This factory function hides the instantiation logic for the different
    backends.

    Returns:
        Tuple of (initialized provider, resolved endpoint)

    Examples:
        >>> provider, endpoint = create_llm_provider(
        ...     get_model("gpt-4.1-nano"),
        ...     InMemorySecretStore({"OpenAI": "sk-..."}),
        ... )
    """
    endpoint = resolve_endpoint(model, secrets)
    return get_strategy(model.provider).create(endpoint), endpoint
