from .base import LLMProvider, ToolChoice
from .catalog import MODELS, Capability, Model, default_model, get_model, list_models
from .factory import PROVIDER_STRATEGIES, Endpoint, create_llm_provider, resolve_endpoint
from .models import ChatMessage, ModelParameters, StreamPart, Usage
from .providers import AnthropicProvider, GeminiProvider, OpenAICompatibleProvider
from .retry import RetryPolicy
from .streaming import resolve_tool_choice, stream_text

__all__ = [
    "LLMProvider",
    "ToolChoice",
    "MODELS",
    "Capability",
    "Model",
    "default_model",
    "get_model",
    "list_models",
    "PROVIDER_STRATEGIES",
    "Endpoint",
    "create_llm_provider",
    "resolve_endpoint",
    "ChatMessage",
    "ModelParameters",
    "StreamPart",
    "Usage",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "RetryPolicy",
    "resolve_tool_choice",
    "stream_text",
]
