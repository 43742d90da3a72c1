from .anthropic import AnthropicProvider
from .gemini import GeminiProvider
from .openai import OpenAICompatibleProvider

__all__ = ["AnthropicProvider", "GeminiProvider", "OpenAICompatibleProvider"]
