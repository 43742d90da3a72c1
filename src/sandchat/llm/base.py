from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Literal

from .models import ChatMessage, ModelParameters, StreamPart

ToolChoice = Literal["auto", "none", "required"]


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This module hides the design decision of which LLM backend serves a model.
    Implementations must handle provider-specific details like:
    - API client setup and authentication
    - Request format conversion (multi-part content, tool specs)
    - Decoding the provider's incremental stream into stream parts
    - Translating SDK exceptions into APICallError

    Supports async context manager protocol for proper resource cleanup:
        async with provider:
            async for part in provider.stream_step(messages):
                ...
        # Automatically cleaned up
    """

    @property
    @abstractmethod
    def model(self) -> str:
        """Get the model identifier requests are sent to."""

    @abstractmethod
    def stream_step(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: ToolChoice = "auto",
        parameters: ModelParameters | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamPart]:
        """Stream one model step.

        A step ends after the model stops producing output, either with a
        final answer or with tool calls for the caller to execute.

        Args:
            messages: Transcript forming the conversation so far
            tools: Tool specs ({name, description, parameters}); None disables tools
            tool_choice: How the model may use the tools
            parameters: Sampling parameters
            options: Provider-specific request options

        Yields:
            TextDeltaPart, ReasoningPart, ToolCallPart and SourcePart increments,
            then exactly one StepFinishPart

        Raises:
            APICallError: Transport or provider failures
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "LLMProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
