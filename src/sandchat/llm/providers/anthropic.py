"""Anthropic Claude LLM provider implementation.

Uses the official Anthropic Python SDK for async streaming.
Reference: https://github.com/anthropics/anthropic-sdk-python
"""

import base64
import json
from collections.abc import AsyncIterator
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from ...config import ANTHROPIC_MAX_TOKENS
from ...errors import APICallError, AuthenticationError, RateLimitError
from ..base import LLMProvider, ToolChoice
from ..models import (
    ChatMessage,
    FilePart,
    ImagePart,
    ModelParameters,
    ReasoningPart,
    StepFinishPart,
    StreamPart,
    TextDeltaPart,
    TextPart,
    ToolCallPart,
    Usage,
)

_TOOL_CHOICES = {
    "auto": {"type": "auto"},
    "none": {"type": "none"},
    "required": {"type": "any"},
}


def _part_to_anthropic(part: TextPart | ImagePart | FilePart) -> dict[str, Any]:
    """Convert one content part to an Anthropic content block."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if isinstance(part, ImagePart):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part.mime_type, "data": part.image},
        }

    if part.mime_type == "application/pdf":
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": part.mime_type, "data": part.data},
        }

    if part.mime_type.startswith("text/"):
        return {"type": "text", "text": base64.b64decode(part.data).decode("utf-8", errors="replace")}

    return {"type": "text", "text": f"[Attachment {part.filename or part.mime_type} omitted]"}


def _convert_messages(messages: list[ChatMessage]) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert the transcript to Anthropic format.

    System messages are lifted into the top-level system prompt and
    consecutive tool results are merged into one user turn, as the
    Messages API requires strictly alternating roles.

    Returns:
        Tuple of (system prompt, messages)
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.text)
            continue

        if msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.text,
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue

        if msg.role == "assistant":
            blocks: list[dict[str, Any]] = []
            if msg.text:
                blocks.append({"type": "text", "text": msg.text})
            for call in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            converted.append({"role": "assistant", "content": blocks or msg.text})
            continue

        if isinstance(msg.content, str):
            converted.append({"role": "user", "content": msg.content})
        else:
            converted.append({"role": "user", "content": [_part_to_anthropic(p) for p in msg.content]})

    system = "\n\n".join(p for p in system_parts if p) or None
    return system, converted


def _translate_error(exc: anthropic.AnthropicError) -> APICallError:
    """Map an Anthropic SDK exception onto the sandchat error taxonomy."""
    if isinstance(exc, anthropic.AuthenticationError):
        return AuthenticationError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, anthropic.APIStatusError):
        return APICallError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, anthropic.APIConnectionError):
        return APICallError(exc.message, cause=exc.__cause__, retryable=True)
    return APICallError(str(exc), cause=exc.__cause__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM provider implementation.

    Hidden design decisions:
    - Anthropic API client initialization
    - Message format conversion (system message, tool_use/tool_result blocks)
    - Thinking blocks surfaced as the reasoning channel
    - Authentication mechanism
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Model to send requests to
            base_url: Optional custom API base URL
            **client_kwargs: Additional kwargs for AsyncAnthropic client
        """
        self._model = model
        client_kwargs.setdefault("max_retries", 0)
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    def _build_request(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None,
        tool_choice: ToolChoice,
        parameters: ModelParameters | None,
        options: dict[str, Any] | None,
    ) -> dict[str, Any]:
        system, anthropic_messages = _convert_messages(messages)
        params = parameters or ModelParameters()

        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": anthropic_messages,
            "max_tokens": params.max_tokens or ANTHROPIC_MAX_TOKENS,
        }
        if system:
            request_params["system"] = system
        if params.temperature is not None:
            request_params["temperature"] = params.temperature
        # Only sent when narrowed; some models reject temperature and top_p together
        if params.top_p is not None and params.top_p < 1.0:
            request_params["top_p"] = params.top_p

        if tools:
            request_params["tools"] = [
                {
                    "name": spec["name"],
                    "description": spec["description"],
                    "input_schema": spec["parameters"],
                }
                for spec in tools
            ]
            request_params["tool_choice"] = _TOOL_CHOICES[tool_choice]

        request_params.update(options or {})
        return request_params

    async def stream_step(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: ToolChoice = "auto",
        parameters: ModelParameters | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamPart]:
        """Stream one Messages API step."""
        request_params = self._build_request(messages, tools, tool_choice, parameters, options)

        input_tokens = 0
        output_tokens = 0
        finish_reason = "stop"
        # tool_use blocks keyed by content block index
        tool_blocks: dict[int, dict[str, str]] = {}

        try:
            async with self._client.messages.stream(**request_params) as stream:
                async for event in stream:
                    if event.type == "message_start":
                        input_tokens = event.message.usage.input_tokens
                    elif event.type == "message_delta":
                        output_tokens = event.usage.output_tokens
                        if event.delta.stop_reason:
                            finish_reason = event.delta.stop_reason
                    elif event.type == "content_block_start":
                        if event.content_block.type == "tool_use":
                            tool_blocks[event.index] = {
                                "id": event.content_block.id,
                                "name": event.content_block.name,
                                "json": "",
                            }
                    elif event.type == "content_block_delta":
                        delta = event.delta
                        if delta.type == "text_delta":
                            yield TextDeltaPart(text_delta=delta.text)
                        elif delta.type == "thinking_delta":
                            yield ReasoningPart(text_delta=delta.thinking)
                        elif delta.type == "input_json_delta" and event.index in tool_blocks:
                            tool_blocks[event.index]["json"] += delta.partial_json
        except anthropic.AnthropicError as e:
            raise _translate_error(e) from e

        for index in sorted(tool_blocks):
            block = tool_blocks[index]
            try:
                args = json.loads(block["json"]) if block["json"].strip() else {}
            except json.JSONDecodeError as e:
                yield ToolCallPart(
                    tool_call_id=block["id"],
                    tool_name=block["name"],
                    args_error=f"Invalid JSON arguments: {e}",
                )
                continue
            yield ToolCallPart(tool_call_id=block["id"], tool_name=block["name"], args=args)

        yield StepFinishPart(
            finish_reason=finish_reason,
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self._client.close()
