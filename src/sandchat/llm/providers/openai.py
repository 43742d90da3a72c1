"""OpenAI and OpenAI-compatible LLM provider implementation.

Serves OpenAI itself plus every backend that speaks the Chat Completions
wire format (Groq, Mistral, LM Studio) through a different base URL.
"""

import base64
import json
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

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

_AUDIO_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
}


def _part_to_openai(part: TextPart | ImagePart | FilePart) -> dict[str, Any]:
    """Convert one content part to a Chat Completions content item."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if isinstance(part, ImagePart):
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{part.mime_type};base64,{part.image}"},
        }

    if part.mime_type.startswith("audio/"):
        return {
            "type": "input_audio",
            "input_audio": {
                "data": part.data,
                "format": _AUDIO_FORMATS.get(part.mime_type, "wav"),
            },
        }

    if part.mime_type.startswith("text/"):
        text = base64.b64decode(part.data).decode("utf-8", errors="replace")
        return {"type": "text", "text": text}

    return {
        "type": "file",
        "file": {
            "filename": part.filename or "document.pdf",
            "file_data": f"data:{part.mime_type};base64,{part.data}",
        },
    }


def _message_to_openai(msg: ChatMessage) -> dict[str, Any]:
    """Convert a transcript entry to the Chat Completions message format."""
    if msg.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": msg.tool_call_id,
            "content": msg.text,
        }

    if msg.role == "assistant":
        result: dict[str, Any] = {"role": "assistant", "content": msg.text or None}
        if msg.tool_calls:
            result["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments),
                    },
                }
                for call in msg.tool_calls
            ]
        return result

    if isinstance(msg.content, str):
        return {"role": msg.role, "content": msg.content}

    return {"role": msg.role, "content": [_part_to_openai(p) for p in msg.content]}


def _translate_error(exc: openai.OpenAIError) -> APICallError:
    """Map an OpenAI SDK exception onto the sandchat error taxonomy."""
    if isinstance(exc, openai.AuthenticationError):
        return AuthenticationError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, openai.APIStatusError):
        return APICallError(exc.message, cause=exc.body, status_code=exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return APICallError(exc.message, cause=exc.__cause__, retryable=True)
    return APICallError(str(exc), cause=exc.__cause__)


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI Chat Completions streaming provider.

    Hidden design decisions:
    - OpenAI API client initialization (base URL selects the backend)
    - Multi-part content and tool spec conversion
    - Reassembly of tool-call arguments streamed in fragments
    - Native reasoning fields exposed by some compatible servers
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-nano",
        base_url: str | None = None,
        organization: str | None = None,
        stream_usage: bool = True,
        **client_kwargs: Any
    ):
        """Initialize the provider.

        Args:
            api_key: API key (may be empty; the server rejects it on first use)
            model: Model to send requests to
            base_url: Optional API base URL for compatible backends
            organization: Optional organization ID
            stream_usage: Whether to request usage in the final stream chunk
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._model = model
        self._stream_usage = stream_usage
        # Retries are owned by the step runner's RetryPolicy
        client_kwargs.setdefault("max_retries", 0)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
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
        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": [_message_to_openai(m) for m in messages],
            "stream": True,
        }
        if self._stream_usage:
            request_params["stream_options"] = {"include_usage": True}

        if parameters is not None:
            for key in ("temperature", "max_tokens", "top_p", "frequency_penalty", "presence_penalty"):
                value = getattr(parameters, key)
                if value is not None:
                    request_params[key] = value

        if tools:
            request_params["tools"] = [{"type": "function", "function": spec} for spec in tools]
            request_params["tool_choice"] = tool_choice

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
        """Stream one Chat Completions step."""
        request_params = self._build_request(messages, tools, tool_choice, parameters, options)

        usage = Usage()
        finish_reason = "stop"
        # Tool call fragments keyed by their index in the choice
        tool_buffers: dict[int, dict[str, str]] = {}

        try:
            stream = await self._client.chat.completions.create(**request_params)

            async for chunk in stream:
                if chunk.usage is not None:
                    usage = Usage(
                        prompt_tokens=chunk.usage.prompt_tokens,
                        completion_tokens=chunk.usage.completion_tokens,
                        total_tokens=chunk.usage.total_tokens,
                    )
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                # DeepSeek-style servers use reasoning_content, Groq uses reasoning
                reasoning = getattr(delta, "reasoning_content", None) or getattr(delta, "reasoning", None)
                if reasoning:
                    yield ReasoningPart(text_delta=reasoning)

                if delta.content:
                    yield TextDeltaPart(text_delta=delta.content)

                for fragment in delta.tool_calls or []:
                    buf = tool_buffers.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    if fragment.id:
                        buf["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            buf["name"] = fragment.function.name
                        if fragment.function.arguments:
                            buf["arguments"] += fragment.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

        except openai.OpenAIError as e:
            raise _translate_error(e) from e

        for index in sorted(tool_buffers):
            buf = tool_buffers[index]
            yield _tool_call_part(buf["id"] or f"call_{index}", buf["name"], buf["arguments"])

        yield StepFinishPart(finish_reason=finish_reason, usage=usage)

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()


def _tool_call_part(call_id: str, name: str, raw_arguments: str) -> ToolCallPart:
    """Parse streamed JSON arguments into a ToolCallPart."""
    if not raw_arguments.strip():
        return ToolCallPart(tool_call_id=call_id, tool_name=name, args={})
    try:
        args = json.loads(raw_arguments)
    except json.JSONDecodeError as e:
        return ToolCallPart(
            tool_call_id=call_id,
            tool_name=name,
            args_error=f"Invalid JSON arguments: {e}",
        )
    if not isinstance(args, dict):
        return ToolCallPart(
            tool_call_id=call_id,
            tool_name=name,
            args_error="Tool arguments must be a JSON object",
        )
    return ToolCallPart(tool_call_id=call_id, tool_name=name, args=args)
