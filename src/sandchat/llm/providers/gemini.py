"""Google Gemini LLM provider implementation.

Uses the official Google GenAI SDK for async streaming.
Reference: https://github.com/googleapis/python-genai

Note: the client is built on first use so that a missing API key surfaces
as an authentication error from the stream instead of at construction.
"""

import base64
import json
import uuid
from collections.abc import AsyncIterator
from typing import Any

import httpx
from google import genai
from google.genai import errors, types

from ...errors import APICallError, AuthenticationError, RateLimitError
from ..base import LLMProvider, ToolChoice
from ..models import (
    ChatMessage,
    FilePart,
    ImagePart,
    ModelParameters,
    ReasoningPart,
    SourcePart,
    StepFinishPart,
    StreamPart,
    TextDeltaPart,
    TextPart,
    ToolCallPart,
    Usage,
)

# Relaxed to avoid blocking code-related content
DEFAULT_SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_ONLY_HIGH"),
]

_CALLING_MODES = {"auto": "AUTO", "none": "NONE", "required": "ANY"}


def _part_to_gemini(part: TextPart | ImagePart | FilePart) -> types.Part:
    if isinstance(part, TextPart):
        return types.Part(text=part.text)
    if isinstance(part, ImagePart):
        return types.Part.from_bytes(data=base64.b64decode(part.image), mime_type=part.mime_type)
    return types.Part.from_bytes(data=base64.b64decode(part.data), mime_type=part.mime_type)


def _tool_response(text: str) -> dict[str, Any]:
    """Function responses must be JSON objects."""
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return {"result": text}
    return value if isinstance(value, dict) else {"result": value}


def _convert_messages(messages: list[ChatMessage]) -> tuple[str | None, list[types.Content]]:
    """Convert ChatMessage list to Gemini format.

    Returns:
        Tuple of (system_instruction, contents)
    """
    system_parts: list[str] = []
    contents: list[types.Content] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.text)
        elif msg.role == "tool":
            contents.append(types.Content(
                role="user",
                parts=[types.Part.from_function_response(
                    name=msg.name or "",
                    response=_tool_response(msg.text),
                )]
            ))
        elif msg.role == "assistant":
            parts = [types.Part(text=msg.text)] if msg.text else []
            parts.extend(
                types.Part(function_call=types.FunctionCall(
                    id=call.id, name=call.name, args=call.arguments
                ))
                for call in msg.tool_calls
            )
            contents.append(types.Content(role="model", parts=parts))
        elif isinstance(msg.content, str):
            contents.append(types.Content(role="user", parts=[types.Part(text=msg.content)]))
        else:
            contents.append(types.Content(
                role="user",
                parts=[_part_to_gemini(p) for p in msg.content]
            ))

    return "\n\n".join(p for p in system_parts if p) or None, contents


def _translate_error(exc: errors.APIError) -> APICallError:
    """Map a google-genai API error onto the sandchat error taxonomy."""
    message = exc.message or str(exc)
    if exc.code in (401, 403):
        return AuthenticationError(message, cause=exc.status, status_code=exc.code)
    if exc.code == 429:
        return RateLimitError(message, cause=exc.status, status_code=exc.code)
    return APICallError(message, cause=exc.status, status_code=exc.code)


class GeminiProvider(LLMProvider):
    """Google Gemini LLM provider implementation.

    Hidden design decisions:
    - Google GenAI client initialization (deferred to the first request)
    - Message format conversion (function calls and responses)
    - Thought parts surfaced as the reasoning channel
    - Search grounding chunks surfaced as sources
    - Relaxed safety settings to avoid blocking code content
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-pro",
        **client_kwargs: Any
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Google AI API key
            model: Model to send requests to
            **client_kwargs: Additional kwargs for Client
        """
        self._model = model
        self._api_key = api_key
        self._client_kwargs = client_kwargs
        self._client: genai.Client | None = None

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    def _get_client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = genai.Client(api_key=self._api_key, **self._client_kwargs)
            except ValueError as e:
                raise AuthenticationError(str(e), cause="Missing Google API key") from e
        return self._client

    def _build_config(
        self,
        system_instruction: str | None,
        tools: list[dict[str, Any]] | None,
        tool_choice: ToolChoice,
        parameters: ModelParameters | None,
        options: dict[str, Any] | None,
    ) -> types.GenerateContentConfig:
        params = parameters or ModelParameters()
        extra = dict(options or {})
        use_search_grounding = extra.pop("use_search_grounding", False)

        config_kwargs: dict[str, Any] = {
            "system_instruction": system_instruction,
            "safety_settings": DEFAULT_SAFETY_SETTINGS,
            "temperature": params.temperature,
            "max_output_tokens": params.max_tokens,
            "top_p": params.top_p,
        }
        # Penalties are rejected by some Gemini models, only send when set
        if params.frequency_penalty:
            config_kwargs["frequency_penalty"] = params.frequency_penalty
        if params.presence_penalty:
            config_kwargs["presence_penalty"] = params.presence_penalty

        if tools:
            config_kwargs["tools"] = [types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=spec["name"],
                    description=spec["description"],
                    parameters_json_schema=spec["parameters"],
                )
                for spec in tools
            ])]
            config_kwargs["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(mode=_CALLING_MODES[tool_choice])
            )
        elif use_search_grounding:
            # Grounding cannot be combined with function declarations
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]

        config_kwargs.update(extra)
        return types.GenerateContentConfig(**config_kwargs)

    async def stream_step(
        self,
        messages: list[ChatMessage],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: ToolChoice = "auto",
        parameters: ModelParameters | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamPart]:
        """Stream one generate_content step."""
        system_instruction, contents = _convert_messages(messages)
        config = self._build_config(system_instruction, tools, tool_choice, parameters, options)

        usage = Usage()
        finish_reason = "stop"
        tool_calls: list[ToolCallPart] = []
        seen_sources: set[str] = set()

        try:
            stream = await self._get_client().aio.models.generate_content_stream(
                model=self._model, contents=contents, config=config
            )
            async for chunk in stream:
                if chunk.usage_metadata:
                    usage = Usage(
                        prompt_tokens=chunk.usage_metadata.prompt_token_count or 0,
                        completion_tokens=chunk.usage_metadata.candidates_token_count or 0,
                        total_tokens=chunk.usage_metadata.total_token_count or 0,
                    )
                if not chunk.candidates:
                    continue

                candidate = chunk.candidates[0]
                if candidate.finish_reason:
                    finish_reason = str(getattr(candidate.finish_reason, "value", candidate.finish_reason)).lower()

                parts = candidate.content.parts if candidate.content and candidate.content.parts else []
                for part in parts:
                    if part.function_call:
                        tool_calls.append(ToolCallPart(
                            tool_call_id=part.function_call.id or f"call_{uuid.uuid4().hex}",
                            tool_name=part.function_call.name or "",
                            args=dict(part.function_call.args or {}),
                        ))
                    elif part.text:
                        if part.thought:
                            yield ReasoningPart(text_delta=part.text)
                        else:
                            yield TextDeltaPart(text_delta=part.text)

                grounding = candidate.grounding_metadata
                for grounding_chunk in (grounding.grounding_chunks or []) if grounding else []:
                    web = grounding_chunk.web
                    if web is None or not web.uri or web.uri in seen_sources:
                        continue
                    seen_sources.add(web.uri)
                    yield SourcePart(source={
                        "source_type": "url",
                        "url": web.uri,
                        "title": web.title,
                    })

        except errors.APIError as e:
            raise _translate_error(e) from e
        except httpx.TransportError as e:
            raise APICallError(str(e) or type(e).__name__, cause=e, retryable=True) from e

        for call in tool_calls:
            yield call

        yield StepFinishPart(finish_reason=finish_reason, usage=usage)

    async def close(self) -> None:
        """Close the Gemini client's async transport."""
        if self._client is not None:
            await self._client.aio.aclose()
            self._client = None
