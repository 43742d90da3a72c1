from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_MAX_TOKENS


class TextPart(BaseModel):
    """Plain text content (also used for text files pasted as attachments)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str = Field(description="Text content")


class ImagePart(BaseModel):
    """Inline image content."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    image: str = Field(description="Base64-encoded image data")
    mime_type: str = Field(default="image/png", description="Image MIME type")


class FilePart(BaseModel):
    """Inline file content (audio, pdf, other binary documents)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["file"] = "file"
    data: str = Field(description="Base64-encoded file data")
    mime_type: str = Field(description="File MIME type")
    filename: str | None = Field(default=None, description="Original file name")


ContentPart = Annotated[TextPart | ImagePart | FilePart, Field(discriminator="type")]


class Usage(BaseModel):
    """Token usage for one model step or a whole turn."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ModelParameters(BaseModel):
    """Per-session sampling configuration, read once per sent message."""

    system_prompt: str | None = Field(
        default=None,
        description="System prompt (None uses the packaged default prompt)"
    )
    temperature: float | None = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=DEFAULT_MAX_TOKENS, ge=1)
    top_p: float | None = Field(default=1.0, ge=0.0, le=1.0)
    frequency_penalty: float | None = Field(default=0.0, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=0.0, ge=-2.0, le=2.0)


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model in an assistant message."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """Represents one entry of the transcript sent to a provider."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"] = Field(
        description="Role of the message sender"
    )
    content: str | tuple[ContentPart, ...] = Field(
        default="",
        description="Plain text or ordered content parts"
    )
    tool_calls: tuple[ToolCallRequest, ...] = Field(
        default=(),
        description="Tool calls issued by an assistant message"
    )
    tool_call_id: str | None = Field(
        default=None,
        description="For tool messages: the call this result answers"
    )
    name: str | None = Field(default=None, description="For tool messages: the tool name")

    @property
    def text(self) -> str:
        """Concatenated text of the message, ignoring non-text parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))


# Stream parts, the increments produced by providers and the step runner


class TextDeltaPart(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    text_delta: str


class ReasoningPart(BaseModel):
    type: Literal["reasoning"] = "reasoning"
    text_delta: str


class ToolCallPart(BaseModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    args_error: str | None = Field(
        default=None,
        description="Set when the provider sent arguments that are not a JSON object"
    )


class ToolResultPart(BaseModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class SourcePart(BaseModel):
    """Citation metadata (e.g. search grounding) forwarded to the renderer."""

    type: Literal["source"] = "source"
    source: dict[str, Any]


class StepFinishPart(BaseModel):
    type: Literal["step-finish"] = "step-finish"
    finish_reason: str = "stop"
    usage: Usage = Field(default_factory=Usage)


class FinishPart(BaseModel):
    type: Literal["finish"] = "finish"
    finish_reason: str = "stop"
    usage: Usage = Field(default_factory=Usage)


class ErrorPart(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["error"] = "error"
    error: Exception


StreamPart = (
    TextDeltaPart
    | ReasoningPart
    | ToolCallPart
    | ToolResultPart
    | SourcePart
    | StepFinishPart
    | FinishPart
    | ErrorPart
)
