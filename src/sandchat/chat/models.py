"""Conversation data model and chat events."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..llm.models import ChatMessage, ContentPart, FilePart, ImagePart, ModelParameters, TextPart

Attachment = TextPart | ImagePart | FilePart


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ToolCallRecord(BaseModel):
    """A tool invocation shown in an assistant message, in arrival order."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    result: Any = None
    tool_call_id: str | None = None


class Message(BaseModel):
    """One turn of the conversation.

    Messages are immutable snapshots. The assistant message of a streaming
    turn keeps one ``id`` while successive snapshots replace each other.

    Attributes:
        id: Unique identifier, assigned once at creation
        role: Message author
        content: Plain text, or ordered parts when the message carries attachments
        timestamp: Creation time
        reasoning: Reasoning trace of assistant messages (None for other roles)
        tool_calls: Tool invocations of assistant messages
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["system", "user", "assistant"]
    content: str | tuple[ContentPart, ...] = ""
    timestamp: datetime = Field(default_factory=_now)
    reasoning: str | None = None
    tool_calls: tuple[ToolCallRecord, ...] = ()

    @property
    def text(self) -> str:
        """Concatenated text content, ignoring attachments."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    def to_chat_message(self) -> ChatMessage:
        """Convert to the provider-facing transcript entry."""
        return ChatMessage(role=self.role, content=self.content)


class ChatEventType(str, Enum):
    """Kinds of events a turn emits to the session."""

    MESSAGE = "message"
    STREAMING = "streaming"
    USAGE = "usage"
    ERROR = "error"
    FINISH = "finish"
    SOURCE = "source"


class ChatError(BaseModel):
    """An error reported by a turn.

    Attributes:
        message: Formatted, user-facing text
        error: The underlying exception
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    message: str
    error: Exception


class ChatEvent(BaseModel):
    """One event of a turn.

    ``data`` depends on ``type``: a Message for message, a bool for
    streaming, Usage for usage, ChatError for error, the finish reason for
    finish and the source metadata dict for source.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: ChatEventType
    data: Any = None


def create_user_message(text: str, attachments: list[Attachment] | None = None) -> Message:
    """Create a user message; attachments make it multi-part with the text first."""
    if not attachments:
        return Message(role="user", content=text)
    return Message(role="user", content=(TextPart(text=text), *attachments))


def create_assistant_placeholder() -> Message:
    """Create the empty assistant message a turn streams into."""
    return Message(role="assistant", content="", reasoning="", tool_calls=())


__all__ = [
    "Attachment",
    "ChatError",
    "ChatEvent",
    "ChatEventType",
    "FilePart",
    "ImagePart",
    "Message",
    "ModelParameters",
    "TextPart",
    "ToolCallRecord",
    "create_assistant_placeholder",
    "create_user_message",
]
