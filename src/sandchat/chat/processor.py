"""Merge stream parts into the in-flight assistant message.

The processor owns a private mutable draft of the assistant message. Every
change to the draft is followed by one ``message`` event carrying a frozen
snapshot, so listeners never see a partially updated message.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from ..llm.models import (
    FinishPart,
    ReasoningPart,
    SourcePart,
    StreamPart,
    TextDeltaPart,
    ToolCallPart,
    ToolResultPart,
)
from .models import ChatEvent, ChatEventType, Message, ToolCallRecord
from .think import Channel, ThinkBlockScanner

logger = structlog.get_logger(__name__)


@dataclass
class _Draft:
    id: str
    timestamp: datetime
    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


class StreamProcessor:
    """Apply stream parts to one assistant message."""

    def __init__(self, placeholder: Message):
        self._draft = _Draft(
            id=placeholder.id,
            timestamp=placeholder.timestamp,
            content=placeholder.text,
            reasoning=placeholder.reasoning or "",
            tool_calls=list(placeholder.tool_calls),
        )
        self._scanner = ThinkBlockScanner()
        self.pending_tool_calls: list[ToolCallPart] = []

    def snapshot(self) -> Message:
        """Immutable copy of the current draft."""
        return Message(
            id=self._draft.id,
            role="assistant",
            content=self._draft.content,
            timestamp=self._draft.timestamp,
            reasoning=self._draft.reasoning,
            tool_calls=tuple(self._draft.tool_calls),
        )

    def _message_event(self) -> ChatEvent:
        return ChatEvent(type=ChatEventType.MESSAGE, data=self.snapshot())

    def _append(self, segments: list[tuple[Channel, str]]) -> bool:
        for channel, text in segments:
            if channel == "reasoning":
                self._draft.reasoning += text
            else:
                self._draft.content += text
        return bool(segments)

    def process_text_delta(self, delta: str) -> list[ChatEvent]:
        if self._append(self._scanner.feed(delta)):
            return [self._message_event()]
        return []

    def process_reasoning(self, delta: str) -> list[ChatEvent]:
        if not delta:
            return []
        self._draft.reasoning += delta
        return [self._message_event()]

    def process_tool_call(self, part: ToolCallPart) -> list[ChatEvent]:
        self.pending_tool_calls.append(part)
        return []

    def process_tool_result(self, part: ToolResultPart) -> list[ChatEvent]:
        self.pending_tool_calls = [
            call for call in self.pending_tool_calls if call.tool_call_id != part.tool_call_id
        ]
        self._draft.tool_calls.append(ToolCallRecord(
            tool_name=part.tool_name,
            result=part.result,
            tool_call_id=part.tool_call_id,
        ))
        return [self._message_event()]

    def process_finish(self, part: FinishPart) -> list[ChatEvent]:
        """Flush held-back text, then emit the final message, usage and finish."""
        self._append(self._scanner.flush())
        return [
            self._message_event(),
            ChatEvent(type=ChatEventType.USAGE, data=part.usage),
            ChatEvent(type=ChatEventType.FINISH, data=part.finish_reason),
        ]

    def process(self, part: StreamPart) -> list[ChatEvent]:
        """Dispatch one stream part. Error parts are handled by the caller."""
        if isinstance(part, TextDeltaPart):
            return self.process_text_delta(part.text_delta)
        if isinstance(part, ReasoningPart):
            return self.process_reasoning(part.text_delta)
        if isinstance(part, ToolCallPart):
            return self.process_tool_call(part)
        if isinstance(part, ToolResultPart):
            return self.process_tool_result(part)
        if isinstance(part, FinishPart):
            return self.process_finish(part)
        if isinstance(part, SourcePart):
            logger.info("stream_source", source=part.source)
            return [ChatEvent(type=ChatEventType.SOURCE, data=part.source)]
        return []
