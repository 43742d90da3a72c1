from .attachments import filter_attachments_by_model, load_attachment, model_supports
from .cancellation import AbortController, AbortSignal, iterate_with_abort
from .models import (
    Attachment,
    ChatError,
    ChatEvent,
    ChatEventType,
    Message,
    ToolCallRecord,
    create_assistant_placeholder,
    create_user_message,
)
from .orchestrator import ChatOrchestrator, ChatTurn, StreamState, TurnRequest
from .processor import StreamProcessor
from .session import ChatSession
from .state import ChatState, apply_event, upsert_message
from .think import ThinkBlockScanner

__all__ = [
    "filter_attachments_by_model",
    "load_attachment",
    "model_supports",
    "AbortController",
    "AbortSignal",
    "iterate_with_abort",
    "Attachment",
    "ChatError",
    "ChatEvent",
    "ChatEventType",
    "Message",
    "ToolCallRecord",
    "create_assistant_placeholder",
    "create_user_message",
    "ChatOrchestrator",
    "ChatTurn",
    "StreamState",
    "TurnRequest",
    "StreamProcessor",
    "ChatSession",
    "ChatState",
    "apply_event",
    "upsert_message",
    "ThinkBlockScanner",
]
