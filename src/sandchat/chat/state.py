"""Conversation state and the reducer that applies chat events to it."""

from pydantic import BaseModel, ConfigDict

from ..llm.models import Usage
from .models import Attachment, ChatEvent, ChatEventType, Message


class ChatState(BaseModel):
    """Read-only view of one conversation.

    Attributes:
        messages: Conversation in insertion order, never resorted
        is_streaming: Whether a turn is in flight
        input_value: Pending input text
        attachments: Pending attachments, moved into the request on send
        usage: Token usage of the last finished turn
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    is_streaming: bool = False
    input_value: str = ""
    attachments: tuple[Attachment, ...] = ()
    usage: Usage | None = None

    def get_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


def upsert_message(messages: tuple[Message, ...], message: Message) -> tuple[Message, ...]:
    """Replace the message with the same id in place, or append it."""
    for index, existing in enumerate(messages):
        if existing.id == message.id:
            return messages[:index] + (message,) + messages[index + 1:]
    return messages + (message,)


def apply_event(state: ChatState, event: ChatEvent) -> ChatState:
    """Return the state after one chat event. The input state is unchanged."""
    if event.type is ChatEventType.MESSAGE:
        return state.model_copy(update={"messages": upsert_message(state.messages, event.data)})
    if event.type is ChatEventType.STREAMING:
        return state.model_copy(update={"is_streaming": bool(event.data)})
    if event.type is ChatEventType.USAGE:
        return state.model_copy(update={"usage": event.data})
    if event.type in (ChatEventType.ERROR, ChatEventType.FINISH):
        return state.model_copy(update={"is_streaming": False})
    return state
