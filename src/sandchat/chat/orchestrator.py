"""Turn orchestration: from a user message to a stream of chat events.

A turn moves through ``idle -> requesting -> streaming`` and ends in exactly
one of ``finished``, ``errored`` or ``aborted``. Whatever the outcome, a
``streaming=False`` event is emitted before the turn's event stream ends,
unless the consumer stops iterating first.
"""

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_TEMPERATURE, MAX_STEPS
from ..credentials import SecretStore
from ..errors import format_error
from ..llm.base import LLMProvider
from ..llm.catalog import Model
from ..llm.factory import Endpoint, create_llm_provider
from ..llm.models import ChatMessage, ErrorPart, FinishPart, ModelParameters
from ..llm.retry import RetryPolicy
from ..llm.streaming import resolve_tool_choice, stream_text
from ..prompts import build_system_prompt
from ..sandbox import SandboxSession
from ..tools.base import BaseTool, ToolRegistry
from ..tools.factory import build_tool_registry
from .cancellation import AbortSignal, iterate_with_abort
from .models import (
    Attachment,
    ChatError,
    ChatEvent,
    ChatEventType,
    Message,
    create_assistant_placeholder,
    create_user_message,
)
from .processor import StreamProcessor

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[Model, SecretStore], tuple[LLMProvider, Endpoint]]


class StreamState(str, Enum):
    """Lifecycle of one turn."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.FINISHED, StreamState.ERRORED, StreamState.ABORTED)


class TurnRequest(BaseModel):
    """Everything a turn needs, captured when the message is sent.

    Attributes:
        input_text: Text of the user message (already defaulted when empty)
        attachments: Attachments that passed the capability filter
        history: Conversation before this turn, in order
        model: Catalogue entry the turn is sent to
        parameters: Snapshot of the session's sampling parameters
    """

    model_config = ConfigDict(frozen=True)

    input_text: str
    attachments: tuple[Attachment, ...] = ()
    history: tuple[Message, ...] = ()
    model: Model
    parameters: ModelParameters = Field(default_factory=ModelParameters)


def _history_messages(history: Sequence[Message]) -> list[ChatMessage]:
    # Assistant placeholders left empty by an aborted or failed turn carry nothing
    return [
        m.to_chat_message()
        for m in history
        if not (m.role == "assistant" and not m.text)
    ]


def _request_parameters(parameters: ModelParameters) -> ModelParameters:
    if parameters.temperature is None:
        return parameters.model_copy(update={"temperature": DEFAULT_TEMPERATURE})
    return parameters


class ChatTurn:
    """One in-flight turn, iterated for its chat events.

    The event stream can be consumed once. ``state`` reflects how far the
    turn got and is terminal after iteration ends.
    """

    def __init__(
        self,
        orchestrator: "ChatOrchestrator",
        request: TurnRequest,
        signal: AbortSignal,
    ):
        self._orchestrator = orchestrator
        self.request = request
        self.signal = signal
        self.state = StreamState.IDLE
        self.error: ChatError | None = None
        self._started = False

    def __aiter__(self) -> AsyncIterator[ChatEvent]:
        return self.events()

    def _build_transcript(self, tools: ToolRegistry) -> tuple[list[ChatMessage], Message]:
        request = self.request
        tool_names = tools.names() if request.model.tool_use else []
        system = ChatMessage(
            role="system",
            content=build_system_prompt(request.parameters.system_prompt, tool_names),
        )
        user = create_user_message(request.input_text, list(request.attachments))
        return [system, *_history_messages(request.history), user.to_chat_message()], user

    def _fail(self, error: Exception) -> list[ChatEvent]:
        self.state = StreamState.ERRORED
        self.error = ChatError(message=format_error(error), error=error)
        logger.error("turn_failed", model=self.request.model.id, error=str(error))
        return [
            ChatEvent(type=ChatEventType.STREAMING, data=False),
            ChatEvent(type=ChatEventType.ERROR, data=self.error),
        ]

    def _abort(self) -> list[ChatEvent]:
        self.state = StreamState.ABORTED
        logger.info("turn_aborted", model=self.request.model.id)
        return [ChatEvent(type=ChatEventType.STREAMING, data=False)]

    async def events(self) -> AsyncIterator[ChatEvent]:
        """Run the turn, yielding chat events in order.

        Yields:
            The user message, ``streaming=True``, the assistant placeholder,
            then one event per observable change, ending with
            ``streaming=False`` (followed by an ``error`` event on failure)
        """
        if self._started:
            raise RuntimeError("A chat turn can only be iterated once")
        self._started = True

        orchestrator = self._orchestrator
        request = self.request
        model = request.model

        if not orchestrator.validate_input(request.input_text, request.attachments):
            logger.info("turn_skipped", reason="no input or attachments")
            return

        self.state = StreamState.REQUESTING
        logger.info("turn_started", model=model.id, provider=model.provider)

        try:
            tools = orchestrator.build_tools()
            transcript, user_message = self._build_transcript(tools)
        except Exception as e:
            for event in self._fail(e):
                yield event
            return

        yield ChatEvent(type=ChatEventType.MESSAGE, data=user_message)
        yield ChatEvent(type=ChatEventType.STREAMING, data=True)

        placeholder = create_assistant_placeholder()
        processor = StreamProcessor(placeholder)

        try:
            provider, endpoint = orchestrator.provider_factory(model, orchestrator.secrets)
        except Exception as e:
            for event in self._fail(e):
                yield event
            return

        yield ChatEvent(type=ChatEventType.MESSAGE, data=placeholder)

        tool_choice = resolve_tool_choice(model)
        terminal: list[ChatEvent] = []
        try:
            async with provider:
                stream = stream_text(
                    provider,
                    transcript,
                    tools=tools if model.tool_use else None,
                    tool_choice=tool_choice,
                    parameters=_request_parameters(request.parameters),
                    options=endpoint.options,
                    max_steps=orchestrator.max_steps,
                    retry_policy=orchestrator.retry_policy,
                    signal=self.signal,
                )
                async with aclosing(iterate_with_abort(stream, self.signal)) as parts:
                    async for part in parts:
                        if self.state is StreamState.REQUESTING:
                            self.state = StreamState.STREAMING

                        if isinstance(part, ErrorPart):
                            terminal = self._fail(part.error)
                            break

                        for event in processor.process(part):
                            yield event

                        if isinstance(part, FinishPart):
                            self.state = StreamState.FINISHED
                            logger.info(
                                "turn_finished",
                                model=model.id,
                                finish_reason=part.finish_reason,
                                total_tokens=part.usage.total_tokens,
                            )
                            terminal = [ChatEvent(type=ChatEventType.STREAMING, data=False)]
                            break
                    else:
                        if self.signal.aborted:
                            terminal = self._abort()
                        else:
                            # The step loop only ends without a finish part when aborted
                            self.state = StreamState.FINISHED
                            terminal = [ChatEvent(type=ChatEventType.STREAMING, data=False)]
        except Exception as e:
            terminal = self._abort() if self.signal.aborted else self._fail(e)

        for event in terminal:
            yield event


class ChatOrchestrator:
    """Builds and runs turns against the configured providers and tools.

    Args:
        secrets: Store provider and search API keys are read from
        network_tools: Stateless search tools offered on every turn
        sandbox_session: Sandbox the filesystem and process tools are bound to
        provider_factory: Creates the provider for a model
        retry_policy: Retry applied to opening each provider step
        max_steps: Maximum model/tool round trips per turn
    """

    def __init__(
        self,
        secrets: SecretStore,
        *,
        network_tools: Sequence[BaseTool] = (),
        sandbox_session: SandboxSession | None = None,
        provider_factory: ProviderFactory = create_llm_provider,
        retry_policy: RetryPolicy | None = None,
        max_steps: int = MAX_STEPS,
    ):
        self.secrets = secrets
        self.network_tools = list(network_tools)
        self.sandbox_session = sandbox_session
        self.provider_factory = provider_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_steps = max_steps

    @staticmethod
    def validate_input(input_text: str, attachments: Sequence[Attachment]) -> bool:
        """A turn needs non-blank text or at least one attachment."""
        return bool(input_text.strip()) or len(attachments) > 0

    def build_tools(self) -> ToolRegistry:
        """Merge the network and sandbox tools for one turn."""
        return build_tool_registry(self.network_tools, self.sandbox_session)

    def start_turn(self, request: TurnRequest, signal: AbortSignal) -> ChatTurn:
        """Prepare a turn. Nothing is sent until its events are iterated."""
        return ChatTurn(self, request, signal)
