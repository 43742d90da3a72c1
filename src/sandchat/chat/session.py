"""The live conversation: state, send/stop and subscriptions."""

import inspect
from collections.abc import Callable, Sequence
from contextlib import aclosing
from typing import Any

import structlog

from ..config import ATTACHMENT_DROPPED_WARNING, EMPTY_INPUT_FALLBACK
from ..credentials import SecretStore
from ..llm.catalog import Model, default_model, get_model
from ..llm.models import ModelParameters
from ..sandbox import SandboxSession
from ..tools.base import BaseTool
from .attachments import filter_attachments_by_model
from .cancellation import AbortController
from .models import Attachment, ChatError, ChatEvent, ChatEventType
from .orchestrator import ChatOrchestrator, TurnRequest
from .state import ChatState, apply_event

logger = structlog.get_logger(__name__)

Listener = Callable[[ChatEvent | None, ChatState], None]
"""Called after every state change with the triggering event (None for local edits)."""

WarningCallback = Callable[[str], Any]
ErrorCallback = Callable[[ChatError], Any]


async def _call(callback: Callable[[Any], Any] | None, arg: Any) -> None:
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


class ChatSession:
    """One conversation and the only writer of its state.

    Args:
        secrets: Store provider and search API keys are read from
        sandbox_session: Sandbox the sandbox tools operate on
        network_tools: Search tools offered on every turn
        model: Model for new turns (defaults to the first catalogue entry)
        parameters: Sampling parameters for new turns
        orchestrator: Pre-built orchestrator (built from the arguments above when None)
        on_warning: Receives non-fatal warnings such as dropped attachments
        on_error: Receives the formatted error of a failed turn
    """

    def __init__(
        self,
        secrets: SecretStore,
        *,
        sandbox_session: SandboxSession | None = None,
        network_tools: Sequence[BaseTool] = (),
        model: Model | None = None,
        parameters: ModelParameters | None = None,
        orchestrator: ChatOrchestrator | None = None,
        on_warning: WarningCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self.secrets = secrets
        self.sandbox_session = sandbox_session
        self.model = model or default_model()
        self.parameters = parameters or ModelParameters()
        self.orchestrator = orchestrator or ChatOrchestrator(
            secrets,
            network_tools=network_tools,
            sandbox_session=sandbox_session,
        )
        self.on_warning = on_warning
        self.on_error = on_error

        self._state = ChatState()
        self._controller: AbortController | None = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state.is_streaming

    # Subscriptions

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, state: ChatState, event: ChatEvent | None = None) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(event, state)

    def _update(self, **changes: Any) -> None:
        self._commit(self._state.model_copy(update=changes))

    def _apply(self, event: ChatEvent) -> None:
        self._commit(apply_event(self._state, event), event)

    # Pending input

    def set_input_value(self, value: str) -> None:
        self._update(input_value=value)

    def add_attachment(self, attachment: Attachment) -> None:
        self._update(attachments=self._state.attachments + (attachment,))

    def remove_attachment(self, index: int) -> None:
        """Remove the pending attachment at ``index``; out-of-range indexes are ignored."""
        attachments = tuple(a for i, a in enumerate(self._state.attachments) if i != index)
        self._update(attachments=attachments)

    # Configuration, read when the next message is sent

    def set_model(self, model: Model | str) -> None:
        """Select the model for the next turn.

        Raises:
            KeyError: If a model id is not in the catalogue
        """
        self.model = get_model(model) if isinstance(model, str) else model
        logger.info("model_selected", model=self.model.id, provider=self.model.provider)

    def set_model_parameters(self, parameters: ModelParameters | None = None, **changes: Any) -> None:
        """Replace the sampling parameters, or update individual fields."""
        base = parameters or self.parameters
        self.parameters = base.model_copy(update=changes) if changes else base

    # Turns

    async def send_message(self) -> bool:
        """Send the pending input and attachments as a new turn.

        Returns when the turn has finished, failed or been stopped.

        Returns:
            False if nothing was sent (blank input without attachments, or a
            turn already streaming), True otherwise
        """
        state = self._state
        if not self.orchestrator.validate_input(state.input_value, state.attachments):
            return False
        if state.is_streaming:
            logger.debug("send_rejected", reason="already streaming")
            return False

        input_text = state.input_value
        if not input_text.strip():
            input_text = EMPTY_INPUT_FALLBACK

        model = self.model
        attachments = filter_attachments_by_model(list(state.attachments), model)
        dropped = len(state.attachments) - len(attachments)

        # The send is claimed before the first await so a concurrent send sees is_streaming
        controller = AbortController()
        self._controller = controller
        request = TurnRequest(
            input_text=input_text,
            attachments=tuple(attachments),
            history=state.messages,
            model=model,
            parameters=self.parameters.model_copy(),
        )
        self._update(input_value="", attachments=(), is_streaming=True)

        if dropped:
            logger.warning("attachments_dropped", model=model.id, dropped=dropped)
            await _call(self.on_warning, ATTACHMENT_DROPPED_WARNING)

        turn = self.orchestrator.start_turn(request, controller.signal)
        try:
            async with aclosing(turn.events()) as events:
                async for event in events:
                    if self._controller is not controller:
                        # Stopped or superseded; the turn's remaining events are stale
                        break
                    self._apply(event)
                    if event.type is ChatEventType.ERROR:
                        await _call(self.on_error, event.data)
        finally:
            if self._controller is controller:
                self._controller = None
                if self._state.is_streaming:
                    self._update(is_streaming=False)
        return True

    def stop_streaming(self) -> bool:
        """Abort the in-flight turn.

        Idempotent: without a turn in flight this is a no-op.

        Returns:
            True if a turn was aborted by this call
        """
        controller = self._controller
        if controller is None:
            return False
        self._controller = None
        aborted = controller.abort("stopped by user")
        self._apply(ChatEvent(type=ChatEventType.STREAMING, data=False))
        logger.info("streaming_stopped")
        return aborted

    def clear_chat(self) -> None:
        """Stop any turn in flight and forget the conversation."""
        if self._controller is not None:
            self.stop_streaming()
        self._update(messages=(), usage=None)

    async def close(self) -> None:
        """Stop streaming and release the sandbox session."""
        self.stop_streaming()
        if self.sandbox_session is not None:
            await self.sandbox_session.close()
