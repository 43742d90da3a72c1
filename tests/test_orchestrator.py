"""Tests for turn orchestration."""
import asyncio

import pytest

from conftest import ScriptedProvider, text_step
from sandchat.chat import ChatEventType, ChatOrchestrator, StreamState, TurnRequest
from sandchat.chat.cancellation import AbortController
from sandchat.chat.models import ImagePart, Message, create_assistant_placeholder, create_user_message
from sandchat.config import DEFAULT_TEMPERATURE
from sandchat.errors import APICallError, AuthenticationError
from sandchat.llm.models import ModelParameters, StepFinishPart, TextDeltaPart, ToolCallPart, Usage


async def _run(orchestrator: ChatOrchestrator, request: TurnRequest, controller=None):
    controller = controller or AbortController()
    turn = orchestrator.start_turn(request, controller.signal)
    events = [event async for event in turn]
    return turn, events


def _types(events) -> list[ChatEventType]:
    return [event.type for event in events]


def _last_message(events) -> Message:
    return [e.data for e in events if e.type is ChatEventType.MESSAGE][-1]


class TestChatTurn:
    """Tests for a single turn."""

    async def test_plain_model_turn(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("Hi ", "there", prompt_tokens=4, completion_tokens=2, total_tokens=6)])
        orchestrator = make_orchestrator(provider)

        turn, events = await _run(orchestrator, TurnRequest(input_text="hello", model=plain_model))

        assert turn.state is StreamState.FINISHED
        assert events[0].type is ChatEventType.MESSAGE
        assert events[0].data.role == "user"
        assert events[0].data.content == "hello"
        assert events[1].type is ChatEventType.STREAMING and events[1].data is True
        assert events[2].data.role == "assistant"
        assert events[2].data.content == ""
        assert _types(events)[-3:] == [ChatEventType.USAGE, ChatEventType.FINISH, ChatEventType.STREAMING]
        assert events[-1].data is False

        assistant_ids = {e.data.id for e in events if e.type is ChatEventType.MESSAGE and e.data.role == "assistant"}
        assert len(assistant_ids) == 1
        assert _last_message(events).content == "Hi there"
        assert events[-3].data == Usage(prompt_tokens=4, completion_tokens=2, total_tokens=6)

        call = provider.calls[0]
        assert call["tool_choice"] == "none"
        assert call["tools"] is None
        assert provider.closed

    async def test_transcript_layout(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        history = (
            create_user_message("first"),
            Message(role="assistant", content="first answer"),
        )
        request = TurnRequest(
            input_text="second",
            history=history,
            model=plain_model,
            parameters=ModelParameters(system_prompt="Be brief."),
        )
        await _run(make_orchestrator(provider), request)

        messages = provider.calls[0]["messages"]
        assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[0].content == "Be brief."
        assert messages[-1].content == "second"

    async def test_empty_assistant_messages_are_left_out_of_history(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        history = (create_user_message("first"), create_assistant_placeholder())
        await _run(make_orchestrator(provider), TurnRequest(input_text="again", history=history, model=plain_model))

        assert [m.role for m in provider.calls[0]["messages"]] == ["system", "user", "user"]

    async def test_tool_model_gets_tools_and_prompt_lists_them(self, make_orchestrator, tool_model):
        provider = ScriptedProvider([text_step("ok")])
        await _run(make_orchestrator(provider), TurnRequest(input_text="list files", model=tool_model))

        call = provider.calls[0]
        assert call["tool_choice"] == "auto"
        tool_names = {spec["name"] for spec in call["tools"]}
        assert {"read_file", "write_file", "spawn_process"} <= tool_names
        assert "- read_file" in call["messages"][0].content

    async def test_plain_model_prompt_does_not_list_tools(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        await _run(make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model))
        assert "read_file" not in provider.calls[0]["messages"][0].content

    async def test_tool_call_writes_to_sandbox(self, make_orchestrator, tool_model, sandbox_session):
        provider = ScriptedProvider([
            [ToolCallPart(tool_call_id="c1", tool_name="write_file", args={"path": "/notes.txt", "content": "todo"}),
             StepFinishPart(finish_reason="tool-calls")],
            text_step("Saved."),
        ])
        turn, events = await _run(make_orchestrator(provider), TurnRequest(input_text="save", model=tool_model))

        assert turn.state is StreamState.FINISHED
        final = _last_message(events)
        assert final.content == "Saved."
        assert final.tool_calls[0].tool_name == "write_file"
        assert final.tool_calls[0].result == {"success": True}
        assert await sandbox_session.fs.read_file("/notes.txt") == "todo"

    async def test_attachments_make_user_message_multi_part(self, make_orchestrator, tool_model):
        provider = ScriptedProvider([text_step("A cat.")])
        image = ImagePart(image="aW1n")
        _, events = await _run(
            make_orchestrator(provider),
            TurnRequest(input_text="what is this?", attachments=(image,), model=tool_model),
        )

        user = events[0].data
        assert user.content[1] == image
        assert provider.calls[0]["messages"][-1].content[1] == image

    async def test_missing_temperature_uses_default(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        request = TurnRequest(input_text="hi", model=plain_model, parameters=ModelParameters(temperature=None))
        await _run(make_orchestrator(provider), request)
        assert provider.calls[0]["parameters"].temperature == DEFAULT_TEMPERATURE

    async def test_explicit_temperature_is_kept(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        request = TurnRequest(input_text="hi", model=plain_model, parameters=ModelParameters(temperature=0.0))
        await _run(make_orchestrator(provider), request)
        assert provider.calls[0]["parameters"].temperature == 0.0

    @pytest.mark.parametrize("text", ["", "   \n"])
    async def test_blank_input_without_attachments_is_a_no_op(self, make_orchestrator, plain_model, text):
        provider = ScriptedProvider([])
        turn, events = await _run(make_orchestrator(provider), TurnRequest(input_text=text, model=plain_model))

        assert events == []
        assert turn.state is StreamState.IDLE
        assert provider.calls == []

    async def test_events_can_only_be_consumed_once(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("ok")])
        turn, _ = await _run(make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model))
        with pytest.raises(RuntimeError):
            async for _ in turn:
                pass


class TestTurnErrors:
    """Tests for error handling inside a turn."""

    async def test_authentication_error(self, make_orchestrator, plain_model):
        error = AuthenticationError("Invalid API key", status_code=401)
        provider = ScriptedProvider([error])
        turn, events = await _run(make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model))

        assert turn.state is StreamState.ERRORED
        assert _types(events)[-2:] == [ChatEventType.STREAMING, ChatEventType.ERROR]
        assert events[-2].data is False
        chat_error = events[-1].data
        assert chat_error.error is error
        assert chat_error.message.startswith("API Error: Invalid API key")
        assert "not retryable" in chat_error.message
        assert _types(events).count(ChatEventType.ERROR) == 1
        assert provider.closed

    async def test_partial_content_survives_mid_stream_error(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([
            [TextDeltaPart(text_delta="Partial "), TextDeltaPart(text_delta="answer"),
             APICallError("connection reset")],
        ])
        turn, events = await _run(make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model))

        assert turn.state is StreamState.ERRORED
        assert _last_message(events).content == "Partial answer"
        assert ChatEventType.FINISH not in _types(events)

    async def test_retryable_error_recovers(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([APICallError("overloaded", status_code=529), text_step("fine")])
        turn, events = await _run(make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model))

        assert turn.state is StreamState.FINISHED
        assert ChatEventType.ERROR not in _types(events)
        assert len(provider.calls) == 2

    async def test_provider_factory_failure(self, secrets, plain_model):
        def factory(model, store):
            raise ValueError("no provider")

        orchestrator = ChatOrchestrator(secrets, provider_factory=factory)
        turn, events = await _run(orchestrator, TurnRequest(input_text="hi", model=plain_model))

        assert turn.state is StreamState.ERRORED
        assert _types(events) == [
            ChatEventType.MESSAGE,
            ChatEventType.STREAMING,
            ChatEventType.STREAMING,
            ChatEventType.ERROR,
        ]
        assert events[-1].data.message == "Error: no provider"


class TestTurnAbort:
    """Tests for aborting a turn."""

    async def test_abort_mid_stream(self, make_orchestrator, plain_model):
        gate = asyncio.Event()
        provider = ScriptedProvider([[TextDeltaPart(text_delta="Once upon"), gate, TextDeltaPart(text_delta=" a time")]])
        controller = AbortController()
        turn = make_orchestrator(provider).start_turn(
            TurnRequest(input_text="story", model=plain_model), controller.signal
        )

        events = []
        async for event in turn:
            events.append(event)
            if event.type is ChatEventType.MESSAGE and event.data.content == "Once upon":
                controller.abort("stopped by user")

        assert turn.state is StreamState.ABORTED
        assert ChatEventType.ERROR not in _types(events)
        assert events[-1].type is ChatEventType.STREAMING and events[-1].data is False
        assert _last_message(events).content == "Once upon"
        assert provider.closed

    async def test_aborted_before_start(self, make_orchestrator, plain_model):
        provider = ScriptedProvider([text_step("never")])
        controller = AbortController()
        controller.abort()
        turn, events = await _run(
            make_orchestrator(provider), TurnRequest(input_text="hi", model=plain_model), controller
        )

        assert turn.state is StreamState.ABORTED
        assert ChatEventType.ERROR not in _types(events)
        assert provider.calls == []
