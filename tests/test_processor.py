"""Unit tests for StreamProcessor."""
from hypothesis import given
from hypothesis import strategies as st

from sandchat.chat.models import ChatEventType, Message, create_assistant_placeholder
from sandchat.chat.processor import StreamProcessor
from sandchat.llm.models import (
    FinishPart,
    ReasoningPart,
    SourcePart,
    StepFinishPart,
    TextDeltaPart,
    ToolCallPart,
    ToolResultPart,
    Usage,
)


def _messages(events) -> list[Message]:
    return [e.data for e in events if e.type is ChatEventType.MESSAGE]


class TestStreamProcessor:
    """Tests for applying stream parts to the assistant draft."""

    def test_text_deltas_accumulate(self):
        processor = StreamProcessor(create_assistant_placeholder())
        processor.process(TextDeltaPart(text_delta="Hel"))
        events = processor.process(TextDeltaPart(text_delta="lo"))
        assert _messages(events)[-1].content == "Hello"

    def test_snapshots_keep_placeholder_identity(self):
        placeholder = create_assistant_placeholder()
        processor = StreamProcessor(placeholder)
        snapshot = _messages(processor.process(TextDeltaPart(text_delta="x")))[0]
        assert snapshot.id == placeholder.id
        assert snapshot.timestamp == placeholder.timestamp
        assert snapshot.role == "assistant"

    def test_earlier_snapshots_are_not_mutated(self):
        processor = StreamProcessor(create_assistant_placeholder())
        first = _messages(processor.process(TextDeltaPart(text_delta="a")))[0]
        processor.process(TextDeltaPart(text_delta="b"))
        assert first.content == "a"

    def test_think_markers_route_to_reasoning(self):
        processor = StreamProcessor(create_assistant_placeholder())
        for delta in ["<think>", "some reasoning", "</think>", "answer"]:
            processor.process(TextDeltaPart(text_delta=delta))
        final = _messages(processor.process(FinishPart()))[0]
        assert final.reasoning == "some reasoning"
        assert final.content == "answer"

    def test_native_reasoning_channel(self):
        processor = StreamProcessor(create_assistant_placeholder())
        processor.process(ReasoningPart(text_delta="step 1. "))
        events = processor.process(ReasoningPart(text_delta="step 2."))
        assert _messages(events)[0].reasoning == "step 1. step 2."
        assert _messages(events)[0].content == ""

    def test_tool_call_is_pending_without_events(self):
        processor = StreamProcessor(create_assistant_placeholder())
        call = ToolCallPart(tool_call_id="c1", tool_name="read_file", args={"path": "/a"})
        assert processor.process(call) == []
        assert processor.pending_tool_calls == [call]

    def test_tool_results_append_in_arrival_order(self):
        processor = StreamProcessor(create_assistant_placeholder())
        processor.process(ToolCallPart(tool_call_id="c1", tool_name="read_file"))
        processor.process(ToolCallPart(tool_call_id="c2", tool_name="exists"))
        processor.process(ToolResultPart(tool_call_id="c1", tool_name="read_file", result="text"))
        events = processor.process(
            ToolResultPart(tool_call_id="c2", tool_name="exists", result={"exists": True})
        )

        records = _messages(events)[0].tool_calls
        assert [r.tool_name for r in records] == ["read_file", "exists"]
        assert records[1].result == {"exists": True}
        assert processor.pending_tool_calls == []

    def test_finish_emits_message_usage_finish(self):
        processor = StreamProcessor(create_assistant_placeholder())
        usage = Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5)
        events = processor.process(FinishPart(finish_reason="stop", usage=usage))
        assert [e.type for e in events] == [
            ChatEventType.MESSAGE,
            ChatEventType.USAGE,
            ChatEventType.FINISH,
        ]
        assert events[1].data == usage
        assert events[2].data == "stop"

    def test_finish_flushes_held_back_text(self):
        processor = StreamProcessor(create_assistant_placeholder())
        processor.process(TextDeltaPart(text_delta="x <thi"))
        final = _messages(processor.process(FinishPart()))[0]
        assert final.content == "x <thi"

    def test_source_is_forwarded_without_changing_message(self):
        processor = StreamProcessor(create_assistant_placeholder())
        source = {"url": "https://example.com", "title": "Example"}
        events = processor.process(SourcePart(source=source))
        assert len(events) == 1
        assert events[0].type is ChatEventType.SOURCE
        assert events[0].data == source
        assert processor.snapshot().content == ""

    def test_step_finish_is_ignored(self):
        processor = StreamProcessor(create_assistant_placeholder())
        assert processor.process(StepFinishPart()) == []


parts = st.one_of(
    st.text(max_size=8).map(lambda t: TextDeltaPart(text_delta=t)),
    st.sampled_from(["<think>", "</think>", "<th", "ink>"]).map(lambda t: TextDeltaPart(text_delta=t)),
    st.text(max_size=8).map(lambda t: ReasoningPart(text_delta=t)),
    st.integers(min_value=0, max_value=99).map(
        lambda i: ToolResultPart(tool_call_id=f"c{i}", tool_name="exists", result=i)
    ),
)


@given(st.lists(parts, max_size=30))
def test_snapshots_grow_monotonically(stream):
    """Property test: content, reasoning and tool calls never shrink during a stream."""
    processor = StreamProcessor(create_assistant_placeholder())
    snapshots = []
    for part in stream:
        snapshots.extend(_messages(processor.process(part)))
    snapshots.extend(_messages(processor.process(FinishPart())))

    for before, after in zip(snapshots, snapshots[1:]):
        assert len(after.content) >= len(before.content)
        assert len(after.reasoning) >= len(before.reasoning)
        assert len(after.tool_calls) >= len(before.tool_calls)
        assert after.tool_calls[:len(before.tool_calls)] == before.tool_calls
