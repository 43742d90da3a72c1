"""Unit tests for the <think> block scanner."""
from hypothesis import given
from hypothesis import strategies as st

from sandchat.chat.think import ThinkBlockScanner

# No "<", so generated text can never contain a marker by accident
plain_text = st.text(alphabet="abc xyz/>think", max_size=30)


def _collect(chunks: list[str]) -> dict[str, str]:
    scanner = ThinkBlockScanner()
    out = {"content": "", "reasoning": ""}
    for chunk in chunks:
        for channel, text in scanner.feed(chunk):
            out[channel] += text
    for channel, text in scanner.flush():
        out[channel] += text
    return out


def _split(text: str, cuts: list[int]) -> list[str]:
    points = sorted({c % (len(text) + 1) for c in cuts})
    pieces, start = [], 0
    for point in points:
        pieces.append(text[start:point])
        start = point
    pieces.append(text[start:])
    return pieces


class TestThinkBlockScanner:
    """Tests for ThinkBlockScanner."""

    def test_whole_markers_in_separate_deltas(self):
        out = _collect(["<think>", "some reasoning", "</think>", "answer"])
        assert out == {"content": "answer", "reasoning": "some reasoning"}

    def test_markers_split_across_deltas(self):
        out = _collect(["<th", "ink>rea", "son</thi", "nk>ans", "wer"])
        assert out == {"content": "answer", "reasoning": "reason"}

    def test_one_character_at_a_time(self):
        text = "before<think>inner</think>after"
        out = _collect(list(text))
        assert out == {"content": "beforeafter", "reasoning": "inner"}

    def test_text_without_markers_passes_through(self):
        scanner = ThinkBlockScanner()
        assert scanner.feed("hello") == [("content", "hello")]
        assert scanner.flush() == []

    def test_partial_marker_is_held_back(self):
        scanner = ThinkBlockScanner()
        assert scanner.feed("a<thi") == [("content", "a")]
        assert scanner.pending == "<thi"
        assert scanner.feed("ng") == [("content", "<thing")]

    def test_unfinished_marker_is_flushed_as_text(self):
        scanner = ThinkBlockScanner()
        scanner.feed("tail <thi")
        assert scanner.flush() == [("content", "<thi")]

    def test_unclosed_block_stays_in_reasoning(self):
        scanner = ThinkBlockScanner()
        assert scanner.feed("<think>still thinking") == [("reasoning", "still thinking")]
        assert scanner.in_think

    def test_lone_angle_bracket_is_content(self):
        assert _collect(["a < b"]) == {"content": "a < b", "reasoning": ""}

    @given(plain_text, plain_text, plain_text, st.lists(st.integers(min_value=0), max_size=10))
    def test_any_chunking_gives_same_result(self, before, inner, after, cuts):
        """Property test: routing does not depend on where deltas are split."""
        text = f"{before}<think>{inner}</think>{after}"
        out = _collect(_split(text, cuts))
        assert out == {"content": before + after, "reasoning": inner}
