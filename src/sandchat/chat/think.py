"""Incremental scanner splitting inline <think> blocks out of a text stream.

Open models served through OpenAI-compatible endpoints often inline their
reasoning as ``<think>...</think>`` inside the ordinary text deltas. A
marker may be split across any number of deltas, so the scanner keeps back
the trailing text that could still be the start of a marker until the next
delta decides it.
"""

from typing import Literal

from ..config import THINK_CLOSE, THINK_OPEN

Channel = Literal["content", "reasoning"]


def _partial_marker_length(text: str, marker: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``marker``."""
    for length in range(min(len(text), len(marker) - 1), 0, -1):
        if text.endswith(marker[:length]):
            return length
    return 0


class ThinkBlockScanner:
    """Route text deltas to the content or reasoning channel."""

    def __init__(self, open_marker: str = THINK_OPEN, close_marker: str = THINK_CLOSE):
        self._open = open_marker
        self._close = close_marker
        self._in_think = False
        self._buffer = ""

    @property
    def in_think(self) -> bool:
        return self._in_think

    @property
    def pending(self) -> str:
        """Text held back because it may be the start of a marker."""
        return self._buffer

    def _channel(self) -> Channel:
        return "reasoning" if self._in_think else "content"

    def feed(self, delta: str) -> list[tuple[Channel, str]]:
        """Consume one delta.

        Returns:
            (channel, text) segments that are now certain, in stream order
        """
        self._buffer += delta
        segments: list[tuple[Channel, str]] = []

        while self._buffer:
            marker = self._close if self._in_think else self._open
            index = self._buffer.find(marker)
            if index >= 0:
                if index:
                    segments.append((self._channel(), self._buffer[:index]))
                self._buffer = self._buffer[index + len(marker):]
                self._in_think = not self._in_think
                continue

            held = _partial_marker_length(self._buffer, marker)
            certain = self._buffer[:len(self._buffer) - held]
            if certain:
                segments.append((self._channel(), certain))
            self._buffer = self._buffer[len(self._buffer) - held:]
            break

        return segments

    def flush(self) -> list[tuple[Channel, str]]:
        """Release held-back text at the end of the stream."""
        if not self._buffer:
            return []
        segment = (self._channel(), self._buffer)
        self._buffer = ""
        return [segment]
