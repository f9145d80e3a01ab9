"""
Split an assistant buffer into its thinking segment and visible answer.

The split is recomputed from the full accumulated buffer on every chunk, so a
marker that arrived split across two chunks is found once the second half
lands, and no state is carried between calls.
"""

from __future__ import annotations

from dataclasses import dataclass

THINK_START = "<think>"
THINK_END = "</think>"


@dataclass(frozen=True)
class ThoughtSplit:
    thoughts: str
    answer: str
    is_thinking_open: bool
    has_open_marker: bool
    has_close_marker: bool

    @property
    def thinking_ended(self) -> bool:
        """A close marker with no opening one: reasoning finished upstream."""
        return self.has_close_marker and not self.has_open_marker


def split_thought_and_answer(
    text: str,
    open_marker: str = THINK_START,
    close_marker: str = THINK_END,
) -> ThoughtSplit:
    """
    Only the first marker pair is honoured; later markers stay literal text
    in whichever segment they fall.
    """
    start = text.find(open_marker)
    if start == -1:
        return ThoughtSplit(
            thoughts="",
            answer=text,
            is_thinking_open=False,
            has_open_marker=False,
            has_close_marker=close_marker in text,
        )

    body_start = start + len(open_marker)
    end = text.find(close_marker, body_start)
    if end == -1:
        return ThoughtSplit(
            thoughts=text[body_start:],
            answer=text[:start],
            is_thinking_open=True,
            has_open_marker=True,
            has_close_marker=False,
        )

    return ThoughtSplit(
        thoughts=text[body_start:end],
        answer=text[:start] + text[end + len(close_marker):],
        is_thinking_open=False,
        has_open_marker=True,
        has_close_marker=True,
    )
