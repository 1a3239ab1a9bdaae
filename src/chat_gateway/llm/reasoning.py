"""Split model output into answer and reasoning channels.

Models emit their reasoning inline, wrapped in ``<think>...</think>``.
When streaming, a marker can be cut anywhere by chunking (``"<thi"`` +
``"nk>"``), so the segmenter keeps a small carry-over: the longest tail of
the text seen so far that could still be the start of the awaited marker.
Everything before that tail is classified and released immediately.

Content is never reordered; markers are dropped and the text between them
is relabelled.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from chat_gateway.types import ReasoningState

_logger = logging.getLogger(__name__)

OPEN_MARKER = "<think>"
CLOSE_MARKER = "</think>"


class Segment(NamedTuple):
    """A run of text and the channel it belongs to."""

    state: ReasoningState
    text: str


def _partial_marker_len(text: str, marker: str) -> int:
    """Length of the longest suffix of *text* that is a proper prefix of *marker*."""
    for k in range(min(len(marker) - 1, len(text)), 0, -1):
        if marker.startswith(text[-k:]):
            return k
    return 0


class ReasoningSegmenter:
    """Stateful classifier over successive content deltas.

    States:
      ANSWERING - text goes to the answer; watching for the open marker
      REASONING - text goes to reasoning; watching for the close marker
    """

    def __init__(
        self,
        open_marker: str = OPEN_MARKER,
        close_marker: str = CLOSE_MARKER,
    ) -> None:
        if not open_marker or not close_marker:
            raise ValueError("reasoning markers must be non-empty")
        self.open_marker = open_marker
        self.close_marker = close_marker
        self.state = ReasoningState.ANSWERING
        self._carry = ""

    @property
    def _awaited(self) -> str:
        if self.state is ReasoningState.ANSWERING:
            return self.open_marker
        return self.close_marker

    @property
    def pending(self) -> str:
        """Text held back because it may be the start of a marker."""
        return self._carry

    @property
    def unterminated(self) -> bool:
        return self.state is ReasoningState.REASONING

    def feed(self, delta: str) -> list[Segment]:
        """Classify *delta*; returns the segments that are now certain."""
        out: list[Segment] = []
        text = self._carry + delta
        self._carry = ""

        while text:
            marker = self._awaited
            idx = text.find(marker)
            if idx >= 0:
                _append(out, self.state, text[:idx])
                text = text[idx + len(marker):]
                self.state = (
                    ReasoningState.REASONING
                    if self.state is ReasoningState.ANSWERING
                    else ReasoningState.ANSWERING
                )
                continue
            keep = _partial_marker_len(text, marker)
            _append(out, self.state, text[:len(text) - keep])
            self._carry = text[len(text) - keep:]
            break

        return out

    def finish(self) -> list[Segment]:
        """Flush the carry-over at end of input.

        A held-back partial marker is plain text after all.  The caller
        decides how to report ``unterminated``.
        """
        out: list[Segment] = []
        _append(out, self.state, self._carry)
        self._carry = ""
        if self.unterminated:
            _logger.debug("Input ended inside a reasoning block")
        return out


def _append(out: list[Segment], state: ReasoningState, text: str) -> None:
    if not text:
        return
    if out and out[-1].state is state:
        out[-1] = Segment(state, out[-1].text + text)
    else:
        out.append(Segment(state, text))


def join_segments(segments: list[Segment]) -> tuple[str, str | None]:
    """Concatenate segments per channel; reasoning is None if never entered."""
    answer = "".join(s.text for s in segments if s.state is ReasoningState.ANSWERING)
    reasoning_parts = [s.text for s in segments if s.state is ReasoningState.REASONING]
    return answer, ("".join(reasoning_parts) if reasoning_parts else None)


def split_reasoning(
    text: str,
    open_marker: str = OPEN_MARKER,
    close_marker: str = CLOSE_MARKER,
) -> tuple[str, str | None, bool]:
    """Run the segmenter once over a whole response.

    Returns ``(answer, reasoning, unterminated)``.
    """
    segmenter = ReasoningSegmenter(open_marker, close_marker)
    segments = segmenter.feed(text) + segmenter.finish()
    answer, reasoning = join_segments(segments)
    return answer, reasoning, segmenter.unterminated
