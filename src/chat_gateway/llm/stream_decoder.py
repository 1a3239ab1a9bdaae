"""Incremental decoders turning raw stream chunks into response frames.

Chunk boundaries are arbitrary: a chunk may end mid-line, mid-event or
mid-character.  Each decoder keeps the undecoded tail between ``feed()``
calls and yields a :class:`ResponseFrame` as soon as one is complete.

A malformed frame is fatal.  The decoder raises and refuses further
input instead of skipping ahead, so no content is dropped silently.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Generator

from chat_gateway.errors import MalformedFrameError, TruncatedStreamError
from chat_gateway.types import ProviderKind, ResponseFrame

from .usage import token_count

_logger = logging.getLogger(__name__)


class _FrameDecoder:
    """Shared bookkeeping for the concrete decoders."""

    def __init__(self) -> None:
        self.finished = False
        self._failed = False

    def _check_open(self) -> None:
        if self._failed:
            raise RuntimeError("decoder already failed; no further input accepted")

    def _fail(self, raw: str, reason: str) -> MalformedFrameError:
        self._failed = True
        return MalformedFrameError(raw, reason)

    def feed(self, chunk: bytes) -> Generator[ResponseFrame, None, None]:
        raise NotImplementedError

    def finish(self) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# NDJSON (LocalChat)
# ---------------------------------------------------------------------------

class NdjsonFrameDecoder(_FrameDecoder):
    """One JSON object per ``\\n``-terminated line.

    ``{"message": {"content": ...}, "done": false}`` frames carry text; the
    final ``done`` frame carries ``prompt_eval_count`` / ``eval_count``.
    """

    def __init__(self) -> None:
        super().__init__()
        self._buffer = b""

    def feed(self, chunk: bytes) -> Generator[ResponseFrame, None, None]:
        self._check_open()
        self._buffer += chunk
        while not self.finished:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = self._buffer[:idx]
            self._buffer = self._buffer[idx + 1:]
            if not line.strip():
                continue
            yield self._parse(line)

    def _parse(self, line: bytes) -> ResponseFrame:
        text = line.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise self._fail(text, str(e)) from e
        if not isinstance(data, dict):
            raise self._fail(text, "expected a JSON object")
        if "error" in data:
            raise self._fail(text, f"provider error: {data['error']}")

        message = data.get("message")
        content = None
        if message is not None:
            if not isinstance(message, dict):
                raise self._fail(text, "'message' must be an object")
            content = message.get("content")
            if content is not None and not isinstance(content, str):
                raise self._fail(text, "'message.content' must be a string")

        is_terminal = bool(data.get("done")) or message is None
        if data.get("done"):
            self.finished = True
        return ResponseFrame(
            content_delta=content,
            prompt_tokens=token_count(data, "prompt_eval_count"),
            completion_tokens=token_count(data, "eval_count"),
            is_terminal=is_terminal,
        )

    def finish(self) -> None:
        remainder = self._buffer.decode("utf-8", errors="replace")
        self._buffer = b""
        if remainder.strip():
            raise TruncatedStreamError(remainder)


# ---------------------------------------------------------------------------
# SSE (CompatibleChat)
# ---------------------------------------------------------------------------

_DONE = "[DONE]"


class SseFrameDecoder(_FrameDecoder):
    """Server-Sent-Events chat-completion-chunk stream.

    Events are separated by a blank line; ``data:`` lines within one event
    are joined with ``\\n``.  ``data: [DONE]`` ends the stream.
    """

    def __init__(self) -> None:
        super().__init__()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> Generator[ResponseFrame, None, None]:
        self._check_open()
        self._buffer += self._utf8.decode(chunk)
        self._buffer = self._buffer.replace("\r\n", "\n")
        while not self.finished:
            idx = self._buffer.find("\n\n")
            if idx < 0:
                break
            event = self._buffer[:idx]
            self._buffer = self._buffer[idx + 2:]
            frame = self._parse_event(event)
            if frame is not None:
                yield frame

    def _parse_event(self, event: str) -> ResponseFrame | None:
        data_lines = []
        for line in event.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if name == "data":
                data_lines.append(value)
        if not data_lines:
            return None

        data_str = "\n".join(data_lines)
        if data_str.strip() == _DONE:
            self.finished = True
            return ResponseFrame(is_terminal=True)

        try:
            data = json.loads(data_str)
        except json.JSONDecodeError as e:
            raise self._fail(data_str, str(e)) from e
        if not isinstance(data, dict):
            raise self._fail(data_str, "expected a JSON object")
        if "error" in data:
            raise self._fail(data_str, f"provider error: {data['error']}")

        content = None
        finish_reason = None
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise self._fail(data_str, "'choices' must be an array")
        if choices:
            choice = choices[0]
            if not isinstance(choice, dict):
                raise self._fail(data_str, "'choices[0]' must be an object")
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                raise self._fail(data_str, "'delta' must be an object")
            content = delta.get("content")
            if content is not None and not isinstance(content, str):
                raise self._fail(data_str, "'delta.content' must be a string")
            finish_reason = choice.get("finish_reason")

        usage = data.get("usage") or {}
        if not isinstance(usage, dict):
            raise self._fail(data_str, "'usage' must be an object")
        return ResponseFrame(
            content_delta=content,
            prompt_tokens=token_count(usage, "prompt_tokens"),
            completion_tokens=token_count(usage, "completion_tokens"),
            is_terminal=finish_reason is not None or not choices,
        )

    def finish(self) -> None:
        remainder = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        if remainder.strip():
            raise TruncatedStreamError(remainder)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def new_frame_decoder(kind: ProviderKind) -> _FrameDecoder:
    if kind is ProviderKind.LOCAL_CHAT:
        return NdjsonFrameDecoder()
    if kind is ProviderKind.COMPATIBLE_CHAT:
        return SseFrameDecoder()
    raise ValueError(f"Unhandled provider kind: {kind}")  # pragma: no cover


async def decode_frames(
    decoder: _FrameDecoder,
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[ResponseFrame]:
    """Lazily decode *chunks*; the next chunk is pulled only when needed."""
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
        if decoder.finished:
            _logger.debug("Stream finished by terminal frame")
            return
    decoder.finish()
