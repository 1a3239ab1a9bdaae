"""Tests for the NDJSON and SSE frame decoders."""

from __future__ import annotations

import json

import pytest

from chat_gateway.errors import MalformedFrameError, TruncatedStreamError
from chat_gateway.llm.stream_decoder import (
    NdjsonFrameDecoder,
    SseFrameDecoder,
    decode_frames,
    new_frame_decoder,
)
from chat_gateway.types import ProviderKind, ResponseFrame

from http_doubles import compat_chunk, local_chunk, ndjson, sse


def _feed_all(decoder, chunks: list[bytes]) -> list[ResponseFrame]:
    frames = []
    for chunk in chunks:
        frames.extend(decoder.feed(chunk))
    decoder.finish()
    return frames


def _rechunk(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


async def _aiter(chunks):
    for c in chunks:
        yield c


LOCAL_STREAM = b"".join(ndjson(
    local_chunk("Hel"),
    local_chunk("lo ü"),
    local_chunk("", done=True, prompt_eval_count=12, eval_count=5),
))

COMPAT_STREAM = b"".join(sse(
    compat_chunk("Hel"),
    compat_chunk("lo ü"),
    compat_chunk(None, finish_reason="stop"),
    {"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 2, "total_tokens": 11}},
    "[DONE]",
))


class TestNdjson:
    def test_frames(self):
        frames = _feed_all(NdjsonFrameDecoder(), [LOCAL_STREAM])
        assert [f.content_delta for f in frames] == ["Hel", "lo ü", ""]
        assert frames[-1].is_terminal
        assert frames[-1].prompt_tokens == 12
        assert frames[-1].completion_tokens == 5
        assert not frames[0].is_terminal
        assert frames[0].prompt_tokens is None

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64])
    def test_rechunking_is_transparent(self, size):
        whole = _feed_all(NdjsonFrameDecoder(), [LOCAL_STREAM])
        split = _feed_all(NdjsonFrameDecoder(), _rechunk(LOCAL_STREAM, size))
        assert split == whole

    def test_frame_without_message_is_terminal(self):
        frames = _feed_all(NdjsonFrameDecoder(), ndjson({"model": "m", "eval_count": 3}))
        assert frames[0].is_terminal
        assert frames[0].content_delta is None

    def test_blank_lines_skipped(self):
        frames = _feed_all(NdjsonFrameDecoder(), [b"\n\n" + ndjson(local_chunk("a"))[0]])
        assert [f.content_delta for f in frames] == ["a"]

    def test_stops_after_done(self):
        decoder = NdjsonFrameDecoder()
        frames = list(decoder.feed(b"".join(ndjson(local_chunk("", done=True), local_chunk("late")))))
        assert len(frames) == 1
        assert decoder.finished

    def test_malformed_frame_is_fatal(self):
        decoder = NdjsonFrameDecoder()
        gen = decoder.feed(ndjson(local_chunk("ok"))[0] + b"{broken\n" + ndjson(local_chunk("lost"))[0])
        assert next(gen).content_delta == "ok"
        with pytest.raises(MalformedFrameError) as exc:
            next(gen)
        assert exc.value.raw == "{broken"
        with pytest.raises(RuntimeError):
            list(decoder.feed(b"{}\n"))

    def test_provider_error_object(self):
        with pytest.raises(MalformedFrameError, match="model not found"):
            _feed_all(NdjsonFrameDecoder(), ndjson({"error": "model not found"}))

    @pytest.mark.parametrize("frame", [
        {"message": "hello"},
        {"message": ["hello"]},
        {"message": {"content": 3}},
    ])
    def test_wrong_field_types_are_fatal(self, frame):
        decoder = NdjsonFrameDecoder()
        with pytest.raises(MalformedFrameError):
            list(decoder.feed(ndjson(frame)[0]))
        with pytest.raises(RuntimeError):
            list(decoder.feed(b"{}\n"))

    def test_truncated(self):
        decoder = NdjsonFrameDecoder()
        list(decoder.feed(b'{"message": {"content": "cut'))
        with pytest.raises(TruncatedStreamError) as exc:
            decoder.finish()
        assert exc.value.remainder == '{"message": {"content": "cut'


class TestSse:
    def test_frames(self):
        decoder = SseFrameDecoder()
        frames = []
        for f in decoder.feed(COMPAT_STREAM):
            frames.append(f)
        assert [f.content_delta for f in frames] == ["Hel", "lo ü", None, None, None]
        assert [f.is_terminal for f in frames] == [False, False, True, True, True]
        assert frames[3].prompt_tokens == 9
        assert frames[3].completion_tokens == 2
        assert decoder.finished

    @pytest.mark.parametrize("size", [1, 2, 5, 13])
    def test_rechunking_is_transparent(self, size):
        whole = _feed_all(SseFrameDecoder(), [COMPAT_STREAM])
        split = _feed_all(SseFrameDecoder(), _rechunk(COMPAT_STREAM, size))
        assert split == whole

    def test_crlf_and_comments(self):
        raw = (
            ": keep-alive\r\n\r\n"
            "event: message\r\nid: 1\r\ndata: " + json.dumps(compat_chunk("x")) + "\r\n\r\n"
        ).encode()
        frames = _feed_all(SseFrameDecoder(), _rechunk(raw, 3))
        assert [f.content_delta for f in frames] == ["x"]

    def test_multiline_data_joined(self):
        body = json.dumps(compat_chunk("y"), indent=1).split("\n")
        raw = "".join(f"data: {line}\n" for line in body) + "\n"
        frames = _feed_all(SseFrameDecoder(), [raw.encode()])
        assert frames[0].content_delta == "y"

    def test_malformed_event(self):
        with pytest.raises(MalformedFrameError) as exc:
            _feed_all(SseFrameDecoder(), [b"data: {nope\n\n"])
        assert exc.value.raw == "{nope"

    def test_error_payload(self):
        with pytest.raises(MalformedFrameError, match="rate limited"):
            _feed_all(SseFrameDecoder(), sse({"error": {"message": "rate limited"}}))

    @pytest.mark.parametrize("payload", [
        {"choices": [{"delta": "oops"}]},
        {"choices": "x"},
        {"choices": ["x"]},
        {"choices": [{"delta": {"content": 1}}]},
        {"choices": [], "usage": "x"},
    ])
    def test_wrong_field_types_are_fatal(self, payload):
        decoder = SseFrameDecoder()
        with pytest.raises(MalformedFrameError):
            list(decoder.feed(sse(payload)[0]))
        with pytest.raises(RuntimeError):
            list(decoder.feed(b"data: {}\n\n"))

    def test_truncated(self):
        with pytest.raises(TruncatedStreamError):
            _feed_all(SseFrameDecoder(), [b'data: {"choices": ['])

    def test_multibyte_split(self):
        raw = sse(compat_chunk("日本"))[0]
        frames = _feed_all(SseFrameDecoder(), _rechunk(raw, 1))
        assert frames[0].content_delta == "日本"


class TestDecodeFrames:
    def test_dispatch(self):
        assert isinstance(new_frame_decoder(ProviderKind.LOCAL_CHAT), NdjsonFrameDecoder)
        assert isinstance(new_frame_decoder(ProviderKind.COMPATIBLE_CHAT), SseFrameDecoder)

    @pytest.mark.asyncio
    async def test_stops_at_done_without_reading_further(self):
        pulled = []

        async def chunks():
            for c in sse(compat_chunk("a"), "[DONE]", compat_chunk("never")):
                pulled.append(c)
                yield c

        frames = [f async for f in decode_frames(SseFrameDecoder(), chunks())]
        assert [f.content_delta for f in frames] == ["a", None]
        assert len(pulled) == 2

    @pytest.mark.asyncio
    async def test_truncation_raised_at_end(self):
        with pytest.raises(TruncatedStreamError):
            async for _ in decode_frames(NdjsonFrameDecoder(), _aiter([b'{"a": 1}\n{"b"'])):
                pass
