"""HTTP test doubles and wire-format builders."""

from __future__ import annotations

import json
from typing import Callable

import httpx

from chat_gateway.llm.transport import Transport


class RecordingStream(httpx.AsyncByteStream):
    """Response body that records how far it was read and whether it was closed."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            if self.closed:
                raise AssertionError("read after close")
            self.reads += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def ndjson(*objs: dict) -> list[bytes]:
    return [(json.dumps(o) + "\n").encode() for o in objs]


def sse(*objs: dict | str) -> list[bytes]:
    out = []
    for o in objs:
        data = o if isinstance(o, str) else json.dumps(o)
        out.append(f"data: {data}\n\n".encode())
    return out


def local_chunk(content: str | None, done: bool = False, **extra) -> dict:
    obj: dict = {"model": "qwen3:8b", "done": done}
    if content is not None:
        obj["message"] = {"role": "assistant", "content": content}
    obj.update(extra)
    return obj


def compat_chunk(content: str | None, finish_reason: str | None = None, **extra) -> dict:
    delta = {} if content is None else {"content": content}
    obj: dict = {
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    obj.update(extra)
    return obj


def mock_transport(handler: Callable[[httpx.Request], httpx.Response]) -> Transport:
    return Transport(transport=httpx.MockTransport(handler))


