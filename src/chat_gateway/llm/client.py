"""Chat gateway: one interface over local (Ollama-style) and
OpenAI-compatible chat backends.

Exposes ``async def chat()`` for a single reply, ``chat_stream()`` as an
async generator of reply increments, and ``list_models()``.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, AsyncGenerator, Iterable, Mapping, Union

import httpx

from chat_gateway.errors import MalformedResponseError, UnterminatedReasoningError
from chat_gateway.types import (
    BotReply,
    ChatMessage,
    GlobalSettings,
    ProviderKind,
    ReasoningState,
    RemoteModel,
    ResponseFrame,
)

from .providers import ProviderConfig, resolve_provider
from .reasoning import (
    CLOSE_MARKER,
    OPEN_MARKER,
    ReasoningSegmenter,
    Segment,
    split_reasoning,
)
from .request_builder import build_request, list_models_request
from .stream_decoder import decode_frames, new_frame_decoder
from .transport import Transport
from .usage import Usage, account, token_count

_logger = logging.getLogger(__name__)

Messages = Iterable[Union[ChatMessage, Mapping[str, Any]]]


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponseError(resp.text, "invalid JSON") from e


def _usage_reply(usage: Usage, **fields: Any) -> BotReply:
    return BotReply(
        prompt_token=usage.prompt_tokens,
        completion_token=usage.completion_tokens,
        reasoning_token=usage.reasoning_tokens,
        total_token=usage.total_tokens,
        **fields,
    )


def _content(message: dict[str, Any], raw: str) -> str:
    content = message.get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        raise MalformedResponseError(raw, "'message.content' must be a string")
    return content


def _segment_reply(segment: Segment) -> BotReply:
    if segment.state is ReasoningState.REASONING:
        return BotReply(message="", reasoning=segment.text)
    return BotReply(message=segment.text)


class ChatGateway:
    """Dispatches chat requests to one resolved provider."""

    def __init__(
        self,
        provider: ProviderConfig,
        transport: Transport,
        *,
        markers: tuple[str, str] = (OPEN_MARKER, CLOSE_MARKER),
    ) -> None:
        self.provider = provider
        self._transport = transport
        self._markers = markers

    @classmethod
    def from_stored(
        cls,
        provider_tag: str,
        config_json: str,
        transport: Transport,
        **kwargs: Any,
    ) -> ChatGateway:
        return cls(resolve_provider(provider_tag, config_json), transport, **kwargs)

    # ------------------------------------------------------------------
    # Single-shot chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: Messages,
        options_json: str,
        settings: GlobalSettings | None = None,
        model: str | None = None,
    ) -> BotReply:
        """Send a non-streaming chat request and return the whole reply.

        ``message`` and ``reasoning`` are whitespace-stripped, so the blank
        lines models put around a ``<think>`` block do not leak into either
        field.  :meth:`chat_stream` passes text through unstripped.
        """
        request = build_request(
            self.provider, messages, options_json,
            stream=False, settings=settings, model=model,
        )
        resp = await self._transport.send(request)
        data = _json_body(resp)
        if not isinstance(data, dict):
            raise MalformedResponseError(resp.text, "expected a JSON object")

        if self.provider.kind is ProviderKind.LOCAL_CHAT:
            text, usage = self._parse_local_reply(data, resp.text)
        elif self.provider.kind is ProviderKind.COMPATIBLE_CHAT:
            text, usage = self._parse_compatible_reply(data, resp.text)
        else:  # pragma: no cover - exhaustive over ProviderKind
            raise ValueError(f"Unhandled provider kind: {self.provider.kind}")

        answer, reasoning, unterminated = split_reasoning(text, *self._markers)
        if unterminated:
            _logger.warning(
                "Reply ended inside a reasoning block (missing %r)", self._markers[1],
            )
        return _usage_reply(
            usage,
            message=answer.strip(),
            reasoning=reasoning.strip() if reasoning is not None else None,
        )

    @staticmethod
    def _parse_local_reply(data: dict[str, Any], raw: str) -> tuple[str, Usage]:
        usage = account(
            token_count(data, "prompt_eval_count"), token_count(data, "eval_count"),
        )
        message = data.get("message")
        if message is None:
            _logger.warning("Provider returned an empty message")
            return "", usage
        if not isinstance(message, dict):
            raise MalformedResponseError(raw, "'message' must be an object")
        if message.get("role", "assistant") != "assistant":
            _logger.warning(
                "Provider returned a non-assistant message (role=%r)", message.get("role"),
            )
            return "", usage
        return _content(message, raw), usage

    @staticmethod
    def _parse_compatible_reply(data: dict[str, Any], raw: str) -> tuple[str, Usage]:
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise MalformedResponseError(raw, "'choices' must be an array")
        if not choices:
            raise MalformedResponseError(raw, "empty choices")
        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedResponseError(raw, "'choices[0]' must be an object")
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise MalformedResponseError(raw, "'message' must be an object")
        usage_data = data.get("usage") or {}
        if not isinstance(usage_data, dict):
            raise MalformedResponseError(raw, "'usage' must be an object")
        usage = account(
            token_count(usage_data, "prompt_tokens"),
            token_count(usage_data, "completion_tokens"),
        )
        return _content(message, raw), usage

    @staticmethod
    def _parse_compatible_reply(data: dict[str, Any], raw: str) -> tuple[str, Usage]:
        choices = data.get("choices") or []
        if not choices:
            raise MalformedResponseError(raw, "empty choices")
        choice = choices[0] if isinstance(choices[0], dict) else {}
        message = choice.get("message") or {}
        usage_data = data.get("usage") or {}
        usage = account(
            usage_data.get("prompt_tokens"), usage_data.get("completion_tokens"),
        )
        return message.get("content") or "", usage

    # ------------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------------

    async def chat_stream(
        self,
        messages: Messages,
        options_json: str,
        settings: GlobalSettings | None = None,
        model: str | None = None,
    ) -> AsyncGenerator[BotReply, None]:
        """Streaming chat.  Yields one :class:`BotReply` increment per
        classified run of text.

        Each increment carries text on exactly one channel.  Token counts
        ride on the last increment of the frame that reported them, or on
        a text-less reply if the frame had no text.

        Closing the generator early (``aclose()``) closes the HTTP
        response; no further chunks are read.
        """
        request = build_request(
            self.provider, messages, options_json,
            stream=True, settings=settings, model=model,
        )
        decoder = new_frame_decoder(self.provider.kind)
        segmenter = ReasoningSegmenter(*self._markers)

        async with self._transport.send_streaming(request) as chunks:
            frames = decode_frames(decoder, chunks)
            try:
                async for frame in frames:
                    for reply in self._frame_replies(frame, segmenter):
                        yield reply
            finally:
                await frames.aclose()

        for segment in segmenter.finish():
            yield _segment_reply(segment)
        if segmenter.unterminated:
            raise UnterminatedReasoningError(segmenter.close_marker)

    @staticmethod
    def _frame_replies(
        frame: ResponseFrame, segmenter: ReasoningSegmenter,
    ) -> list[BotReply]:
        replies = []
        if frame.content_delta:
            replies = [_segment_reply(s) for s in segmenter.feed(frame.content_delta)]
        usage = account(frame.prompt_tokens, frame.completion_tokens)
        if usage.reported:
            if replies:
                last = replies[-1]
                replies[-1] = dataclasses.replace(
                    last,
                    prompt_token=usage.prompt_tokens,
                    completion_token=usage.completion_tokens,
                    total_token=usage.total_tokens,
                )
            else:
                replies.append(_usage_reply(usage, message=""))
        return replies

    # ------------------------------------------------------------------
    # Model listing
    # ------------------------------------------------------------------

    async def list_models(self) -> list[RemoteModel]:
        """Query the provider's model catalog."""
        resp = await self._transport.send(list_models_request(self.provider))
        data = _json_body(resp)

        try:
            if self.provider.kind is ProviderKind.LOCAL_CHAT:
                return [
                    RemoteModel(
                        id=m["name"],
                        size=m.get("size"),
                        modified_at=m.get("modified_at"),
                    )
                    for m in data["models"]
                ]
            if self.provider.kind is ProviderKind.COMPATIBLE_CHAT:
                return [RemoteModel(id=m["id"]) for m in data["data"]]
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(resp.text, f"unexpected catalog shape: {e}") from e
        raise ValueError(f"Unhandled provider kind: {self.provider.kind}")  # pragma: no cover
