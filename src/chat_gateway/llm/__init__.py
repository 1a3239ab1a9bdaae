"""Provider dispatch, wire codecs and reply normalization."""

from chat_gateway.llm.client import ChatGateway
from chat_gateway.llm.providers import ProviderConfig, resolve_provider
from chat_gateway.llm.reasoning import ReasoningSegmenter, split_reasoning
from chat_gateway.llm.request_builder import WireRequest, build_request, parse_options
from chat_gateway.llm.stream_decoder import (
    NdjsonFrameDecoder,
    SseFrameDecoder,
    decode_frames,
    new_frame_decoder,
)
from chat_gateway.llm.transport import Transport
from chat_gateway.llm.usage import Usage, account

__all__ = [
    "ChatGateway",
    "NdjsonFrameDecoder",
    "ProviderConfig",
    "ReasoningSegmenter",
    "SseFrameDecoder",
    "Transport",
    "Usage",
    "WireRequest",
    "account",
    "build_request",
    "decode_frames",
    "new_frame_decoder",
    "parse_options",
    "resolve_provider",
    "split_reasoning",
]
