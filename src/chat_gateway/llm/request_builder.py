"""Build provider wire requests from provider-agnostic chat input.

Generation options arrive as an opaque JSON string whose shape depends on
the provider kind.  Parsing is strict: any problem aborts the request
before a network call is made, echoing the raw payload in the error.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Iterable, Mapping, Union

from chat_gateway.errors import InvalidOptionsError, MissingModelError
from chat_gateway.types import ChatMessage, GlobalSettings, ProviderKind

from .providers import ProviderConfig

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generation options
# ---------------------------------------------------------------------------

@dataclass
class LocalChatOptions:
    stream: bool | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: float | None = None


@dataclass
class CompatibleChatOptions:
    stream: bool | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    user: str | None = None


GenerationOptions = Union[LocalChatOptions, CompatibleChatOptions]

_OPTION_TYPES: dict[ProviderKind, type] = {
    ProviderKind.LOCAL_CHAT: LocalChatOptions,
    ProviderKind.COMPATIBLE_CHAT: CompatibleChatOptions,
}


def _check_value(name: str, value: Any) -> Any:
    """Validate one option value; returns it or raises ``ValueError``."""
    if value is None:
        return None
    if name == "stream":
        if not isinstance(value, bool):
            raise ValueError(f"'stream' must be a boolean, got {value!r}")
        return value
    if name == "user":
        if not isinstance(value, str):
            raise ValueError(f"'user' must be a string, got {value!r}")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name!r} must be a number, got {value!r}")
    if name == "max_tokens":
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"'max_tokens' must be a non-negative integer, got {value!r}")
    return value


def parse_options(kind: ProviderKind, options_json: str) -> GenerationOptions:
    """Parse *options_json* into the options record for *kind*.

    Unknown keys are ignored; ``null`` means unset.
    """
    cls = _OPTION_TYPES[kind]
    try:
        raw = json.loads(options_json)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidOptionsError(str(options_json)) from e
    if not isinstance(raw, dict):
        raise InvalidOptionsError(options_json, "expected a JSON object")

    values: dict[str, Any] = {}
    for f in fields(cls):
        if f.name in raw:
            try:
                values[f.name] = _check_value(f.name, raw[f.name])
            except ValueError as e:
                raise InvalidOptionsError(options_json, str(e)) from e
    return cls(**values)


def _set_fields(options: GenerationOptions) -> dict[str, Any]:
    return {
        f.name: getattr(options, f.name)
        for f in fields(options)
        if getattr(options, f.name) is not None
    }


# ---------------------------------------------------------------------------
# Wire request
# ---------------------------------------------------------------------------

@dataclass
class WireRequest:
    """An HTTP call ready for the transport."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    payload: dict[str, Any] | None = None
    stream: bool = False


def _headers(provider: ProviderConfig) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if provider.connection.credential:
        headers["Authorization"] = f"Bearer {provider.connection.credential}"
    return headers


def _wire_messages(messages: Iterable[ChatMessage | Mapping[str, Any]]) -> list[dict[str, str]]:
    wire = []
    for m in messages:
        msg = ChatMessage.coerce(m)
        wire.append({"role": msg.role.value, "content": msg.content})
    return wire


def _cap_max_tokens(requested: int | None, settings: GlobalSettings) -> int | None:
    ceiling = settings.max_tokens
    if ceiling <= 0:
        return requested
    if requested is None:
        return ceiling
    return min(requested, ceiling)


def build_request(
    provider: ProviderConfig,
    messages: Iterable[ChatMessage | Mapping[str, Any]],
    options_json: str,
    *,
    stream: bool,
    settings: GlobalSettings | None = None,
    model: str | None = None,
) -> WireRequest:
    """Build the wire request for *provider*.

    The wire ``stream`` flag always follows *stream* (the caller's mode),
    whatever the options say.
    """
    settings = settings or GlobalSettings()
    options = parse_options(provider.kind, options_json)
    target = model or provider.model
    if not target:
        raise MissingModelError()

    base = provider.connection.base_url
    payload: dict[str, Any] = {
        "model": target,
        "messages": _wire_messages(messages),
        "stream": stream,
    }

    if provider.kind is ProviderKind.LOCAL_CHAT:
        opts = _set_fields(options)
        opts.pop("stream", None)
        if opts:
            payload["options"] = opts
        url = f"{base}/api/chat"
    elif provider.kind is ProviderKind.COMPATIBLE_CHAT:
        opts = _set_fields(options)
        opts.pop("stream", None)
        max_tokens = _cap_max_tokens(opts.pop("max_tokens", None), settings)
        if max_tokens is not None:
            opts["max_tokens"] = max_tokens
        payload.update(opts)
        url = f"{base}/v1/chat/completions"
    else:  # pragma: no cover - exhaustive over ProviderKind
        raise ValueError(f"Unhandled provider kind: {provider.kind}")

    _logger.debug(
        "Built %s request for model %s (stream=%s, %d messages)",
        provider.kind.name, target, stream, len(payload["messages"]),
    )
    return WireRequest(
        method="POST",
        url=url,
        headers=_headers(provider),
        payload=payload,
        stream=stream,
    )


def list_models_request(provider: ProviderConfig) -> WireRequest:
    """Build the catalog request for *provider*."""
    base = provider.connection.base_url
    if provider.kind is ProviderKind.LOCAL_CHAT:
        url = f"{base}/api/tags"
    elif provider.kind is ProviderKind.COMPATIBLE_CHAT:
        url = f"{base}/v1/models"
    else:  # pragma: no cover - exhaustive over ProviderKind
        raise ValueError(f"Unhandled provider kind: {provider.kind}")
    return WireRequest(method="GET", url=url, headers=_headers(provider))
