"""Resolve a stored, provider-tagged config blob into a typed connection."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from chat_gateway.errors import MalformedConfigError, UnsupportedProviderError
from chat_gateway.types import ConnectionDescriptor, ProviderKind

_logger = logging.getLogger(__name__)

OLLAMA_API_BASE = "http://localhost:11434"

_TAGS: dict[str, ProviderKind] = {
    "ollama": ProviderKind.LOCAL_CHAT,
    "localchat": ProviderKind.LOCAL_CHAT,
    "custom": ProviderKind.COMPATIBLE_CHAT,
    "compatiblechat": ProviderKind.COMPATIBLE_CHAT,
}


@dataclass(frozen=True)
class ProviderConfig:
    """A resolved backend: wire family, connection and default model."""

    kind: ProviderKind
    connection: ConnectionDescriptor
    model: str | None = None


def provider_kind(provider_tag: str) -> ProviderKind:
    kind = _TAGS.get(str(provider_tag).strip().lower())
    if kind is None:
        raise UnsupportedProviderError(provider_tag)
    return kind


def _normalize_base(url: str) -> str:
    # Wire paths carry their own /api or /v1 prefix
    return url.rstrip("/").removesuffix("/v1")


def _optional_str(raw: dict[str, Any], key: str, config_json: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedConfigError(config_json, f"{key!r} must be a string")
    return value


def resolve_provider(provider_tag: str, config_json: str) -> ProviderConfig:
    """Turn ``(provider_tag, config_json)`` into a :class:`ProviderConfig`.

    Raises ``UnsupportedProviderError`` for unknown tags and
    ``MalformedConfigError`` when the JSON does not fit the provider.
    """
    kind = provider_kind(provider_tag)

    try:
        raw = json.loads(config_json)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedConfigError(str(config_json), str(e)) from e
    if not isinstance(raw, dict):
        raise MalformedConfigError(config_json, "expected a JSON object")

    model = _optional_str(raw, "model", config_json) or None
    api_base = (
        _optional_str(raw, "api_base", config_json)
        or _optional_str(raw, "endpoint", config_json)
    )

    if kind is ProviderKind.LOCAL_CHAT:
        connection = ConnectionDescriptor(
            base_url=_normalize_base(api_base or OLLAMA_API_BASE),
        )
    elif kind is ProviderKind.COMPATIBLE_CHAT:
        if not api_base:
            raise MalformedConfigError(config_json, "'api_base' is required")
        connection = ConnectionDescriptor(
            base_url=_normalize_base(api_base),
            credential=_optional_str(raw, "api_key", config_json) or None,
        )
    else:  # pragma: no cover - exhaustive over ProviderKind
        raise UnsupportedProviderError(provider_tag)

    _logger.debug("Resolved %s provider at %s", kind.name, connection.base_url)
    return ProviderConfig(kind=kind, connection=connection, model=model)
