"""Configuration for the chat gateway.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./chat_gateway.yaml``
  3. ``~/.config/chat-gateway/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chat_gateway.types import GlobalSettings

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

def _to_json(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value if value is not None else {})


@dataclass
class ModelSpec:
    """A stored model entry: provider tag plus its connection config.

    ``config`` and ``options`` may be mappings (from YAML) or raw JSON
    strings (as kept by an external store); both are passed on as JSON.
    """

    provider: str = "ollama"
    config: dict[str, Any] | str = field(
        default_factory=lambda: {"model": "qwen3:8b"}
    )
    options: dict[str, Any] | str = field(default_factory=dict)

    @property
    def config_json(self) -> str:
        return _to_json(self.config)

    @property
    def options_json(self) -> str:
        return _to_json(self.options)


@dataclass
class ProxySpec:
    """Optional forward proxy applied to every outbound call."""

    enabled: bool = False
    protocol: str = "http"
    host: str = ""
    port: int = 0

    @property
    def url(self) -> str | None:
        if not self.enabled:
            return None
        return f"{self.protocol}://{self.host}:{self.port}"


@dataclass
class TimeoutSpec:
    """HTTP client timeouts in seconds (``None`` disables a limit).

    ``default`` applies to each write and pool wait; it is not a deadline
    for the whole request.
    """

    default: float | None = 120
    connect: float | None = 30
    read: float | None = 300


@dataclass
class MarkerSpec:
    open: str = "<think>"
    close: str = "</think>"


@dataclass
class GatewayConfig:
    """Top-level config for the chat gateway."""

    # Active model name
    model: str = "local"

    models: dict[str, ModelSpec] = field(
        default_factory=lambda: {"local": ModelSpec()}
    )

    proxy: ProxySpec = field(default_factory=ProxySpec)
    timeout: TimeoutSpec = field(default_factory=TimeoutSpec)
    reasoning_markers: MarkerSpec = field(default_factory=MarkerSpec)

    # Global ceiling for providers exposing a max_tokens option (0 = none)
    max_tokens: int = 0

    @property
    def active_model(self) -> ModelSpec:
        return self.models.get(self.model, ModelSpec())

    @property
    def global_settings(self) -> GlobalSettings:
        return GlobalSettings(max_tokens=self.max_tokens)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./chat_gateway.yaml"),
    Path.home() / ".config" / "chat-gateway" / "config.yaml",
]


def _parse_model(raw: dict[str, Any]) -> ModelSpec:
    return ModelSpec(
        provider=raw.get("provider", "ollama"),
        config=raw.get("config", {}),
        options=raw.get("options", {}),
    )


def _parse_proxy(raw: dict[str, Any] | None) -> ProxySpec:
    if not raw:
        return ProxySpec()
    return ProxySpec(
        enabled=bool(raw.get("enabled", False)),
        protocol=raw.get("protocol", "http"),
        host=raw.get("host", ""),
        port=int(raw.get("port", 0)),
    )


def _parse_timeout(raw: dict[str, Any] | None) -> TimeoutSpec:
    if not raw:
        return TimeoutSpec()
    base = TimeoutSpec()
    return TimeoutSpec(
        default=raw.get("default", base.default),
        connect=raw.get("connect", base.connect),
        read=raw.get("read", base.read),
    )


def _parse_markers(raw: dict[str, Any] | None) -> MarkerSpec:
    if not raw:
        return MarkerSpec()
    return MarkerSpec(
        open=raw.get("open", "<think>"),
        close=raw.get("close", "</think>"),
    )


def load_config(path: str | Path | None = None) -> GatewayConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    GatewayConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return GatewayConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return GatewayConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    models: dict[str, ModelSpec] = {}
    for name, mraw in (raw.get("models") or {}).items():
        models[name] = _parse_model(mraw or {})

    if not models:
        models["local"] = ModelSpec()

    return GatewayConfig(
        model=raw.get("model", "local"),
        models=models,
        proxy=_parse_proxy(raw.get("proxy")),
        timeout=_parse_timeout(raw.get("timeout")),
        reasoning_markers=_parse_markers(raw.get("reasoning_markers")),
        max_tokens=int(raw.get("max_tokens", 0) or 0),
    )
