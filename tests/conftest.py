"""Shared fixtures."""

from __future__ import annotations

import pytest

from chat_gateway.llm.providers import ProviderConfig, resolve_provider


@pytest.fixture
def local_provider() -> ProviderConfig:
    return resolve_provider("ollama", '{"model": "qwen3:8b", "api_base": "http://ollama.test"}')


@pytest.fixture
def compat_provider() -> ProviderConfig:
    return resolve_provider(
        "custom",
        '{"model": "gpt-4o-mini", "api_base": "http://compat.test/v1", "api_key": "sk-test"}',
    )
