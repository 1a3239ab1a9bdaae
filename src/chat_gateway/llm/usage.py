"""Token accounting from provider-reported counters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


def sum_optional(a: int | None, b: int | None) -> int | None:
    """``a + b`` when both are known, else ``None``."""
    if a is None or b is None:
        return None
    return a + b


def token_count(data: Mapping[str, Any], key: str) -> int | None:
    """Read one provider counter; anything but a plain int is unreported."""
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    # No supported provider reports this separately from completion tokens.
    reasoning_tokens: int | None = None
    total_tokens: int | None = None

    @property
    def reported(self) -> bool:
        return self.prompt_tokens is not None or self.completion_tokens is not None


def account(prompt_tokens: int | None, completion_tokens: int | None) -> Usage:
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=sum_optional(prompt_tokens, completion_tokens),
    )
