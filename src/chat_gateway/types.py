"""Shared data types for the chat gateway."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider / connection types
# ---------------------------------------------------------------------------

class ProviderKind(enum.Enum):
    """Supported backend wire-protocol families.

    The value is the provider tag as it is stored alongside a model config.
    """

    LOCAL_CHAT = "ollama"
    COMPATIBLE_CHAT = "custom"


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Where and how to reach one backend."""

    base_url: str
    credential: str | None = None


@dataclass(frozen=True)
class GlobalSettings:
    """Cross-provider settings read once before a request is built.

    ``max_tokens == 0`` means no global ceiling.
    """

    max_tokens: int = 0


# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------

class Role(enum.Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Map a raw role string to a Role; anything unknown is a user turn.

        Matching is exact: ``"System"`` is not a known role.
        """
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            _logger.debug("Unknown message role %r, treating as user", value)
            return cls.USER


@dataclass(frozen=True)
class ChatMessage:
    """One turn of the conversation history."""

    role: Role
    content: str

    @classmethod
    def coerce(cls, obj: ChatMessage | Mapping[str, Any]) -> ChatMessage:
        if isinstance(obj, ChatMessage):
            return obj
        return cls(
            role=Role.parse(obj.get("role", "user")),
            content=str(obj.get("content") or ""),
        )


# ---------------------------------------------------------------------------
# Streaming / reply types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResponseFrame:
    """One decoded logical unit of a provider stream."""

    content_delta: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    is_terminal: bool = False


class ReasoningState(enum.Enum):
    ANSWERING = "answering"
    REASONING = "reasoning"


_REPLY_KEYS = {
    "message": "message",
    "reasoning": "reasoning",
    "prompt_token": "promptToken",
    "completion_token": "completionToken",
    "reasoning_token": "reasoningToken",
    "total_token": "totalToken",
}


@dataclass(frozen=True)
class BotReply:
    """Normalized reply.

    For ``chat()`` this is the whole answer.  For ``chat_stream()`` each
    value is an increment: ``message`` / ``reasoning`` hold only the text
    of that increment, token fields are as reported by the frame.
    """

    message: str = ""
    reasoning: str | None = None
    prompt_token: int | None = None
    completion_token: int | None = None
    reasoning_token: int | None = None
    total_token: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the UI bridge: camelCase keys, unset fields omitted."""
        data: dict[str, Any] = {"type": "BotReply"}
        for attr, key in _REPLY_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class RemoteModel:
    """One entry of a provider's model catalog."""

    id: str
    size: int | None = None
    modified_at: str | None = None
