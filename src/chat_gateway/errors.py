"""Error taxonomy for the chat gateway.

Every failure raised by the gateway derives from :class:`ChatError`, so a
command layer can catch one type and render ``str(exc)``.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all gateway failures."""


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class ConfigError(ChatError):
    """Stored provider configuration cannot be turned into a connection."""


class UnsupportedProviderError(ConfigError):
    def __init__(self, provider_tag: str) -> None:
        self.provider_tag = provider_tag
        super().__init__(f"Unsupported provider: {provider_tag!r}")


class MalformedConfigError(ConfigError):
    def __init__(self, raw_config: str, reason: str = "") -> None:
        self.raw_config = raw_config
        msg = f"Failed to parse model config: {raw_config}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

class BuildError(ChatError):
    """The request could not be built; no network call was made."""


class InvalidOptionsError(BuildError):
    def __init__(self, raw_payload: str, reason: str = "") -> None:
        self.raw_payload = raw_payload
        msg = f"Failed to parse conversation options: {raw_payload}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MissingModelError(BuildError):
    def __init__(self) -> None:
        super().__init__("Model not set for chat")


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class TransportError(ChatError):
    """The HTTP exchange failed.  Never retried inside the gateway."""


class NetworkError(TransportError):
    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(
            f"Failed to get chat completion response: "
            f"{type(cause).__name__}: {cause}"
        )


class HTTPStatusError(TransportError):
    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider returned HTTP {status_code}: {body}")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

class DecodeError(ChatError):
    """A response body or stream could not be decoded.

    Increments already yielded by a stream stay valid.
    """


class MalformedFrameError(DecodeError):
    def __init__(self, raw: str, reason: str = "") -> None:
        self.raw = raw
        msg = f"Malformed stream frame: {raw!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class TruncatedStreamError(DecodeError):
    def __init__(self, remainder: str) -> None:
        self.remainder = remainder
        super().__init__(f"Stream ended inside a frame: {remainder!r}")


class UnterminatedReasoningError(DecodeError):
    def __init__(self, close_marker: str) -> None:
        self.close_marker = close_marker
        super().__init__(
            f"Stream ended inside a reasoning block (missing {close_marker!r})"
        )


class MalformedResponseError(DecodeError):
    def __init__(self, raw: str, reason: str = "") -> None:
        self.raw = raw
        msg = f"Malformed provider response: {raw}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
