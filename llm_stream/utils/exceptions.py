"""
Exception types raised by the streaming core and its configuration layer.

Usage:
    from llm_stream.utils.exceptions import TransportError, ProviderSignaledError

    try:
        async for delta in stream_deltas(request):
            ...
    except TransportError as e:
        print(e.status_code, e.message)
"""

from typing import NoReturn, Optional


class LLMStreamError(Exception):
    """Base class for every error raised by llm_stream."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(LLMStreamError):
    """Connection, TLS, non-2xx status, or mid-stream disconnect."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[bytes] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.message}"
        return self.message


class DecodeError(LLMStreamError):
    """A single SSE line could not be decoded. Tolerated by the decoder."""


class ProviderPayloadError(LLMStreamError):
    """A well-framed event carried a payload that is not valid JSON."""

    def __init__(self, message: str, payload: str = ""):
        super().__init__(message)
        self.payload = payload


class ProviderSignaledError(LLMStreamError):
    """The provider sent an explicit error frame (rate limit, invalid model, ...)."""

    def __init__(self, message: str, code: Optional[str] = None, provider: str = ""):
        super().__init__(message)
        self.code = code
        self.provider = provider

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        if self.code:
            return f"{prefix}{self.code}: {self.message}"
        return f"{prefix}{self.message}"


class ConfigError(LLMStreamError):
    """Invalid configuration: unknown provider, preset, template, or missing key."""


def raise_unknown_provider(name: str) -> NoReturn:
    """Raise ConfigError for a provider name no adapter is registered under."""
    raise ConfigError(f"Unknown provider '{name}'")


def raise_not_found(resource: str, name: str) -> NoReturn:
    """Raise ConfigError for a missing preset or template."""
    raise ConfigError(f"{resource} '{name}' not found")


def raise_missing_api_key(env_var: str) -> NoReturn:
    """Raise ConfigError when no API key was given and the env var is unset."""
    raise ConfigError(
        f"No API key provided and environment variable {env_var} is not set"
    )
