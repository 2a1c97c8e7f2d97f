"""Stream text completions from multiple LLM providers through one interface."""

from llm_stream.models import CompletionOptions, ConversationMessage, Delta, Request, Role
from llm_stream.providers import provider_registry
from llm_stream.services import collect_many, collect_text, stream_deltas
from llm_stream.utils.exceptions import (
    ConfigError,
    LLMStreamError,
    ProviderPayloadError,
    ProviderSignaledError,
    TransportError,
)

__version__ = "0.3.0"

__all__ = [
    "CompletionOptions",
    "ConfigError",
    "ConversationMessage",
    "Delta",
    "LLMStreamError",
    "ProviderPayloadError",
    "ProviderSignaledError",
    "Request",
    "Role",
    "TransportError",
    "collect_many",
    "collect_text",
    "provider_registry",
    "stream_deltas",
]
