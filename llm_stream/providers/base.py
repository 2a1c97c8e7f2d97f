import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import orjson

from llm_stream.models.request import CompletionOptions, ConversationMessage, Request
from llm_stream.models.response import SKIP, DecodeResult, Delta, End, ErrorSignal, RawEvent
from llm_stream.utils.exceptions import ConfigError, ProviderPayloadError
from llm_stream.utils.message_helpers import format_for_openai
from llm_stream.utils.sse import SSE_DONE_SIGNAL

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Abstract base class for provider adapters.

    An adapter instance belongs to exactly one stream: `decode` may keep
    per-stream state on it (last finish reason, for instance). Build a
    fresh adapter through the registry for every request.
    """

    name: str  # Provider identifier: "openai", "anthropic", "google", ...
    default_url: str = ""
    default_model: str = ""
    default_env: str = ""

    def __init__(self):
        self.finish_reason: Optional[str] = None

    def decode(self, event: RawEvent) -> DecodeResult:
        """Map one SSE event to a Delta, Skip, End or ErrorSignal.

        Empty payloads are heartbeats. Payloads that are not JSON, or JSON
        of an unexpected shape, become a malformed ErrorSignal rather than a
        Skip so that garbage is never mistaken for "nothing to emit".
        """
        if not event.data.strip():
            return SKIP
        try:
            return self.decode_payload(event)
        except ProviderPayloadError as e:
            self._log_json_error(e)
            return ErrorSignal(message=e.message, malformed=True, payload=e.payload)
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            logger.debug(f"Unexpected payload shape in {self.name}: {e!r}")
            return ErrorSignal(
                message=f"Unexpected {self.name} payload shape: {e!r}",
                malformed=True,
                payload=event.data,
            )

    @abstractmethod
    def decode_payload(self, event: RawEvent) -> DecodeResult:
        """Provider-specific decoding of a non-empty event payload"""
        pass

    @abstractmethod
    def build_request(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> Request:
        """Build the streaming HTTP request for a conversation"""
        pass

    def _base_url(self, options: CompletionOptions) -> str:
        return (options.base_url or self.default_url).rstrip("/")

    def _model(self, options: CompletionOptions) -> str:
        return options.model or self.default_model

    def _require_key(self, options: CompletionOptions) -> str:
        if not options.api_key:
            raise ConfigError(f"No API key configured for provider '{self.name}'")
        return options.api_key

    def _load_json(self, payload: str) -> Any:
        try:
            return orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            raise ProviderPayloadError(
                f"Invalid JSON from {self.name}: {e}", payload=payload
            ) from e

    def _error_signal(self, error: Any) -> ErrorSignal:
        """Build an ErrorSignal from a provider error object or string."""
        if isinstance(error, dict):
            message = error.get("message") or orjson.dumps(error).decode()
            code = error.get("code") or error.get("type") or error.get("status")
            return ErrorSignal(message=str(message), code=str(code) if code else None)
        return ErrorSignal(message=str(error))

    def _log_json_error(self, error: Exception) -> None:
        """Log JSON parse error at debug level."""
        logger.debug(f"JSON parse error in {self.name}: {error}")


class OpenAIFormatProvider(BaseProvider):
    """Base class for providers using the OpenAI-compatible chat format.

    Subclasses set `name` and the defaults, and override the hooks below
    where their payloads diverge.
    """

    chat_path: str = "/chat/completions"

    def decode_payload(self, event: RawEvent) -> DecodeResult:
        if event.data.strip() == SSE_DONE_SIGNAL:
            return End(reason=self.finish_reason)

        data = self._load_json(event.data)
        if not isinstance(data, dict):
            raise ProviderPayloadError(
                f"Expected a JSON object from {self.name}", payload=event.data
            )
        if data.get("error"):
            return self._error_signal(data["error"])

        choice = self._select_choice(data.get("choices") or [])
        if choice is None:
            return SKIP

        if reason := choice.get("finish_reason"):
            self.finish_reason = reason

        content = self._extract_content(choice.get("delta") or {})
        if content:
            return Delta(text=content, provider=self.name)
        return SKIP

    def _select_choice(self, choices: List[dict]) -> Optional[dict]:
        """Pick the choice to read from; the first one by default."""
        return choices[0] if choices else None

    def _extract_content(self, delta: dict) -> Optional[str]:
        """Extract text content from a choice delta."""
        return delta.get("content")

    def _headers(self, options: CompletionOptions) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._require_key(options)}"}

    def _payload(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> dict:
        formatted_messages = []
        if options.system:
            formatted_messages.append({"role": "system", "content": options.system})
        formatted_messages.extend(format_for_openai(m) for m in messages)

        payload = {
            "model": self._model(options),
            "messages": formatted_messages,
            "stream": True,
        }
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        return payload

    def build_request(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> Request:
        """Build a streaming chat completion request in OpenAI format."""
        return Request.with_json(
            provider=self.name,
            url=f"{self._base_url(options)}{self.chat_path}",
            payload=self._payload(messages, options),
            headers=self._headers(options),
        )
