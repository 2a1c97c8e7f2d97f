from typing import List

from llm_stream.models.request import CompletionOptions, ConversationMessage, Request
from llm_stream.models.response import SKIP, DecodeResult, Delta, End, RawEvent
from llm_stream.providers.base import BaseProvider
from llm_stream.utils.exceptions import ProviderPayloadError
from llm_stream.utils.message_helpers import format_for_claude, split_system

DEFAULT_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    default_url = "https://api.anthropic.com/v1"
    default_model = "claude-3-5-sonnet-20240620"
    default_env = "ANTHROPIC_API_KEY"

    def decode_payload(self, event: RawEvent) -> DecodeResult:
        """Decode a Messages API stream event.

        The `event:` label names the event kind; when a proxy strips the
        label, the `type` field inside the payload is used instead.
        """
        data = self._load_json(event.data)
        if not isinstance(data, dict):
            raise ProviderPayloadError(
                "Expected a JSON object from anthropic", payload=event.data
            )
        kind = event.event or data.get("type")

        if kind == "content_block_delta":
            text = (data.get("delta") or {}).get("text")
            if text:
                return Delta(text=text, provider=self.name)
            # input_json_delta / thinking deltas carry no output text
            return SKIP

        if kind == "message_delta":
            if reason := (data.get("delta") or {}).get("stop_reason"):
                self.finish_reason = reason
            return SKIP

        if kind == "message_stop":
            return End(reason=self.finish_reason)

        if kind == "error":
            return self._error_signal(data.get("error") or data)

        # ping, message_start, content_block_start, content_block_stop
        return SKIP

    def build_request(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> Request:
        """Build a streaming Messages API request."""
        system, rest = split_system(messages)
        if options.system:
            system = options.system

        payload = {
            "model": self._model(options),
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [format_for_claude(m) for m in rest],
            "stream": True,
        }
        if system:
            payload["system"] = system
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.top_k is not None:
            payload["top_k"] = options.top_k

        return Request.with_json(
            provider=self.name,
            url=f"{self._base_url(options)}/messages",
            payload=payload,
            headers={
                "x-api-key": self._require_key(options),
                "anthropic-version": options.api_version or DEFAULT_VERSION,
            },
        )
