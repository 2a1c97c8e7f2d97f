from typing import List, Optional

from llm_stream.models.request import CompletionOptions, ConversationMessage
from llm_stream.providers.base import OpenAIFormatProvider
from llm_stream.utils.message_helpers import join_user_prompts


class MistralProvider(OpenAIFormatProvider):
    """Mistral AI provider.

    OpenAI-compatible framing, except that `delta.content` may arrive as a
    list of typed chunks (reasoning models) instead of a plain string.
    """

    name = "mistral"
    default_url = "https://api.mistral.ai/v1"
    default_model = "mistral-large-latest"
    default_env = "MISTRAL_API_KEY"

    def _extract_content(self, delta: dict) -> Optional[str]:
        content = delta.get("content")
        if isinstance(content, list):
            # Only text chunks are output; "thinking" and references are dropped
            return "".join(
                chunk.get("text", "")
                for chunk in content
                if isinstance(chunk, dict) and chunk.get("type") == "text"
            )
        return content

    def _payload(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> dict:
        payload = super()._payload(messages, options)
        if options.min_tokens is not None:
            payload["min_tokens"] = options.min_tokens
        return payload


class MistralFIMProvider(MistralProvider):
    """Mistral fill-in-the-middle (Codestral) completions."""

    name = "mistral-fim"
    default_model = "codestral-2405"
    chat_path = "/fim/completions"

    def _payload(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> dict:
        payload = {
            "model": self._model(options),
            "prompt": join_user_prompts(messages),
            "stream": True,
        }
        if options.suffix:
            payload["suffix"] = options.suffix
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.min_tokens is not None:
            payload["min_tokens"] = options.min_tokens
        return payload
