from typing import Any, List
from urllib.parse import quote

from llm_stream.models.request import CompletionOptions, ConversationMessage, Request
from llm_stream.models.response import SKIP, DecodeResult, Delta, End, ErrorSignal, RawEvent
from llm_stream.providers.base import BaseProvider
from llm_stream.utils.exceptions import ProviderPayloadError
from llm_stream.utils.message_helpers import format_for_gemini, split_system

DEFAULT_MAX_OUTPUT_TOKENS = 4096


class GeminiProvider(BaseProvider):
    """Google Gemini provider (streamGenerateContent with alt=sse)."""

    name = "google"
    default_url = "https://generativelanguage.googleapis.com/v1beta"
    default_model = "gemini-1.5-pro"
    default_env = "GOOGLE_API_KEY"

    def decode_payload(self, event: RawEvent) -> DecodeResult:
        """Decode one streamGenerateContent response.

        Without alt=sse the API streams one JSON array whose elements arrive
        as `[{...}`, `,{...}` and `]`; those fragments are normalized before
        parsing so both framings decode the same way.
        """
        data = self._load_json(_strip_array_punctuation(event.data))
        responses = data if isinstance(data, list) else [data]
        if not responses:
            return SKIP

        texts = []
        finished = None
        for response in responses:
            if not isinstance(response, dict):
                raise ProviderPayloadError(
                    "Expected a JSON object from google", payload=event.data
                )
            if response.get("error"):
                return self._error_signal(response["error"])

            candidates = response.get("candidates")
            if not candidates:
                if "usageMetadata" in response and not response.get("promptFeedback"):
                    # Trailing usage-only frame
                    continue
                return self._blocked(response)

            candidate = candidates[0]
            texts.append(self._extract_content(candidate))
            if reason := candidate.get("finishReason"):
                finished = reason

        text = "".join(texts)
        if finished is not None:
            self.finish_reason = finished
            if text:
                return Delta(text=text, is_done=True, provider=self.name, finish_reason=finished)
            return End(reason=finished)
        if text:
            return Delta(text=text, provider=self.name)
        return SKIP

    def _extract_content(self, candidate: dict) -> str:
        """Concatenate every text part of a candidate."""
        parts = (candidate.get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    def _blocked(self, response: dict) -> ErrorSignal:
        feedback = response.get("promptFeedback") or {}
        reason = feedback.get("blockReason")
        if reason:
            return ErrorSignal(message=f"Prompt blocked: {reason}", code=reason)
        return ErrorSignal(message="Response contained no candidates")

    def build_request(
        self, messages: List[ConversationMessage], options: CompletionOptions
    ) -> Request:
        """Build a streaming generateContent request."""
        system, rest = split_system(messages)
        if options.system:
            system = options.system

        generation_config: dict[str, Any] = {
            "maxOutputTokens": options.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.top_k is not None:
            generation_config["topK"] = options.top_k

        payload = {
            "contents": [format_for_gemini(m) for m in rest],
            "generationConfig": generation_config,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        key = quote(self._require_key(options), safe="")
        url = (
            f"{self._base_url(options)}/models/{self._model(options)}"
            f":streamGenerateContent?alt=sse&key={key}"
        )
        return Request.with_json(provider=self.name, url=url, payload=payload)


def _strip_array_punctuation(payload: str) -> str:
    stripped = payload.strip()
    if stripped.startswith(","):
        stripped = stripped[1:].lstrip()
    if stripped.startswith("[") and not stripped.endswith("]"):
        stripped = stripped[1:]
    elif stripped.endswith("]") and not stripped.startswith("["):
        stripped = stripped[:-1]
    return stripped.strip() or "[]"
