from enum import Enum
from typing import Dict, List, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Role(str, Enum):
    """Actor speaking in a conversation. Converted per provider on request build."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ConversationMessage(BaseModel):
    role: Role = Role.USER
    content: str

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"role": "system", "content": "You are a terse assistant."},
                {"role": "user", "content": "What is the capital of France?"},
            ]
        }
    )


Conversation = List[ConversationMessage]

_conversation_adapter = TypeAdapter(Conversation)


def parse_conversation(raw: str | bytes) -> Conversation:
    """Parse a JSON array of {"role", "content"} objects into a conversation."""
    return _conversation_adapter.validate_json(raw)


class CompletionOptions(BaseModel):
    """Model and sampling parameters shared by every provider's request builder"""

    model: Optional[str] = None
    system: Optional[str] = None
    max_tokens: Optional[int] = None
    min_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    suffix: Optional[str] = None
    api_version: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None


class Request(BaseModel):
    """Fully resolved HTTP request for one streaming completion.

    `provider` names the adapter used to decode the response stream; the
    body is opaque bytes as far as the streaming core is concerned.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def redacted_url(self) -> str:
        """URL without its query string (Gemini puts the API key there)."""
        return self.url.split("?", 1)[0]

    @classmethod
    def with_json(
        cls,
        provider: str,
        url: str,
        payload: dict,
        headers: Optional[Dict[str, str]] = None,
    ) -> "Request":
        """Build a POST request whose body is `payload` serialized as JSON."""
        merged = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        merged.update(headers or {})
        return cls(
            provider=provider,
            url=url,
            headers=merged,
            body=orjson.dumps(payload),
        )
