from llm_stream.models.request import (
    CompletionOptions,
    Conversation,
    ConversationMessage,
    Request,
    Role,
    parse_conversation,
)
from llm_stream.models.response import SKIP, DecodeResult, Delta, End, ErrorSignal, RawEvent, Skip

__all__ = [
    "CompletionOptions",
    "Conversation",
    "ConversationMessage",
    "DecodeResult",
    "Delta",
    "End",
    "ErrorSignal",
    "RawEvent",
    "Request",
    "Role",
    "SKIP",
    "Skip",
    "parse_conversation",
]
