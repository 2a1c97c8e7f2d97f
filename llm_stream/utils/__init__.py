from llm_stream.utils.sse import SSEDecoder
from llm_stream.utils.message_helpers import format_for_claude, format_for_gemini, format_for_openai

__all__ = ["SSEDecoder", "format_for_claude", "format_for_gemini", "format_for_openai"]
