from llm_stream.providers.base import BaseProvider, OpenAIFormatProvider
from llm_stream.providers.registry import provider_registry

__all__ = ["BaseProvider", "OpenAIFormatProvider", "provider_registry"]
