from llm_stream.providers.base import OpenAIFormatProvider


class OpenAIProvider(OpenAIFormatProvider):
    """OpenAI GPT provider."""

    name = "openai"
    default_url = "https://api.openai.com/v1"
    default_model = "gpt-4o"
    default_env = "OPENAI_API_KEY"
