import logging
from typing import Dict, List, Type

from llm_stream.providers.anthropic import AnthropicProvider
from llm_stream.providers.base import BaseProvider
from llm_stream.providers.copilot import CopilotProvider
from llm_stream.providers.gemini import GeminiProvider
from llm_stream.providers.mistral import MistralFIMProvider, MistralProvider
from llm_stream.providers.openai import OpenAIProvider
from llm_stream.utils.exceptions import raise_unknown_provider

logger = logging.getLogger(__name__)


# Mapping of provider types to their classes
PROVIDER_CLASSES: Dict[str, Type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GeminiProvider,
    "mistral": MistralProvider,
    "mistral-fim": MistralFIMProvider,
    "copilot": CopilotProvider,
}

# Alternate spellings accepted on the command line and in config files
PROVIDER_ALIASES: Dict[str, str] = {
    "gemini": "google",
    "claude": "anthropic",
    "mistral_fim": "mistral-fim",
    "mistralfim": "mistral-fim",
    "github-copilot": "copilot",
    "github_copilot": "copilot",
}


class ProviderRegistry:
    """Central registry of provider adapter classes.

    Adapters hold per-stream decode state, so the registry hands out a new
    instance on every `create` call rather than sharing one.
    """

    def __init__(self):
        self._classes: Dict[str, Type[BaseProvider]] = dict(PROVIDER_CLASSES)
        self._aliases: Dict[str, str] = dict(PROVIDER_ALIASES)

    def register(self, provider_class: Type[BaseProvider], *aliases: str) -> None:
        """Add a provider class under its `name` (and optional aliases)."""
        if provider_class.name in self._classes:
            logger.warning(f"Replacing provider '{provider_class.name}'")
        self._classes[provider_class.name] = provider_class
        for alias in aliases:
            self._aliases[alias.lower()] = provider_class.name

    def resolve(self, name: str) -> str:
        """Normalize a provider name or alias to its canonical name."""
        key = name.strip().lower()
        key = self._aliases.get(key, key)
        if key not in self._classes:
            raise_unknown_provider(name)
        return key

    def get_class(self, name: str) -> Type[BaseProvider]:
        return self._classes[self.resolve(name)]

    def create(self, name: str) -> BaseProvider:
        """Instantiate a fresh adapter for one stream."""
        return self.get_class(name)()

    def get_provider_names(self) -> List[str]:
        """Return canonical names of all registered providers"""
        return list(self._classes.keys())


# Singleton instance
provider_registry = ProviderRegistry()
