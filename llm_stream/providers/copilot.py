"""
GitHub Copilot chat provider.

Copilot's chat endpoint is OpenAI-compatible but requires integration and
editor headers. Its streams open with frames whose `choices` list is empty
(prompt filter annotations) and may carry `content: null` deltas, and when
several choices are present the text is not always on index 0.
"""

from typing import Dict, List, Optional

from llm_stream.models.request import CompletionOptions
from llm_stream.providers.base import OpenAIFormatProvider

COPILOT_INTEGRATION_ID = "vscode-chat"
EDITOR_VERSION = "llm-stream/0.3.0"


class CopilotProvider(OpenAIFormatProvider):
    """GitHub Copilot provider - OpenAI-compatible with extra headers."""

    name = "copilot"
    default_url = "https://api.githubcopilot.com"
    default_model = "gpt-4o"
    default_env = "GITHUB_COPILOT_TOKEN"

    def _select_choice(self, choices: List[dict]) -> Optional[dict]:
        # Prefer the first choice that actually carries text
        for choice in choices:
            delta = choice.get("delta") or {}
            if delta.get("content"):
                return choice
        return choices[0] if choices else None

    def _headers(self, options: CompletionOptions) -> Dict[str, str]:
        headers = super()._headers(options)
        headers.update(
            {
                "Copilot-Integration-Id": COPILOT_INTEGRATION_ID,
                "Editor-Version": EDITOR_VERSION,
            }
        )
        return headers
