"""
Prompt composition: templates, template variables and conversation assembly.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from jinja2 import DebugUndefined, TemplateSyntaxError, UndefinedError
from jinja2.sandbox import SandboxedEnvironment

from llm_stream.config import Template
from llm_stream.models.request import ConversationMessage, Role
from llm_stream.utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Sandboxed so config-file templates cannot reach into Python objects.
# DebugUndefined leaves unknown variables visible in the output.
_jinja_env = SandboxedEnvironment(
    autoescape=False,
    undefined=DebugUndefined,
    keep_trailing_newline=True,
)


def merge_vars(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge `overrides` into a copy of `base`.

    Nested objects merge recursively; a None value removes the key.

    Examples:
        >>> merge_vars({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}, "a": None})
        {"b": {"c": 2, "d": 3}}
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            merged.pop(key, None)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_vars(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def render_template(source: str, context: Dict[str, Any]) -> str:
    """Render a Jinja2 template string in the sandbox."""
    try:
        return _jinja_env.from_string(source).render(**context)
    except (TemplateSyntaxError, UndefinedError) as e:
        raise ConfigError(f"Template rendering failed: {e}") from e


def compose_prompt(
    prompt: str,
    stdin: str = "",
    template: Optional[Template] = None,
    system: Optional[str] = None,
    suffix: Optional[str] = None,
    language: Optional[str] = None,
    variables: Optional[Dict[str, Any]] = None,
) -> tuple[str, Optional[str]]:
    """
    Build the user prompt and system prompt for one request.

    Without a template, file/stdin input is placed before the prompt. With a
    template, the context holds prompt, system, stdin, suffix and language,
    overlaid with the template's default_vars and then `variables`.

    Returns:
        Tuple of (user prompt, system prompt or None)
    """
    if template is None:
        if stdin:
            return f"{stdin}\n{prompt}", system
        return prompt, system

    context: Dict[str, Any] = {
        "prompt": prompt,
        "system": system or "",
        "stdin": stdin,
        "suffix": suffix or "",
        "language": language,
    }
    template_vars = merge_vars(template.default_vars or {}, variables or {})
    context = merge_vars(context, template_vars)
    logger.debug(f"Rendering template '{template.name}' with keys {sorted(context)}")

    if template.system:
        system = render_template(template.system, context)
    return render_template(template.template, context), system


def build_conversation(
    prompt: str,
    history: Optional[List[ConversationMessage]] = None,
    system: Optional[str] = None,
) -> List[ConversationMessage]:
    """Prior turns, then the new user prompt, with the system prompt first."""
    messages = list(history or [])
    messages.append(ConversationMessage(role=Role.USER, content=prompt))
    if system:
        messages.insert(0, ConversationMessage(role=Role.SYSTEM, content=system))
    return messages
