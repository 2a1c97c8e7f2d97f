"""Message format conversion utilities for multi-provider request bodies."""

from typing import Any, List, Optional, Tuple

from llm_stream.models.request import ConversationMessage, Role


def split_system(
    messages: List[ConversationMessage],
) -> Tuple[Optional[str], List[ConversationMessage]]:
    """
    Separate system messages from the rest of a conversation.

    Providers that take the system prompt out-of-band (Claude, Gemini) need
    it lifted out of the message list.

    Args:
        messages: Conversation in our universal format

    Returns:
        Tuple of (joined system text or None, remaining messages in order)

    Examples:
        >>> split_system([system("Be terse"), user("Hi")])
        ("Be terse", [user("Hi")])
    """
    system_parts = [m.content for m in messages if m.role == Role.SYSTEM]
    rest = [m for m in messages if m.role != Role.SYSTEM]
    system = "\n".join(system_parts) if system_parts else None
    return system, rest


def format_for_openai(message: ConversationMessage) -> dict[str, Any]:
    """
    Convert message to OpenAI format (also used by Mistral and Copilot).

    OpenAI format:
    {"role": "system" | "user" | "assistant", "content": "..."}
    """
    return {"role": message.role.value, "content": message.content}


def format_for_claude(message: ConversationMessage) -> dict[str, Any]:
    """
    Convert message to Claude's format.

    Claude only accepts "user" and "assistant" roles inside `messages`;
    system text goes to the top-level `system` field (see split_system).
    A stray system message is sent as a user turn.
    """
    role = "assistant" if message.role == Role.ASSISTANT else "user"
    return {"role": role, "content": message.content}


def format_for_gemini(message: ConversationMessage) -> dict[str, Any]:
    """
    Convert message to Gemini format.

    Gemini format:
    {
        "role": "user" | "model",
        "parts": [{"text": "..."}]
    }
    """
    # Remap role: "assistant" -> "model", everything else -> "user"
    role = "model" if message.role == Role.ASSISTANT else "user"
    return {"role": role, "parts": [{"text": message.content}]}


def join_user_prompts(messages: List[ConversationMessage]) -> str:
    """Join the content of every user message with newlines (FIM prompt)."""
    return "\n".join(m.content for m in messages if m.role == Role.USER)
