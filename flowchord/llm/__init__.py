"""Completion providers for FlowChord."""

from flowchord.llm.base import ChatMessage, Completion, CompletionProvider
from flowchord.llm.openai_compat import OpenAICompatibleProvider

__all__ = [
    "ChatMessage",
    "Completion",
    "CompletionProvider",
    "OpenAICompatibleProvider",
]
