"""Completion provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One chat message sent to a completion provider."""

    role: Literal["system", "user", "assistant"]
    content: str

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)


class Completion(BaseModel):
    """Provider response reduced to what the agent runner stores."""

    content: str = ""
    model: str | None = None
    usage: dict[str, Any] = Field(default_factory=dict)
    finish_reason: str | None = None

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get("total_tokens") or 0)

    def to_output(self) -> dict[str, Any]:
        """Job output shape consumed by pipeline and workflow steps."""
        return {
            "output": self.content,
            "usage": self.usage,
            "model": self.model,
            "finish_reason": self.finish_reason,
        }


class CompletionProvider(ABC):
    """Abstract base class for chat completion providers.

    Implementations must be safe to call concurrently.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider name used in error reports."""
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
    ) -> Completion:
        """Generate a completion.

        Raises:
            ProviderError: If the provider returns a non-success response.
        """
        pass
