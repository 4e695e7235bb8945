"""OpenAI-compatible chat completion provider.

Talks to ``POST {base_url}/chat/completions`` over httpx, so it works with
OpenAI itself and any server exposing the same REST surface.
"""

from __future__ import annotations

from typing import Any

import httpx

from flowchord.errors.exceptions import MissingAPIKeyError, ProviderError
from flowchord.llm.base import ChatMessage, Completion, CompletionProvider


def provider_error_message(response: httpx.Response, provider: str = "OpenAI") -> str:
    """Prefer the provider's own ``error.message``, else a status-line message."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"{provider} API error: {response.status_code} {response.reason_phrase}"


class OpenAICompatibleProvider(CompletionProvider):
    """Chat completions over the OpenAI REST API.

    Example:
        >>> provider = OpenAICompatibleProvider(api_key="sk-...")
        >>> completion = await provider.complete(
        ...     [ChatMessage.user("Hello")], model="gpt-4o-mini", temperature=0.7
        ... )
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            api_key: Bearer token.
            base_url: API base, without trailing slash.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        if not api_key:
            raise MissingAPIKeyError("OpenAI")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
    ) -> Completion:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [message.model_dump() for message in messages],
            "temperature": temperature,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions", json=payload, headers=headers
                )
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"Request to OpenAI timed out after {self._timeout}s",
                provider=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI request failed: {e}", provider=self.provider_name) from e

        if not response.is_success:
            raise ProviderError(
                provider_error_message(response),
                provider=self.provider_name,
                status_code=response.status_code,
            )

        data = response.json()
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        return Completion(
            content=message.get("content") or "",
            model=data.get("model", model),
            usage=data.get("usage") or {},
            finish_reason=choice.get("finish_reason"),
        )
