"""LLM provider adapters: all judges talk to an LLMClient, never an SDK directly."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from cuesense.services.shared.errors import ProviderError
from cuesense.services.shared.settings import LLMSettings

logger = logging.getLogger("cuesense.llm.providers")


class LLMClient(ABC):
    """Abstract chat-completion client.

    Implementations send one system + user message pair and return the raw
    response text. Transport failures surface as ProviderError.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
        streaming: bool = True,
        timeout: float = 60.0,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.streaming = streaming
        self.timeout = timeout

    @abstractmethod
    def name(self) -> str:
        """Short provider identifier (e.g. "anthropic")."""

    @abstractmethod
    async def complete(self, system: str, prompt: str) -> str:
        """Return the model's text reply.

        Raises:
            ProviderError: On any transport or API error.
        """


class AnthropicClient(LLMClient):
    """Claude via the official async SDK. Reads ANTHROPIC_API_KEY."""

    def __init__(self, model: str, api_key: Optional[str] = None, **kwargs: Any):
        super().__init__(model, **kwargs)
        self._api_key = api_key
        self._client: Any = None

    def name(self) -> str:
        return "anthropic"

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key or os.getenv("ANTHROPIC_API_KEY"),
                timeout=self.timeout,
            )
        return self._client

    async def complete(self, system: str, prompt: str) -> str:
        import anthropic
        client = self._get_client()
        request = dict(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        try:
            if self.streaming:
                async with client.messages.stream(**request) as stream:
                    parts = [text async for text in stream.text_stream]
                return "".join(parts)
            message = await client.messages.create(**request)
        except anthropic.APIError as exc:
            raise ProviderError(f"Anthropic request failed: {exc}") from exc
        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )


class OpenAIClient(LLMClient):
    """OpenAI chat completions; also any OpenAI-compatible server via ``base_url``."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(model, **kwargs)
        self._api_key = api_key
        self.base_url = base_url
        self._client: Any = None

    def name(self) -> str:
        return "openai"

    def _get_client(self) -> Any:
        if self._client is None:
            import openai
            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key and self.base_url:
                # Local servers usually ignore the key but the SDK requires one
                api_key = "local"
            self._client = openai.AsyncOpenAI(
                api_key=api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def complete(self, system: str, prompt: str) -> str:
        import openai
        client = self._get_client()
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ]
        try:
            if self.streaming:
                stream = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    stream=True,
                )
                parts = []
                async for chunk in stream:
                    if chunk.choices and chunk.choices[0].delta.content:
                        parts.append(chunk.choices[0].delta.content)
                return "".join(parts)
            resp = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI request failed: {exc}") from exc
        return resp.choices[0].message.content or ""


def create_client(settings: LLMSettings) -> LLMClient:
    """Build the configured provider client.

    Raises:
        ValueError: For an unknown provider name.
    """
    common = dict(
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        streaming=settings.streaming,
        timeout=settings.timeout,
    )
    if settings.provider == "anthropic":
        client: LLMClient = AnthropicClient(settings.model, **common)
    elif settings.provider == "openai":
        client = OpenAIClient(settings.model, base_url=settings.base_url, **common)
    else:
        raise ValueError(f"Unknown LLM provider: {settings.provider!r}")
    logger.info("LLM provider: %s (model=%s, streaming=%s)", client.name(), client.model, client.streaming)
    return client
