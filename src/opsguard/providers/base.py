"""
OpsGuard LLM Provider Base

Abstract interface for LLM providers. All providers implement this
interface, so the orchestrator can swap models without changing the
conversation loop.

Key design decisions:
- Async-first (all providers are async)
- Retry with exponential backoff built into base class
- The orchestrator's transcript (TranscriptEntry list) is the input;
  each provider converts it to its own wire format
- Provider-agnostic response model (LLMResponse)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from opsguard.core.models import TranscriptEntry
from opsguard.exceptions import ProviderError
from opsguard.logging import get_logger

logger = get_logger("opsguard.providers")


class ContentBlock(BaseModel):
    """A single content block in an LLM response.

    tool_input stays raw text when the provider returns unparsed JSON, so
    malformed arguments surface as a tool validation failure.
    """
    type: str = "text"  # "text" or "tool_use"
    text: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] | str = Field(default_factory=dict)
    tool_use_id: str = ""


class LLMResponse(BaseModel):
    """Unified response from any LLM provider."""
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str = "end_turn"
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def text(self) -> str:
        """Concatenated text from all text blocks."""
        return "".join(b.text for b in self.content if b.type == "text")

    @property
    def tool_calls(self) -> list[ContentBlock]:
        """All tool_use blocks."""
        return [b for b in self.content if b.type == "tool_use"]

    @property
    def has_tool_use(self) -> bool:
        return any(b.type == "tool_use" for b in self.content)


class ProviderConfig(BaseModel):
    """Configuration for an LLM provider."""
    api_key: str | None = None
    model: str = ""
    base_url: str | None = None
    max_retries: int = 2
    timeout_seconds: float = 30.0
    retry_base_delay: float = 0.5  # exponential backoff base (0.5s, 1s, ...)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses implement _create_message_impl(). The base class wraps it
    with retry logic and converts exhausted retries into ProviderError.
    """

    def __init__(self, config: ProviderConfig | None = None):
        self._config = config or ProviderConfig()

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def model(self) -> str:
        return self._config.model

    @abstractmethod
    async def _create_message_impl(
        self,
        transcript: list[TranscriptEntry],
        *,
        tools: list[dict] | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> LLMResponse:
        ...

    async def create_message(
        self,
        transcript: list[TranscriptEntry],
        *,
        tools: list[dict] | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Create a message with automatic retry and exponential backoff.

        Args:
            transcript: Conversation so far, system entries included.
            tools: Provider-neutral tool schemas (name, description, input_schema).
            max_tokens: Maximum tokens in the response.
            temperature: Optional sampling temperature.

        Raises:
            ProviderError: After all retries failed.
        """
        last_error: Exception | None = None
        for attempt in range(self._config.max_retries + 1):
            try:
                return await self._create_message_impl(
                    transcript,
                    tools=tools,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "LLM call failed (attempt %d): %s",
                    attempt + 1,
                    e,
                    extra={"provider": self.name},
                )
                if attempt < self._config.max_retries:
                    await asyncio.sleep(self._config.retry_base_delay * (2 ** attempt))

        raise ProviderError(
            self.name,
            f"failed after {self._config.max_retries + 1} attempts: {last_error}",
        ) from last_error
