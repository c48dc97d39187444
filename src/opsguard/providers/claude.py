"""
OpsGuard Claude Provider

Wraps the Anthropic SDK (anthropic.AsyncAnthropic) behind the
unified LLMProvider interface.
"""

from __future__ import annotations

import json
from typing import Any

import anthropic

from opsguard.core.models import TranscriptEntry, TranscriptRole
from opsguard.providers.base import (
    ContentBlock,
    LLMProvider,
    LLMResponse,
    ProviderConfig,
)


def _as_dict(arguments: dict[str, Any] | str) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    try:
        decoded = json.loads(arguments)
    except (TypeError, json.JSONDecodeError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider via the official SDK.

    Falls back to the ANTHROPIC_API_KEY env var if no key is provided.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        config: ProviderConfig | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(config or ProviderConfig(model=self.DEFAULT_MODEL))
        self._client = client or anthropic.AsyncAnthropic(
            api_key=self._config.api_key or None,
            timeout=self._config.timeout_seconds,
            max_retries=0,
        )

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        return self._client

    async def _create_message_impl(
        self,
        transcript: list[TranscriptEntry],
        *,
        tools: list[dict] | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> LLMResponse:
        system, messages = self.convert_transcript(transcript)
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self._client.messages.create(**kwargs)
        return self._to_response(response)

    @staticmethod
    def convert_transcript(transcript: list[TranscriptEntry]) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and build Anthropic messages.

        Consecutive tool results are merged into one user message, as the
        Messages API requires.
        """
        system_parts: list[str] = []
        messages: list[dict[str, Any]] = []
        for entry in transcript:
            if entry.role == TranscriptRole.SYSTEM:
                system_parts.append(entry.content)
            elif entry.role == TranscriptRole.USER:
                messages.append({"role": "user", "content": entry.content})
            elif entry.role == TranscriptRole.ASSISTANT:
                blocks: list[dict[str, Any]] = []
                if entry.content:
                    blocks.append({"type": "text", "text": entry.content})
                for call in entry.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": call.call_id,
                        "name": call.tool_name,
                        "input": _as_dict(call.raw_arguments),
                    })
                messages.append({"role": "assistant", "content": blocks or entry.content})
            elif entry.role == TranscriptRole.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": entry.tool_call_id or "",
                    "content": entry.content,
                    "is_error": entry.is_error,
                }
                last = messages[-1] if messages else None
                if last and last["role"] == "user" and isinstance(last["content"], list):
                    last["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
        return "\n\n".join(system_parts), messages

    @staticmethod
    def _to_response(response: Any) -> LLMResponse:
        """Convert Anthropic API response to unified LLMResponse."""
        blocks: list[ContentBlock] = []
        for block in response.content:
            if block.type == "text":
                blocks.append(ContentBlock(type="text", text=block.text))
            elif block.type == "tool_use":
                blocks.append(ContentBlock(
                    type="tool_use",
                    tool_name=block.name,
                    tool_input=block.input,
                    tool_use_id=block.id,
                ))

        return LLMResponse(
            content=blocks,
            stop_reason=response.stop_reason or "end_turn",
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
