"""
OpsGuard OpenAI Provider

Wraps the OpenAI chat completions API behind the unified LLMProvider
interface.

Requires: `pip install 'opsguard[openai]'`
Set OPENAI_API_KEY environment variable.

Also compatible with OpenAI-compatible APIs (Azure, Together, Groq)
via base_url override.
"""

from __future__ import annotations

import json
from typing import Any

from opsguard.core.models import TranscriptEntry, TranscriptRole
from opsguard.providers.base import (
    ContentBlock,
    LLMProvider,
    LLMResponse,
    ProviderConfig,
)


class OpenAIProvider(LLMProvider):
    """OpenAI and OpenAI-compatible provider."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, config: ProviderConfig | None = None, client: Any = None):
        super().__init__(config or ProviderConfig(model=self.DEFAULT_MODEL))
        self._client = client or self._create_client()

    def _create_client(self) -> Any:
        """Create OpenAI async client. Imports openai lazily."""
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ImportError(
                "OpenAI provider requires the 'openai' package. "
                "Install with: pip install 'opsguard[openai]'"
            ) from e

        kwargs: dict[str, Any] = {"timeout": self._config.timeout_seconds, "max_retries": 0}
        if self._config.api_key:
            kwargs["api_key"] = self._config.api_key
        if self._config.base_url:
            kwargs["base_url"] = self._config.base_url
        return AsyncOpenAI(**kwargs)

    async def _create_message_impl(
        self,
        transcript: list[TranscriptEntry],
        *,
        tools: list[dict] | None = None,
        max_tokens: int = 1000,
        temperature: float | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_completion_tokens": max_tokens,
            "messages": self.convert_transcript(transcript),
        }
        if tools:
            kwargs["tools"] = self._convert_tools(tools)
            kwargs["tool_choice"] = "auto"
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self._client.chat.completions.create(**kwargs)
        return self._to_response(response)

    @staticmethod
    def convert_transcript(transcript: list[TranscriptEntry]) -> list[dict[str, Any]]:
        """Convert transcript entries to chat completion messages."""
        messages: list[dict[str, Any]] = []
        for entry in transcript:
            if entry.role == TranscriptRole.ASSISTANT:
                msg: dict[str, Any] = {"role": "assistant", "content": entry.content or None}
                if entry.tool_calls:
                    msg["tool_calls"] = [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.tool_name,
                                "arguments": call.raw_arguments
                                if isinstance(call.raw_arguments, str)
                                else json.dumps(call.raw_arguments),
                            },
                        }
                        for call in entry.tool_calls
                    ]
                messages.append(msg)
            elif entry.role == TranscriptRole.TOOL:
                messages.append({
                    "role": "tool",
                    "tool_call_id": entry.tool_call_id or "",
                    "content": entry.content,
                })
            else:
                messages.append({"role": entry.role.value, "content": entry.content})
        return messages

    @staticmethod
    def _convert_tools(tools: list[dict]) -> list[dict]:
        """Convert neutral tool schemas to OpenAI function calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("input_schema", {}),
                },
            }
            for tool in tools
        ]

    @staticmethod
    def _to_response(response: Any) -> LLMResponse:
        """Convert OpenAI API response to unified LLMResponse."""
        choice = response.choices[0] if response.choices else None
        if not choice:
            return LLMResponse()

        blocks: list[ContentBlock] = []
        msg = choice.message
        if msg.content:
            blocks.append(ContentBlock(type="text", text=msg.content))
        for tc in msg.tool_calls or []:
            blocks.append(
                ContentBlock(
                    type="tool_use",
                    tool_name=tc.function.name,
                    tool_input=tc.function.arguments,
                    tool_use_id=tc.id,
                )
            )

        stop_reason_map = {
            "stop": "end_turn",
            "tool_calls": "tool_use",
            "length": "max_tokens",
            "content_filter": "end_turn",
        }
        usage = response.usage
        return LLMResponse(
            content=blocks,
            stop_reason=stop_reason_map.get(choice.finish_reason or "stop", "end_turn"),
            model=response.model or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
