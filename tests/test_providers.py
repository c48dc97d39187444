"""Tests for the OpsGuard provider abstraction layer.

Covers:
- LLMResponse properties
- Retry with backoff and ProviderError
- ClaudeProvider transcript/response conversion
- OpenAIProvider transcript/response conversion
- Provider factory
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from opsguard.core.models import ToolInvocationRequest, TranscriptEntry, TranscriptRole
from opsguard.exceptions import ProviderError
from opsguard.providers import ClaudeProvider, create_provider
from opsguard.providers.base import ContentBlock, LLMProvider, LLMResponse, ProviderConfig
from opsguard.providers.openai import OpenAIProvider


def _transcript() -> list[TranscriptEntry]:
    call_a = ToolInvocationRequest(tool_name="get_delivery", raw_arguments={"delivery_id": 42}, call_id="c1")
    call_b = ToolInvocationRequest(tool_name="get_my_deliveries", raw_arguments="{}", call_id="c2")
    return [
        TranscriptEntry(role=TranscriptRole.SYSTEM, content="You help drivers."),
        TranscriptEntry(role=TranscriptRole.USER, content="show me delivery 42"),
        TranscriptEntry(role=TranscriptRole.ASSISTANT, content="", tool_calls=[call_a, call_b]),
        TranscriptEntry(role=TranscriptRole.TOOL, content='{"found": false}', tool_call_id="c1", name="get_delivery"),
        TranscriptEntry(
            role=TranscriptRole.TOOL, content='{"error": "x"}', tool_call_id="c2",
            name="get_my_deliveries", is_error=True,
        ),
    ]


# ─── LLMResponse ──────────────────────────────────────────


class TestLLMResponse:
    def test_text_property(self):
        response = LLMResponse(
            content=[ContentBlock(type="text", text="Hello "), ContentBlock(type="text", text="world")],
        )
        assert response.text == "Hello world"
        assert not response.has_tool_use

    def test_tool_calls_property(self):
        response = LLMResponse(
            content=[
                ContentBlock(type="text", text="Let me check"),
                ContentBlock(type="tool_use", tool_name="get_delivery", tool_input={"delivery_id": 1}),
            ],
            stop_reason="tool_use",
        )
        assert len(response.tool_calls) == 1
        assert response.has_tool_use


# ─── Retry ───────────────────────────────────────────────


class _FlakyProvider(LLMProvider):
    def __init__(self, failures: int):
        super().__init__(ProviderConfig(max_retries=2, retry_base_delay=0.0))
        self.failures = failures
        self.attempts = 0

    async def _create_message_impl(self, transcript, *, tools=None, max_tokens=1000, temperature=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("reset")
        return LLMResponse(content=[ContentBlock(type="text", text="ok")])


class TestRetry:
    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        provider = _FlakyProvider(failures=2)
        response = await provider.create_message([])
        assert response.text == "ok"
        assert provider.attempts == 3

    @pytest.mark.asyncio
    async def test_raises_provider_error_when_exhausted(self):
        provider = _FlakyProvider(failures=5)
        with pytest.raises(ProviderError, match="failed after 3 attempts"):
            await provider.create_message([])
        assert provider.attempts == 3


# ─── Claude ──────────────────────────────────────────────


class TestClaudeProvider:
    def test_convert_transcript(self):
        system, messages = ClaudeProvider.convert_transcript(_transcript())
        assert system == "You help drivers."
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]

        tool_uses = messages[1]["content"]
        assert [b["id"] for b in tool_uses] == ["c1", "c2"]
        assert tool_uses[0]["input"] == {"delivery_id": 42}
        assert tool_uses[1]["input"] == {}

        results = messages[2]["content"]
        assert [b["tool_use_id"] for b in results] == ["c1", "c2"]
        assert [b["is_error"] for b in results] == [False, True]

    def test_to_response(self):
        text_block = MagicMock(type="text", text="Checking")
        tool_block = MagicMock(type="tool_use", input={"delivery_id": 42}, id="toolu_1")
        tool_block.name = "get_delivery"
        raw = MagicMock(
            content=[text_block, tool_block],
            stop_reason="tool_use",
            model="claude-test",
            usage=MagicMock(input_tokens=10, output_tokens=5),
        )
        response = ClaudeProvider._to_response(raw)
        assert response.text == "Checking"
        assert response.tool_calls[0].tool_name == "get_delivery"
        assert response.tool_calls[0].tool_use_id == "toolu_1"
        assert response.input_tokens == 10

    @pytest.mark.asyncio
    async def test_create_message_passes_system_and_tools(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=MagicMock(
            content=[MagicMock(type="text", text="hi")],
            stop_reason="end_turn",
            model="claude-test",
            usage=MagicMock(input_tokens=1, output_tokens=1),
        ))
        provider = ClaudeProvider(ProviderConfig(model="claude-test"), client=client)
        tools = [{"name": "t", "description": "d", "input_schema": {"type": "object"}}]
        response = await provider.create_message(_transcript()[:2], tools=tools, max_tokens=50)

        assert response.text == "hi"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "You help drivers."
        assert kwargs["tools"] == tools
        assert kwargs["max_tokens"] == 50


# ─── OpenAI ──────────────────────────────────────────────


class TestOpenAIProvider:
    def test_convert_transcript(self):
        messages = OpenAIProvider.convert_transcript(_transcript())
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "tool"]
        calls = messages[2]["tool_calls"]
        assert calls[0]["function"]["arguments"] == '{"delivery_id": 42}'
        assert calls[1]["function"]["arguments"] == "{}"
        assert messages[3]["tool_call_id"] == "c1"

    def test_convert_tools(self):
        converted = OpenAIProvider._convert_tools(
            [{"name": "t", "description": "d", "input_schema": {"type": "object"}}]
        )
        assert converted == [
            {"type": "function", "function": {"name": "t", "description": "d", "parameters": {"type": "object"}}}
        ]

    def test_to_response_keeps_raw_arguments(self):
        tool_call = MagicMock(id="call_1")
        tool_call.function.name = "get_delivery"
        tool_call.function.arguments = '{"delivery_id": 42}'
        raw = MagicMock(
            choices=[MagicMock(
                message=MagicMock(content=None, tool_calls=[tool_call]),
                finish_reason="tool_calls",
            )],
            model="gpt-test",
            usage=MagicMock(prompt_tokens=3, completion_tokens=2),
        )
        response = OpenAIProvider._to_response(raw)
        assert response.stop_reason == "tool_use"
        assert response.tool_calls[0].tool_input == '{"delivery_id": 42}'
        assert response.output_tokens == 2

    @pytest.mark.asyncio
    async def test_create_message_uses_completion_token_budget(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=MagicMock(
            choices=[MagicMock(message=MagicMock(content="hi", tool_calls=None), finish_reason="stop")],
            model="gpt-test",
            usage=None,
        ))
        provider = OpenAIProvider(ProviderConfig(model="gpt-test"), client=client)
        await provider.create_message(_transcript()[:2], tools=[{"name": "t", "input_schema": {}}], max_tokens=1000)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["max_completion_tokens"] == 1000
        assert kwargs["tool_choice"] == "auto"


# ─── Factory ─────────────────────────────────────────────


class TestFactory:
    def test_create_claude(self):
        provider = create_provider("claude", api_key="sk-test")
        assert isinstance(provider, ClaudeProvider)
        assert provider.model == ClaudeProvider.DEFAULT_MODEL

    def test_create_openai(self):
        provider = create_provider("openai", api_key="sk-test", model="gpt-4o-mini")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_provider("llama-farm")
