"""
OpsGuard LLM Provider Abstraction

Providers wrap different LLM APIs (Anthropic, OpenAI) behind a common
interface that accepts the orchestrator's transcript.

Usage:
    from opsguard.providers import create_provider

    provider = create_provider("openai", model="gpt-4o-mini")
    response = await provider.create_message(transcript, tools=schemas)
"""

from opsguard.providers.base import ContentBlock, LLMProvider, LLMResponse, ProviderConfig
from opsguard.providers.claude import ClaudeProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ContentBlock",
    "ProviderConfig",
    "ClaudeProvider",
    "create_provider",
]


def create_provider(
    name: str = "openai",
    *,
    api_key: str | None = None,
    model: str | None = None,
    timeout_seconds: float = 30.0,
) -> LLMProvider:
    """Factory function to create an LLM provider by name.

    Args:
        name: Provider name ("claude" or "openai").
        api_key: Optional API key override.
        model: Optional model name override.
        timeout_seconds: Per-request HTTP timeout.
    """
    name_lower = name.lower()

    if name_lower in ("claude", "anthropic"):
        config = ProviderConfig(
            api_key=api_key, model=model or ClaudeProvider.DEFAULT_MODEL, timeout_seconds=timeout_seconds
        )
        return ClaudeProvider(config)
    elif name_lower == "openai":
        from opsguard.providers.openai import OpenAIProvider

        config = ProviderConfig(
            api_key=api_key, model=model or OpenAIProvider.DEFAULT_MODEL, timeout_seconds=timeout_seconds
        )
        return OpenAIProvider(config)
    else:
        raise ValueError(f"Unknown provider: {name}. Supported: claude, openai")
