"""
OpsGuard Engine Settings

All tunables of the engine in one pydantic model. Values come from
keyword arguments or from the environment via `EngineSettings.from_env()`:

    OPSGUARD_PROVIDER            claude | openai (default: openai)
    OPSGUARD_MODEL               model id (default depends on provider)
    OPSGUARD_MAX_ITERATIONS      AwaitingModel entries per conversation (default: 3)
    OPSGUARD_MAX_TOKENS          completion token budget (default: 1000)
    OPSGUARD_TEMPERATURE         sampling temperature (default: 0.7)
    OPSGUARD_LLM_TIMEOUT         seconds per LLM call (default: 30)
    OPSGUARD_TOOL_TIMEOUT        seconds per tool invocation (default: 10)
    DATABASE_URL                 datastore (default: opsguard.db)
    OPSGUARD_AUDIT_DATABASE_URL  audit store (default: DATABASE_URL)
    OPSGUARD_MAIL_API_URL        HTTP mail API; unset means log-only sender
    OPSGUARD_MAIL_API_TOKEN      bearer token for the mail API
    OPSGUARD_MAIL_SENDER         From address
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from opsguard.exceptions import ConfigurationError

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "claude": "claude-sonnet-4-20250514",
}

_ENV_MAP = {
    "provider": "OPSGUARD_PROVIDER",
    "model": "OPSGUARD_MODEL",
    "max_iterations": "OPSGUARD_MAX_ITERATIONS",
    "max_tokens": "OPSGUARD_MAX_TOKENS",
    "temperature": "OPSGUARD_TEMPERATURE",
    "llm_timeout_seconds": "OPSGUARD_LLM_TIMEOUT",
    "tool_timeout_seconds": "OPSGUARD_TOOL_TIMEOUT",
    "database_url": "DATABASE_URL",
    "audit_database_url": "OPSGUARD_AUDIT_DATABASE_URL",
    "mail_api_url": "OPSGUARD_MAIL_API_URL",
    "mail_api_token": "OPSGUARD_MAIL_API_TOKEN",
    "mail_sender": "OPSGUARD_MAIL_SENDER",
}


class EngineSettings(BaseModel):
    """Configuration for one AgentEngine."""

    provider: Literal["claude", "openai"] = "openai"
    model: str = ""
    max_iterations: int = Field(default=3, ge=1, le=20)
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)
    tool_timeout_seconds: float = Field(default=10.0, gt=0)
    database_url: str = "opsguard.db"
    audit_database_url: str = ""
    mail_api_url: str = ""
    mail_api_token: str = ""
    mail_sender: str = "noreply@opsguard.local"

    @model_validator(mode="after")
    def _fill_defaults(self) -> EngineSettings:
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]
        if not self.audit_database_url:
            self.audit_database_url = self.database_url
        return self

    @classmethod
    def from_env(cls, **overrides) -> EngineSettings:
        """Build settings from environment variables, then apply overrides."""
        values: dict[str, str] = {}
        for field_name, env_name in _ENV_MAP.items():
            raw = os.environ.get(env_name)
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid engine settings: {e.error_count()} error(s)",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e
