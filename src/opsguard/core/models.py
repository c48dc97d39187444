"""
OpsGuard Core Data Models

All shared types used across the engine. This module is the foundation
that every other component imports from. It must have zero internal
dependencies beyond pydantic.
"""

import json
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ─── Enums ───────────────────────────────────────────────────

class Role(str, Enum):
    """Actor roles. Owner and admin are privileged."""
    OWNER = "owner"
    ADMIN = "admin"
    SUPPLIER = "supplier"
    DRIVER = "driver"
    CUSTOMER = "customer"


PRIVILEGED_ROLES = frozenset({Role.OWNER, Role.ADMIN})


class QueryOperation(str, Enum):
    """Data operation class of a SQL statement."""
    READ = "READ"
    WRITE = "WRITE"


class ErrorKind(str, Enum):
    """Failure taxonomy reported in tool results and audit records."""
    UNSAFE_QUERY = "UnsafeQuery"
    UNAUTHORIZED = "Unauthorized"
    VALIDATION_ERROR = "ValidationError"
    TIMEOUT = "Timeout"
    UPSTREAM_FAILURE = "UpstreamFailure"
    ITERATION_CAP_EXCEEDED = "IterationCapExceeded"


class ConversationStatus(str, Enum):
    """Orchestrator state machine states."""
    IDLE = "Idle"
    AWAITING_MODEL = "AwaitingModel"
    EXECUTING_TOOLS = "ExecutingTools"
    DONE = "Done"
    ABORTED = "Aborted"


class TranscriptRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class _CamelModel(BaseModel):
    """Models serialized on the HTTP surface with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Request Identity ────────────────────────────────────────

class ActorContext(BaseModel):
    """Who a request runs on behalf of.

    Supplied by the caller and never derived from the transcript.
    """
    model_config = ConfigDict(frozen=True)

    actor_id: str
    role: Role
    tenant_id: int | None = None

    @field_validator("actor_id")
    @classmethod
    def _actor_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("actor_id must not be empty")
        return value

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


# ─── Tool Invocation ─────────────────────────────────────────

class ToolInvocationRequest(BaseModel):
    """One tool call requested by the LLM. Consumed once."""
    request_id: str = Field(default_factory=lambda: f"inv-{uuid.uuid4().hex[:12]}")
    tool_name: str
    raw_arguments: dict[str, Any] | str = Field(default_factory=dict)
    call_id: str = ""


class ToolExecutionResult(_CamelModel):
    """Outcome of one tool invocation, success or failure."""
    request_id: str
    tool_name: str
    success: bool
    payload: Any = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    duration_ms: float = 0.0
    rows_affected: int | None = None

    def transcript_content(self) -> str:
        """Render the result as the content of a `tool` transcript message."""
        if self.success:
            return json.dumps(self.payload, default=str)
        return json.dumps(
            {"error": self.error, "errorKind": self.error_kind.value if self.error_kind else None}
        )


# ─── Audit ───────────────────────────────────────────────────

class AuditRecord(BaseModel):
    """Append-only description of one tool invocation.

    sequence, previous_hash and record_hash are assigned by the recorder
    when the record is chained.
    """
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str
    actor_id: str
    role: Role
    tool_name: str
    arguments_digest: str
    success: bool
    duration_ms: float
    rows_affected: int | None = None
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    sequence: int | None = None
    previous_hash: str = ""
    record_hash: str = ""


# ─── Conversation ────────────────────────────────────────────

class TranscriptEntry(BaseModel):
    """A single message in the conversation transcript."""
    role: TranscriptRole
    content: str = ""
    tool_calls: list[ToolInvocationRequest] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False


class ConversationState(BaseModel):
    """Transcript plus iteration counter, owned by one in-flight request."""
    conversation_id: str = Field(default_factory=lambda: f"conv-{uuid.uuid4().hex[:12]}")
    actor: ActorContext
    entries: list[TranscriptEntry] = Field(default_factory=list)
    iterations: int = 0
    status: ConversationStatus = ConversationStatus.IDLE
    results: list[ToolExecutionResult] = Field(default_factory=list)

    def append(self, role: TranscriptRole, content: str = "", **kwargs: Any) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, content=content, **kwargs)
        self.entries.append(entry)
        return entry


class AgentResponse(_CamelModel):
    """Final answer returned to the caller of the chat surface."""
    message: str
    tool_calls: list[ToolExecutionResult] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    status: ConversationStatus = ConversationStatus.DONE
    conversation_id: str = ""
    iterations: int = 0
