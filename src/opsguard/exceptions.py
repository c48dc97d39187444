"""
OpsGuard Custom Exceptions

Structured exception hierarchy for the OpsGuard engine.
All OpsGuard-specific exceptions inherit from OpsGuardError.

Exception hierarchy:
    OpsGuardError
    +-- ConfigurationError            (invalid settings or policy table)
    +-- DuplicateToolError            (tool name registered twice)
    +-- ToolNotFoundError             (unknown tool name)
    +-- ToolFailure                   (failure inside a tool invocation)
    |   +-- UnsafeQueryError          (denylisted SQL construct)
    |   +-- UnauthorizedError         (role/table/operation mismatch)
    |   +-- ToolValidationError       (malformed tool arguments)
    |   +-- ToolTimeoutError          (handler deadline exceeded)
    |   +-- UpstreamFailureError      (datastore or notification sender)
    +-- IterationCapExceededError     (conversation hit the iteration cap)
    +-- ProviderError                 (LLM provider failure)
    +-- OpsGuardAPIError              (API layer error)

ToolFailure subclasses carry the ErrorKind the Tool Executor reports in
the ToolExecutionResult.
"""

from __future__ import annotations

from opsguard.core.models import ErrorKind


class OpsGuardError(Exception):
    """Base exception for all OpsGuard errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(OpsGuardError):
    """Raised when settings or the policy table are invalid."""


class DuplicateToolError(OpsGuardError):
    """Raised when a tool name is registered twice."""

    def __init__(self, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' is already registered",
            details={"tool_name": tool_name},
        )
        self.tool_name = tool_name


class ToolNotFoundError(OpsGuardError):
    """Raised when resolving a tool name that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' is not registered",
            details={"tool_name": tool_name},
        )
        self.tool_name = tool_name


class ToolFailure(OpsGuardError):
    """Base class for failures the executor turns into a failed result."""

    error_kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE


class UnsafeQueryError(ToolFailure):
    """Raised when a query contains a denylisted construct."""

    error_kind = ErrorKind.UNSAFE_QUERY


class UnauthorizedError(ToolFailure):
    """Raised when a role may not use a tool, table or operation."""

    error_kind = ErrorKind.UNAUTHORIZED


class ToolValidationError(ToolFailure):
    """Raised when tool arguments do not match the parameter schema."""

    error_kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class ToolTimeoutError(ToolFailure):
    """Raised when a tool handler exceeds its deadline."""

    error_kind = ErrorKind.TIMEOUT


class UpstreamFailureError(ToolFailure):
    """Raised when the datastore or the notification sender fails."""

    error_kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, component: str, message: str, details: dict | None = None):
        super().__init__(
            f"{component} failure: {message}",
            details={"component": component, **(details or {})},
        )
        self.component = component


class IterationCapExceededError(OpsGuardError):
    """Raised when a conversation reaches its iteration cap.

    The orchestrator reports this as an Aborted response rather than
    letting it escape; it exists so callers can raise on that outcome.
    """

    error_kind = ErrorKind.ITERATION_CAP_EXCEEDED

    def __init__(self, max_iterations: int):
        super().__init__(
            "Max iterations reached",
            details={"max_iterations": max_iterations},
        )
        self.max_iterations = max_iterations


class ProviderError(OpsGuardError):
    """Base exception for LLM provider errors."""

    def __init__(self, provider_name: str, message: str, details: dict | None = None):
        super().__init__(
            f"Provider '{provider_name}' error: {message}",
            details={"provider_name": provider_name, **(details or {})},
        )
        self.provider_name = provider_name


class OpsGuardAPIError(OpsGuardError):
    """Raised for API layer errors (FastAPI endpoints)."""

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        super().__init__(
            message,
            details={"status_code": status_code, **(details or {})},
        )
        self.status_code = status_code
