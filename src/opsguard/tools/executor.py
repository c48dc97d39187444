"""
OpsGuard Tool Executor

Runs one tool invocation end to end and always returns a
ToolExecutionResult:

1. Decode the raw arguments (dict or JSON text)
2. Validate them against the tool's JSON Schema
3. Call the handler with a fresh ToolContext under the invocation deadline
4. Convert any failure into success=False with an ErrorKind
5. Write an AuditRecord for the attempt, whatever the outcome

This is the single place where handler exceptions become data, so one
failing tool never aborts its siblings in the same round.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from typing import Any

from jsonschema import Draft202012Validator

from opsguard.audit.recorder import AuditRecorder, digest_arguments
from opsguard.core.models import (
    ActorContext,
    AuditRecord,
    ErrorKind,
    ToolExecutionResult,
    ToolInvocationRequest,
)
from opsguard.exceptions import (
    ToolFailure,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
    UnauthorizedError,
)
from opsguard.gate.authorizer import QueryAuthorizationGate
from opsguard.logging import get_logger
from opsguard.notify.sender import NotificationSender
from opsguard.observability.metrics import record_tool_call
from opsguard.observability.tracing import get_tracer
from opsguard.storage.datastore import Datastore
from opsguard.tools.context import ToolContext
from opsguard.tools.models import ToolSpec
from opsguard.tools.registry import ToolRegistry

logger = get_logger("opsguard.tools.executor")

# Failures operators should hear about, not just the model
_OPERATOR_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.UPSTREAM_FAILURE})


def decode_arguments(raw: dict[str, Any] | str) -> dict[str, Any]:
    """Turn raw LLM tool arguments into a dict.

    Raises:
        ToolValidationError: If the text is not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ToolValidationError(f"arguments are not valid JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise ToolValidationError("arguments must be a JSON object")
    return decoded


def validate_arguments(spec: ToolSpec, arguments: dict[str, Any]) -> None:
    """Validate arguments against the tool's parameter schema.

    Raises:
        ToolValidationError: Listing every schema violation.
    """
    validator = Draft202012Validator(spec.parameter_schema)
    errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.path))
    if errors:
        messages = []
        for err in errors:
            where = ".".join(str(p) for p in err.path) or "arguments"
            messages.append(f"{where}: {err.message}")
        raise ToolValidationError(f"invalid arguments for {spec.name}: {messages[0]}", messages)


class ToolExecutor:
    """Executes tool invocations for one engine."""

    def __init__(
        self,
        registry: ToolRegistry,
        gate: QueryAuthorizationGate,
        datastore: Datastore,
        recorder: AuditRecorder,
        notifier: NotificationSender | None = None,
        default_timeout: float = 10.0,
    ):
        self._registry = registry
        self._gate = gate
        self._datastore = datastore
        self._recorder = recorder
        self._notifier = notifier
        self._default_timeout = default_timeout

    async def invoke(
        self,
        request: ToolInvocationRequest,
        actor: ActorContext,
        deadline: float | None = None,
    ) -> ToolExecutionResult:
        """Resolve a requested tool for the actor's role, then execute it.

        A tool that does not exist or that the role cannot see fails as
        Unauthorized without running anything.
        """
        try:
            spec = self._registry.resolve(request.tool_name)
        except ToolNotFoundError:
            spec = None

        if spec is None or not self._registry.is_available(spec, actor.role):
            error = UnauthorizedError(
                f"tool {request.tool_name} is not available to role {actor.role.value}"
            )
            return await self._finish(
                request.request_id, request.tool_name, actor, request.raw_arguments,
                time.monotonic(), error=error,
            )
        return await self.execute(spec, request.raw_arguments, actor, deadline, request.request_id)

    async def execute(
        self,
        spec: ToolSpec,
        args: dict[str, Any] | str,
        actor: ActorContext,
        deadline: float | None = None,
        request_id: str | None = None,
    ) -> ToolExecutionResult:
        """Validate and run one invocation.

        Args:
            spec: The tool to run.
            args: Raw arguments from the model (dict or JSON text).
            actor: Caller identity; never taken from the arguments.
            deadline: Absolute ``time.monotonic()`` deadline. Defaults to
                now plus the executor's default timeout.
            request_id: Invocation id; generated when omitted.
        """
        request_id = request_id or ToolInvocationRequest(tool_name=spec.name).request_id
        start = time.monotonic()
        if deadline is None:
            deadline = start + self._default_timeout

        try:
            arguments = decode_arguments(args)
            validate_arguments(spec, arguments)
        except ToolValidationError as e:
            return await self._finish(request_id, spec.name, actor, args, start, error=e)

        datastore = self._datastore if spec.data_access else None
        ctx = ToolContext(actor, request_id, self._gate, datastore, self._notifier)
        tracer = get_tracer()
        with tracer.start_as_current_span("opsguard.tool") as span:
            span.set_attribute("opsguard.tool_name", spec.name)
            span.set_attribute("opsguard.role", actor.role.value)
            try:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ToolTimeoutError(f"deadline passed before {spec.name} started")
                payload = await asyncio.wait_for(self._call(spec, ctx, arguments), timeout=remaining)
            except TimeoutError:
                error = ToolTimeoutError(
                    f"{spec.name} exceeded its deadline",
                    details={"timeout_seconds": round(deadline - start, 3)},
                )
                return await self._finish(request_id, spec.name, actor, arguments, start, ctx=ctx, error=error)
            except ToolFailure as e:
                return await self._finish(request_id, spec.name, actor, arguments, start, ctx=ctx, error=e)
            except asyncio.CancelledError:
                await self._finish(
                    request_id, spec.name, actor, arguments, start, ctx=ctx,
                    error=ToolFailure("invocation cancelled"), cancelled=True,
                )
                raise
            except Exception as e:
                logger.exception(
                    "Tool handler raised",
                    extra={"request_id": request_id, "tool_name": spec.name},
                )
                error = ToolFailure(f"{spec.name} failed: {type(e).__name__}: {e}")
                return await self._finish(request_id, spec.name, actor, arguments, start, ctx=ctx, error=error)

        return await self._finish(request_id, spec.name, actor, arguments, start, ctx=ctx, payload=payload)

    @staticmethod
    async def _call(spec: ToolSpec, ctx: ToolContext, arguments: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(spec.handler):
            return await spec.handler(ctx, **arguments)
        result = await asyncio.to_thread(spec.handler, ctx, **arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _finish(
        self,
        request_id: str,
        tool_name: str,
        actor: ActorContext,
        arguments: Any,
        start: float,
        *,
        ctx: ToolContext | None = None,
        payload: Any = None,
        error: ToolFailure | None = None,
        cancelled: bool = False,
    ) -> ToolExecutionResult:
        duration_ms = round((time.monotonic() - start) * 1000, 3)
        rows_affected = ctx.rows_affected if ctx is not None else None
        error_kind = None if error is None or cancelled else error.error_kind

        result = ToolExecutionResult(
            request_id=request_id,
            tool_name=tool_name,
            success=error is None,
            payload=payload if error is None else None,
            error_kind=error_kind,
            error=str(error) if error is not None else None,
            duration_ms=duration_ms,
            rows_affected=rows_affected,
        )

        await self._recorder.record(
            AuditRecord(
                request_id=request_id,
                actor_id=actor.actor_id,
                role=actor.role,
                tool_name=tool_name,
                arguments_digest=digest_arguments(arguments),
                success=result.success,
                duration_ms=duration_ms,
                rows_affected=rows_affected,
                error_kind=error_kind,
                error_detail=self._error_detail(error) if error is not None else None,
            )
        )

        record_tool_call(
            tool_name=tool_name,
            role=actor.role.value,
            success=result.success,
            duration_ms=duration_ms,
            error_kind=error_kind.value if error_kind else None,
        )

        extra = {
            "request_id": request_id,
            "actor_id": actor.actor_id,
            "role": actor.role,
            "tool_name": tool_name,
            "duration_ms": duration_ms,
            "error_kind": error_kind,
        }
        if error is None:
            logger.info("Tool executed", extra=extra)
        elif error_kind in _OPERATOR_KINDS:
            logger.error("Tool failed: %s", error, extra=extra)
        else:
            logger.warning("Tool rejected: %s", error, extra=extra)
        return result

    @staticmethod
    def _error_detail(error: ToolFailure) -> str:
        if error.details:
            return f"{error} | {json.dumps(error.details, sort_keys=True, default=str)}"
        return str(error)
