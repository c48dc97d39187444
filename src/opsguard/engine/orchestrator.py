"""
OpsGuard Conversation Orchestrator

Drives one chat request through a bounded model/tool loop:

    Idle -> AwaitingModel -> (ExecutingTools -> AwaitingModel)* -> Done | Aborted

Each AwaitingModel entry counts as one iteration. When the model asks for
tools, every call in the round is executed concurrently under one shared
deadline and the results are appended to the transcript in request order.
When the iteration cap is reached the conversation ends as Aborted with
"Max iterations reached", carrying every tool result gathered so far.

The orchestrator owns no security decision: the tool catalog comes from the
registry filtered by role, and every data access goes through the executor
and the authorization gate.
"""

from __future__ import annotations

import asyncio
import time

from opsguard.config import EngineSettings
from opsguard.core.models import (
    ActorContext,
    AgentResponse,
    ConversationState,
    ConversationStatus,
    ErrorKind,
    ToolExecutionResult,
    ToolInvocationRequest,
    TranscriptRole,
)
from opsguard.engine.prompts import system_prompt_for
from opsguard.exceptions import IterationCapExceededError, OpsGuardError, ProviderError
from opsguard.logging import get_logger
from opsguard.observability.metrics import record_conversation
from opsguard.observability.tracing import get_tracer
from opsguard.providers.base import ContentBlock, LLMProvider
from opsguard.tools.executor import ToolExecutor
from opsguard.tools.registry import ToolRegistry

logger = get_logger("opsguard.engine")

RETRY_MESSAGE = "I couldn't complete that request right now, please retry."
CAP_MESSAGE = "I could not complete that request within the allowed number of steps."


class ConversationOrchestrator:
    """Runs the model/tool loop for a single request.

    One orchestrator instance serves one conversation; ``run`` may only be
    called once.
    """

    def __init__(
        self,
        actor: ActorContext,
        registry: ToolRegistry,
        executor: ToolExecutor,
        provider: LLMProvider,
        settings: EngineSettings | None = None,
        prompts: dict | None = None,
    ):
        self._actor = actor
        self._registry = registry
        self._executor = executor
        self._provider = provider
        self._settings = settings or EngineSettings()
        self._prompts = prompts
        self.state = ConversationState(actor=actor)

    @property
    def actor(self) -> ActorContext:
        return self._actor

    async def run(self, message: str) -> AgentResponse:
        """Answer one user message.

        Returns:
            AgentResponse with status Done, or Aborted on timeout, provider
            failure or iteration cap.

        Raises:
            asyncio.CancelledError: If the caller cancels the request. No
                further tool invocation starts after cancellation.
        """
        if self.state.status != ConversationStatus.IDLE:
            raise OpsGuardError(
                "Conversation already started",
                details={"conversation_id": self.state.conversation_id},
            )

        state = self.state
        state.append(TranscriptRole.SYSTEM, system_prompt_for(self._actor.role, self._prompts))
        state.append(TranscriptRole.USER, message)
        tools = [spec.to_schema() for spec in self._registry.list_for(self._actor.role)]

        extra = {
            "request_id": state.conversation_id,
            "actor_id": self._actor.actor_id,
            "role": self._actor.role,
        }
        logger.info("Conversation started (%d tools)", len(tools), extra=extra)

        tracer = get_tracer()
        with tracer.start_as_current_span("opsguard.conversation") as span:
            span.set_attribute("opsguard.role", self._actor.role.value)
            span.set_attribute("opsguard.conversation_id", state.conversation_id)
            try:
                response = await self._loop(tools)
            except asyncio.CancelledError:
                state.status = ConversationStatus.ABORTED
                logger.warning(
                    "Conversation cancelled",
                    extra={**extra, "iteration": state.iterations},
                )
                record_conversation(
                    role=self._actor.role.value,
                    status=state.status.value,
                    iterations=state.iterations,
                )
                raise
            span.set_attribute("opsguard.status", response.status.value)
            span.set_attribute("opsguard.iterations", response.iterations)

        record_conversation(
            role=self._actor.role.value,
            status=response.status.value,
            iterations=response.iterations,
        )
        logger.info(
            "Conversation finished",
            extra={
                **extra,
                "status": response.status,
                "iteration": response.iterations,
                "error_kind": response.error_kind,
            },
        )
        return response

    # ─── Loop ─────────────────────────────────────────────────

    async def _loop(self, tools: list[dict]) -> AgentResponse:
        state = self.state
        settings = self._settings

        while state.iterations < settings.max_iterations:
            state.status = ConversationStatus.AWAITING_MODEL
            state.iterations += 1
            try:
                reply = await asyncio.wait_for(
                    self._provider.create_message(
                        state.entries,
                        tools=tools or None,
                        max_tokens=settings.max_tokens,
                        temperature=settings.temperature,
                    ),
                    timeout=settings.llm_timeout_seconds,
                )
            except TimeoutError:
                logger.error(
                    "LLM call timed out after %.1fs",
                    settings.llm_timeout_seconds,
                    extra={"request_id": state.conversation_id, "iteration": state.iterations},
                )
                return self._abort(RETRY_MESSAGE, ErrorKind.TIMEOUT, "LLM call timed out")
            except ProviderError as e:
                logger.error(
                    "LLM call failed: %s",
                    e,
                    extra={"request_id": state.conversation_id, "provider": e.provider_name},
                )
                return self._abort(RETRY_MESSAGE, ErrorKind.UPSTREAM_FAILURE, str(e))

            if not reply.has_tool_use:
                state.append(TranscriptRole.ASSISTANT, reply.text)
                state.status = ConversationStatus.DONE
                return self._response(reply.text)

            state.status = ConversationStatus.EXECUTING_TOOLS
            requests = [self._to_request(block) for block in reply.tool_calls]
            state.append(TranscriptRole.ASSISTANT, reply.text, tool_calls=requests)

            results = await self._execute_round(requests)
            for request, result in zip(requests, results, strict=True):
                state.append(
                    TranscriptRole.TOOL,
                    result.transcript_content(),
                    tool_call_id=request.call_id,
                    name=request.tool_name,
                    is_error=not result.success,
                )
                state.results.append(result)

        cap = IterationCapExceededError(settings.max_iterations)
        logger.warning(
            "Iteration cap reached",
            extra={"request_id": state.conversation_id, "iteration": state.iterations},
        )
        return self._abort(CAP_MESSAGE, cap.error_kind, str(cap))

    async def _execute_round(self, requests: list[ToolInvocationRequest]) -> list[ToolExecutionResult]:
        deadline = time.monotonic() + self._settings.tool_timeout_seconds
        return await asyncio.gather(
            *(self._executor.invoke(request, self._actor, deadline) for request in requests)
        )

    @staticmethod
    def _to_request(block: ContentBlock) -> ToolInvocationRequest:
        request = ToolInvocationRequest(tool_name=block.tool_name, raw_arguments=block.tool_input)
        request.call_id = block.tool_use_id or f"call-{request.request_id}"
        return request

    def _response(self, message: str, **kwargs) -> AgentResponse:
        return AgentResponse(
            message=message,
            tool_calls=list(self.state.results),
            status=self.state.status,
            conversation_id=self.state.conversation_id,
            iterations=self.state.iterations,
            **kwargs,
        )

    def _abort(self, message: str, kind: ErrorKind, error: str) -> AgentResponse:
        self.state.status = ConversationStatus.ABORTED
        return self._response(message, error=error, error_kind=kind)
