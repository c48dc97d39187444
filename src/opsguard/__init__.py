"""
OpsGuard: Role-Scoped Tool Orchestration for LLM Agents

Usage:
    from opsguard import AgentEngine, ActorContext, Role

    engine = AgentEngine.from_settings()
    response = await engine.chat(
        ActorContext(actor_id="7", role=Role.DRIVER),
        "Which deliveries are still pending today?",
    )

    # With an explicit provider and settings:
    engine = AgentEngine.from_settings(EngineSettings(max_iterations=5), provider=my_provider)
"""

__version__ = "0.1.0"

from opsguard.audit.recorder import AuditRecorder
from opsguard.config import EngineSettings
from opsguard.core.models import (
    ActorContext,
    AgentResponse,
    ConversationStatus,
    ErrorKind,
    Role,
    ToolExecutionResult,
)
from opsguard.engine.orchestrator import ConversationOrchestrator
from opsguard.gate.authorizer import AuthorizationVerdict, QueryAuthorizationGate
from opsguard.logging import get_logger
from opsguard.notify.sender import HttpMailSender, LogMailSender, NotificationSender
from opsguard.providers import LLMProvider, create_provider
from opsguard.storage.datastore import Datastore
from opsguard.storage.repository import AuditRepository
from opsguard.tools import ToolExecutor, ToolRegistry, ToolSpec
from opsguard.tools.builtin import register_builtin_tools

__all__ = [
    # Main API
    "AgentEngine",
    "__version__",
    "EngineSettings",
    # Models
    "ActorContext",
    "AgentResponse",
    "ConversationStatus",
    "ErrorKind",
    "Role",
    "ToolExecutionResult",
    # Gate
    "AuthorizationVerdict",
    "QueryAuthorizationGate",
    # Tools
    "ToolExecutor",
    "ToolRegistry",
    "ToolSpec",
    # Engine
    "ConversationOrchestrator",
    # Audit
    "AuditRecorder",
]

logger = get_logger("opsguard")


class AgentEngine:
    """Wires the registry, gate, executor, audit log and LLM provider.

    All collaborators are passed in explicitly; from_settings() builds the
    default set from environment configuration. The engine holds no
    per-request state: every chat() call gets its own orchestrator.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        gate: QueryAuthorizationGate,
        provider: LLMProvider,
        executor: ToolExecutor,
        recorder: AuditRecorder,
        datastore: Datastore,
        notifier: NotificationSender | None = None,
        settings: EngineSettings | None = None,
    ):
        self.registry = registry
        self.gate = gate
        self.provider = provider
        self.executor = executor
        self.recorder = recorder
        self.datastore = datastore
        self.notifier = notifier
        self.settings = settings or EngineSettings()

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings | None = None,
        provider: LLMProvider | None = None,
        notifier: NotificationSender | None = None,
    ) -> "AgentEngine":
        """Build an engine with the builtin tools and default policies.

        Args:
            settings: Engine settings. Defaults to EngineSettings.from_env().
            provider: LLM provider. Defaults to create_provider() for the
                configured provider name and model.
            notifier: Mail sender. Defaults to HttpMailSender when a mail API
                URL is configured, otherwise LogMailSender.
        """
        settings = settings or EngineSettings.from_env()

        datastore = Datastore(settings.database_url)
        recorder = AuditRecorder(AuditRepository(settings.audit_database_url))

        if notifier is None:
            if settings.mail_api_url:
                notifier = HttpMailSender(
                    api_url=settings.mail_api_url,
                    api_token=settings.mail_api_token,
                    sender=settings.mail_sender,
                    timeout=settings.tool_timeout_seconds,
                )
            else:
                notifier = LogMailSender()

        registry = ToolRegistry()
        register_builtin_tools(registry)
        gate = QueryAuthorizationGate()
        executor = ToolExecutor(
            registry,
            gate,
            datastore,
            recorder,
            notifier=notifier,
            default_timeout=settings.tool_timeout_seconds,
        )

        if provider is None:
            provider = create_provider(
                settings.provider,
                model=settings.model,
                timeout_seconds=settings.llm_timeout_seconds,
            )

        logger.info(
            "Engine ready: %d tools, provider=%s model=%s",
            len(registry),
            settings.provider,
            provider.model,
        )
        return cls(
            registry=registry,
            gate=gate,
            provider=provider,
            executor=executor,
            recorder=recorder,
            datastore=datastore,
            notifier=notifier,
            settings=settings,
        )

    def orchestrator_for(self, actor: ActorContext) -> ConversationOrchestrator:
        return ConversationOrchestrator(
            actor,
            self.registry,
            self.executor,
            self.provider,
            self.settings,
        )

    async def chat(self, actor: ActorContext, message: str) -> AgentResponse:
        """Answer one message for one authenticated actor."""
        return await self.orchestrator_for(actor).run(message)

    def catalog_for(self, role: Role) -> list[ToolSpec]:
        """Tools the role may see, in registration order."""
        return self.registry.list_for(role)

    def health(self) -> dict[str, str]:
        """Component status for the health endpoint."""
        datastore_ok = self.datastore.ping()
        return {
            "datastore": "ok" if datastore_ok else "unavailable",
            "audit": "ok" if self.recorder.chain_head else "unavailable",
            "provider": f"{self.settings.provider}:{self.provider.model}",
        }
