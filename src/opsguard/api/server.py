"""
OpsGuard API Server

FastAPI surface for the agent engine. The caller's identity (actor id and
role) arrives already authenticated by the host application; this layer
only validates its shape and hands it to the engine.

Usage:
    uvicorn opsguard.api.server:app --reload
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from opsguard import AgentEngine, __version__
from opsguard.core.models import ActorContext, Role
from opsguard.exceptions import OpsGuardAPIError
from opsguard.logging import get_logger
from opsguard.observability import tracing

logger = get_logger("opsguard.api")

# Seconds between client-disconnect checks while a chat is running
DISCONNECT_POLL_INTERVAL = 0.25

# Non-standard "client closed request" status
CLIENT_CLOSED_REQUEST = 499


# ─── Request/Response Models ────────────────────────────────

class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1)
    role: str
    actor_id: str
    tenant_id: int | None = None


class HealthResponse(BaseModel):
    status: str
    version: str = __version__
    components: dict[str, str] = Field(default_factory=dict)


# ─── Helpers ─────────────────────────────────────────────────

def _engine(request: Request) -> AgentEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise OpsGuardAPIError("Engine is not initialized", status_code=503)
    return engine


def _parse_role(value: str) -> Role:
    try:
        return Role(value.strip().lower())
    except ValueError as e:
        raise OpsGuardAPIError(
            f"Unknown role: {value}",
            status_code=400,
            details={"allowed": [r.value for r in Role]},
        ) from e


def _actor(body: ChatRequest) -> ActorContext:
    role = _parse_role(body.role)
    try:
        return ActorContext(actor_id=body.actor_id, role=role, tenant_id=body.tenant_id)
    except ValidationError as e:
        raise OpsGuardAPIError("Invalid actor identity", status_code=400) from e


async def _until_disconnect(request: Request, task: asyncio.Task):
    """Wait for the task, cancelling it if the client goes away."""
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.warning("Client disconnected, cancelling chat")
                task.cancel()
                return None
    except asyncio.CancelledError:
        task.cancel()
        raise


# ─── App Factory ─────────────────────────────────────────────

def create_app(engine: AgentEngine | None = None) -> FastAPI:
    """Build the API app.

    Args:
        engine: Engine to serve. When omitted, one is built from the
            environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        tracing.init_tracing()
        if getattr(app.state, "engine", None) is None:
            app.state.engine = AgentEngine.from_settings()
        yield
        tracing.shutdown()

    app = FastAPI(
        title="OpsGuard API",
        description="Role-scoped tool orchestration for LLM agents",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OpsGuardAPIError)
    async def api_error_handler(request: Request, exc: OpsGuardAPIError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "details": exc.details},
        )

    # ─── REST Endpoints ──────────────────────────────────────

    @app.post("/api/agent/chat")
    async def chat(body: ChatRequest, request: Request):
        engine = _engine(request)
        actor = _actor(body)
        task = asyncio.create_task(engine.chat(actor, body.message))
        response = await _until_disconnect(request, task)
        if response is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return response.model_dump(mode="json", by_alias=True)

    @app.get("/api/agent/health")
    async def health(request: Request) -> HealthResponse:
        engine = _engine(request)
        components = await asyncio.to_thread(engine.health)
        ok = components.get("datastore") == "ok" and components.get("audit") == "ok"
        return HealthResponse(status="ok" if ok else "degraded", components=components)

    @app.get("/api/tools")
    async def list_tools(request: Request, role: str) -> dict:
        engine = _engine(request)
        specs = engine.catalog_for(_parse_role(role))
        return {
            "role": role,
            "tools": [spec.to_schema() for spec in specs],
            "total": len(specs),
        }

    @app.get("/api/audit")
    async def list_audit(
        request: Request,
        actor_id: str | None = None,
        tool_name: str | None = None,
        limit: int = 100,
    ) -> dict:
        engine = _engine(request)
        records = await asyncio.to_thread(
            engine.recorder.list, actor_id, tool_name, max(1, min(limit, 1000))
        )
        return {
            "records": [r.model_dump(mode="json") for r in records],
            "total": len(records),
        }

    @app.get("/api/audit/verify")
    async def verify_audit(request: Request) -> dict:
        engine = _engine(request)
        valid, message = await asyncio.to_thread(engine.recorder.verify_chain)
        return {"valid": valid, "message": message}

    return app


app = create_app()
