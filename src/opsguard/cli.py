"""
OpsGuard CLI

Command-line interface for the OpsGuard engine.

Commands:
    opsguard chat "message" --role driver --actor-id 7   # One chat turn
    opsguard tools --role customer                       # Tools visible to a role
    opsguard authorize "SELECT ..." --role driver -a 7   # Dry-run the query gate
    opsguard audit [--actor-id ID]                       # View the audit log
    opsguard verify                                      # Verify audit hash chain
    opsguard serve                                       # Start API server
"""

from __future__ import annotations

import asyncio
import json
import sys

import click

from opsguard import __version__

ROLE_CHOICE = click.Choice(["owner", "admin", "supplier", "driver", "customer"], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="opsguard")
def cli() -> None:
    """OpsGuard: Role-Scoped Tool Orchestration for LLM Agents"""


@cli.command()
@click.argument("message")
@click.option("--role", "-r", type=ROLE_CHOICE, required=True, help="Caller role")
@click.option("--actor-id", "-a", required=True, help="Authenticated caller id")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def chat(message: str, role: str, actor_id: str, json_output: bool) -> None:
    """Send one message to the agent as the given actor."""
    from opsguard import AgentEngine
    from opsguard.core.models import ActorContext, Role

    engine = AgentEngine.from_settings()
    actor = ActorContext(actor_id=actor_id, role=Role(role.lower()))
    response = asyncio.run(engine.chat(actor, message))

    if json_output:
        click.echo(json.dumps(response.model_dump(mode="json", by_alias=True), indent=2))
        return

    _print_header(f"OpsGuard: {role} {actor_id}")
    click.echo(f"  {response.message}")
    if response.tool_calls:
        click.echo("\n  Tool calls:")
        for result in response.tool_calls:
            status = "OK" if result.success else (result.error_kind.value if result.error_kind else "FAILED")
            click.echo(f"    {result.tool_name:32s} [{status}] {result.duration_ms:.0f}ms")
    click.echo(f"\n  Status: {response.status.value} after {response.iterations} iteration(s)")
    if response.error:
        click.echo(f"  Error: {response.error}")


@cli.command()
@click.option("--role", "-r", type=ROLE_CHOICE, required=True, help="Role to list tools for")
def tools(role: str) -> None:
    """List the tools a role can see."""
    from opsguard.core.models import Role
    from opsguard.tools import ToolRegistry
    from opsguard.tools.builtin import register_builtin_tools

    registry = ToolRegistry()
    register_builtin_tools(registry)
    specs = registry.list_for(Role(role.lower()))

    _print_header(f"Tools for {role}")
    for spec in specs:
        click.echo(f"  {spec.name:32s} {spec.description[:60]}")
    click.echo(f"\n  Total: {len(specs)}")


@cli.command()
@click.argument("query")
@click.option("--role", "-r", type=ROLE_CHOICE, required=True, help="Caller role")
@click.option("--actor-id", "-a", default="", help="Caller id bound into the scoping predicate")
def authorize(query: str, role: str, actor_id: str) -> None:
    """Show the gate's verdict and rewritten query, without running it."""
    from opsguard.gate.authorizer import QueryAuthorizationGate

    verdict = QueryAuthorizationGate().authorize(query, role.lower(), actor_id)
    if verdict.allowed:
        click.echo(f"ALLOWED ({verdict.operation.value})")
        click.echo(verdict.rewritten_query)
        return
    click.echo(f"DENIED [{verdict.error_kind.value}] {verdict.reason}")
    sys.exit(1)


@cli.command()
@click.option("--actor-id", "-a", default=None, help="Filter by actor")
@click.option("--tool", "tool_name", default=None, help="Filter by tool name")
@click.option("--limit", default=20, type=int, help="Maximum records")
def audit(actor_id: str | None, tool_name: str | None, limit: int) -> None:
    """View recent audit records, newest first."""
    recorder = _recorder()
    records = recorder.list(actor_id=actor_id, tool_name=tool_name, limit=limit)

    _print_header("Audit Log")
    if not records:
        click.echo("  No audit records found.")
        return
    for r in records:
        status = "OK" if r.success else (r.error_kind.value if r.error_kind else "FAILED")
        click.echo(
            f"  #{r.sequence:4d} {r.role.value:9s} {r.actor_id:10s} {r.tool_name:32s} "
            f"[{status}]  [{r.record_hash[:12]}]"
        )


@cli.command()
def verify() -> None:
    """Verify the audit log hash chain."""
    recorder = _recorder()
    _print_header("Audit Chain Verification")
    valid, message = recorder.verify_chain()
    click.echo(f"  {message}")
    if not valid:
        sys.exit(1)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Port number")
@click.option("--reload", is_flag=True, help="Auto-reload on changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Start the OpsGuard API server."""
    import uvicorn

    _print_header("OpsGuard API Server")
    click.echo(f"  Binding: {host}:{port}")
    click.echo(f"  Reload: {'enabled' if reload else 'disabled'}")
    click.echo()

    uvicorn.run(
        "opsguard.api.server:app",
        host=host,
        port=port,
        reload=reload,
    )


def _recorder():
    from opsguard.audit.recorder import AuditRecorder
    from opsguard.config import EngineSettings
    from opsguard.storage.repository import AuditRepository

    settings = EngineSettings.from_env()
    return AuditRecorder(AuditRepository(settings.audit_database_url))


def _print_header(title: str) -> None:
    """Print a formatted header."""
    click.echo(f"\n  {'=' * 60}")
    click.echo(f"  {title}")
    click.echo(f"  {'=' * 60}\n")


if __name__ == "__main__":
    cli()
