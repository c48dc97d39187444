"""
OpsGuard Tool Models

Tool specifications and the role -> capability table that decides which
tools each role is shown. A role never sees, and cannot invoke, a tool
whose capability it lacks.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from opsguard.core.models import Role


class Capability(str, Enum):
    """Permission class a tool requires."""
    DYNAMIC_SQL = "DYNAMIC_SQL"
    DELIVERY_OPS = "DELIVERY_OPS"
    SUPPLY_OPS = "SUPPLY_OPS"
    SHOPPING = "SHOPPING"
    BUSINESS_OPS = "BUSINESS_OPS"
    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    NOTIFY = "NOTIFY"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.OWNER: frozenset({
        Capability.DYNAMIC_SQL, Capability.BUSINESS_OPS, Capability.NOTIFY,
    }),
    Role.ADMIN: frozenset({
        Capability.DYNAMIC_SQL, Capability.BUSINESS_OPS,
        Capability.PLATFORM_ADMIN, Capability.NOTIFY,
    }),
    Role.SUPPLIER: frozenset({
        Capability.DYNAMIC_SQL, Capability.SUPPLY_OPS, Capability.NOTIFY,
    }),
    Role.DRIVER: frozenset({Capability.DYNAMIC_SQL, Capability.DELIVERY_OPS}),
    Role.CUSTOMER: frozenset({Capability.DYNAMIC_SQL, Capability.SHOPPING}),
}

ToolHandler = Callable[..., Awaitable[Any]] | Callable[..., Any]


class ToolSpec:
    """A registered tool: advertised schema plus the handler that runs it.

    Handlers are called as ``handler(ctx, **arguments)`` where ``ctx`` is
    the per-invocation ToolContext. They may be sync or async. A tool
    registered with ``data_access=False`` gets a context without a
    datastore, and any read or write it attempts is refused.
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameter_schema: dict[str, Any],
        required_capability: Capability,
        handler: ToolHandler,
        data_access: bool = True,
    ):
        self.name = name
        self.description = description
        self.parameter_schema = parameter_schema
        self.required_capability = required_capability
        self.handler = handler
        self.data_access = data_access

    def available_to(self, role: Role, capabilities: dict[Role, frozenset[Capability]] | None = None) -> bool:
        table = capabilities if capabilities is not None else ROLE_CAPABILITIES
        return self.required_capability in table.get(role, frozenset())

    def to_schema(self) -> dict[str, Any]:
        """Provider-neutral tool schema (name, description, input_schema)."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameter_schema,
        }

    def __repr__(self) -> str:
        return f"ToolSpec({self.name!r}, capability={self.required_capability.value})"
