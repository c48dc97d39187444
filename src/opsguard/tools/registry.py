"""
OpsGuard Tool Registry

Static mapping from tool name to ToolSpec. Tools are registered once at
startup and shared read-only across requests. list_for() builds the
per-request catalog advertised to the LLM, filtered by the role's
capabilities.
"""

from __future__ import annotations

from opsguard.core.models import Role
from opsguard.exceptions import DuplicateToolError, ToolNotFoundError
from opsguard.tools.models import ROLE_CAPABILITIES, Capability, ToolSpec


class ToolRegistry:
    """Central registry for all tools, filtered per role."""

    def __init__(self, capabilities: dict[Role, frozenset[Capability]] | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._capabilities = dict(capabilities if capabilities is not None else ROLE_CAPABILITIES)

    def register(self, spec: ToolSpec) -> None:
        """Register a tool.

        Raises:
            DuplicateToolError: If a tool with the same name already exists.
        """
        if spec.name in self._tools:
            raise DuplicateToolError(spec.name)
        self._tools[spec.name] = spec

    def unregister(self, name: str) -> None:
        if name not in self._tools:
            raise ToolNotFoundError(name)
        del self._tools[name]

    def resolve(self, name: str) -> ToolSpec:
        """Look up a registered tool by name.

        Raises:
            ToolNotFoundError: If no tool has that name.
        """
        spec = self._tools.get(name)
        if spec is None:
            raise ToolNotFoundError(name)
        return spec

    def list_for(self, role: Role) -> list[ToolSpec]:
        """Return the tools a role may see, in registration order."""
        return [t for t in self._tools.values() if t.available_to(role, self._capabilities)]

    def is_available(self, spec: ToolSpec, role: Role) -> bool:
        return spec.available_to(role, self._capabilities)

    def get_all(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def get_schemas(self, tools: list[ToolSpec] | None = None) -> list[dict]:
        """Tool schemas for a set of tools (all registered tools if None)."""
        source = tools if tools is not None else list(self._tools.values())
        return [t.to_schema() for t in source]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
