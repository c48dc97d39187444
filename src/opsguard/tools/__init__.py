"""
OpsGuard Tool System

Every tool call requested by the LLM runs through the same path:

    LLM tool call → ToolRegistry (role catalog) → ToolExecutor
        → schema validation → handler(ToolContext) → QueryAuthorizationGate
        → Datastore → AuditRecorder

Components:
- ToolRegistry: name → ToolSpec, filtered per role by capability
- ToolExecutor: validation, deadline, failure capture, audit
- ToolContext: gated datastore and notification access for handlers
- Built-in tools: dynamic SQL plus per-role operations tools
"""

from opsguard.tools.context import ToolContext
from opsguard.tools.executor import ToolExecutor
from opsguard.tools.models import ROLE_CAPABILITIES, Capability, ToolSpec
from opsguard.tools.registry import ToolRegistry

__all__ = [
    "Capability",
    "ROLE_CAPABILITIES",
    "ToolContext",
    "ToolExecutor",
    "ToolRegistry",
    "ToolSpec",
]
