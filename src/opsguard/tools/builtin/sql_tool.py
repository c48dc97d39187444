"""Dynamic SQL tool: model-authored SQL, always through the authorization gate."""

from typing import Any

from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec

MAX_ROWS = 100


async def _execute_dynamic_sql(
    ctx: ToolContext, query: str, operation_type: str, description: str = ""
) -> dict[str, Any]:
    if operation_type == "read":
        rows = await ctx.read(query)
        return {
            "rows": rows[:MAX_ROWS],
            "rowCount": len(rows),
            "truncated": len(rows) > MAX_ROWS,
            "description": description,
        }
    result = await ctx.write(query)
    return {**result.to_dict(), "description": description}


DYNAMIC_SQL_TOOL = ToolSpec(
    name="execute_dynamic_sql",
    description=(
        "Run a single SQL statement against the operations database. "
        "Results are automatically limited to rows you are allowed to see. "
        "Schema changes, multiple statements and comments are rejected."
    ),
    parameter_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "minLength": 1, "description": "One SQL statement"},
            "operation_type": {"type": "string", "enum": ["read", "write"]},
            "description": {"type": "string", "description": "What the query is for"},
        },
        "required": ["query", "operation_type"],
        "additionalProperties": False,
    },
    required_capability=Capability.DYNAMIC_SQL,
    handler=_execute_dynamic_sql,
)
