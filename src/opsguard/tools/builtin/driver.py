"""Driver tools: the driver's own deliveries and earnings."""

from datetime import UTC, datetime, timedelta
from typing import Any

from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec

DELIVERY_STATUSES = ["assigned", "picked_up", "in_transit", "delivered", "failed"]

_PERIOD_DAYS = {"today": 1, "week": 7, "month": 30}


def period_start(period: str) -> str | None:
    """ISO timestamp where a reporting period starts (None for 'all')."""
    days = _PERIOD_DAYS.get(period)
    if days is None:
        return None
    return (datetime.now(UTC) - timedelta(days=days)).isoformat()


async def _get_my_deliveries(ctx: ToolContext, status: str | None = None) -> dict[str, Any]:
    sql = (
        "SELECT id, order_id, status, pickup_address, delivery_address, delivery_fee, created_at "
        "FROM delivery_tracking"
    )
    params: list[Any] = []
    if status:
        sql += " WHERE status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC"
    rows = await ctx.read(sql, params)
    return {"deliveries": rows, "count": len(rows)}


async def _get_delivery(ctx: ToolContext, delivery_id: int) -> dict[str, Any]:
    rows = await ctx.read("SELECT * FROM delivery_tracking WHERE id = ?", [delivery_id])
    if not rows:
        return {"found": False, "message": f"No delivery {delivery_id} assigned to you"}
    return {"found": True, "delivery": rows[0]}


async def _update_delivery_status(
    ctx: ToolContext, delivery_id: int, status: str, notes: str | None = None
) -> dict[str, Any]:
    delivered_at = datetime.now(UTC).isoformat() if status == "delivered" else None
    result = await ctx.write(
        "UPDATE delivery_tracking SET status = ?, notes = COALESCE(?, notes), "
        "delivered_at = COALESCE(?, delivered_at) WHERE id = ?",
        [status, notes, delivered_at, delivery_id],
    )
    if result.changes == 0:
        return {"updated": False, "message": f"No delivery {delivery_id} assigned to you"}
    return {"updated": True, "deliveryId": delivery_id, "status": status}


async def _get_driver_earnings(ctx: ToolContext, period: str = "week") -> dict[str, Any]:
    sql = (
        "SELECT COUNT(*) AS deliveries, COALESCE(SUM(delivery_fee), 0) AS earnings "
        "FROM delivery_tracking WHERE status = 'delivered'"
    )
    params: list[Any] = []
    since = period_start(period)
    if since is not None:
        sql += " AND delivered_at >= ?"
        params.append(since)
    rows = await ctx.read(sql, params)
    summary = rows[0] if rows else {"deliveries": 0, "earnings": 0}
    return {"period": period, **summary}


GET_MY_DELIVERIES_TOOL = ToolSpec(
    name="get_my_deliveries",
    description="List deliveries assigned to you, optionally filtered by status.",
    parameter_schema={
        "type": "object",
        "properties": {"status": {"type": "string", "enum": DELIVERY_STATUSES}},
        "additionalProperties": False,
    },
    required_capability=Capability.DELIVERY_OPS,
    handler=_get_my_deliveries,
)

GET_DELIVERY_TOOL = ToolSpec(
    name="get_delivery",
    description="Show one of your deliveries by id.",
    parameter_schema={
        "type": "object",
        "properties": {"delivery_id": {"type": "integer", "minimum": 1}},
        "required": ["delivery_id"],
        "additionalProperties": False,
    },
    required_capability=Capability.DELIVERY_OPS,
    handler=_get_delivery,
)

UPDATE_DELIVERY_STATUS_TOOL = ToolSpec(
    name="update_delivery_status",
    description="Update the status of one of your deliveries.",
    parameter_schema={
        "type": "object",
        "properties": {
            "delivery_id": {"type": "integer", "minimum": 1},
            "status": {"type": "string", "enum": DELIVERY_STATUSES},
            "notes": {"type": "string", "maxLength": 500},
        },
        "required": ["delivery_id", "status"],
        "additionalProperties": False,
    },
    required_capability=Capability.DELIVERY_OPS,
    handler=_update_delivery_status,
)

GET_DRIVER_EARNINGS_TOOL = ToolSpec(
    name="get_driver_earnings",
    description="Summarize your completed deliveries and earnings for a period.",
    parameter_schema={
        "type": "object",
        "properties": {"period": {"type": "string", "enum": ["today", "week", "month", "all"]}},
        "additionalProperties": False,
    },
    required_capability=Capability.DELIVERY_OPS,
    handler=_get_driver_earnings,
)
