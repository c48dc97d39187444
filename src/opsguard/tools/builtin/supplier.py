"""Supplier tools: purchase orders and stock for the supplier's own products."""

from typing import Any

from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec

ORDER_STATUSES = ["pending", "confirmed", "shipped", "delivered", "cancelled"]


async def _get_supplier_orders(
    ctx: ToolContext, status: str | None = None, limit: int = 20
) -> dict[str, Any]:
    sql = "SELECT id, product_id, quantity, total_amount, status, created_at FROM purchase_orders"
    params: list[Any] = []
    if status:
        sql += " WHERE status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    rows = await ctx.read(sql, params)
    return {"orders": rows, "count": len(rows)}


async def _update_order_status(
    ctx: ToolContext, order_id: int, status: str, notes: str | None = None
) -> dict[str, Any]:
    result = await ctx.write(
        "UPDATE purchase_orders SET status = ?, notes = COALESCE(?, notes) WHERE id = ?",
        [status, notes, order_id],
    )
    if result.changes == 0:
        return {"updated": False, "message": f"No purchase order {order_id} for your account"}
    return {"updated": True, "orderId": order_id, "status": status}


async def _get_my_products(ctx: ToolContext, low_stock_only: bool = False) -> dict[str, Any]:
    sql = "SELECT id, name, category, price, stock_quantity, min_stock_level FROM products"
    if low_stock_only:
        sql += " WHERE stock_quantity <= min_stock_level"
    sql += " ORDER BY name"
    rows = await ctx.read(sql)
    return {"products": rows, "count": len(rows)}


GET_SUPPLIER_ORDERS_TOOL = ToolSpec(
    name="get_supplier_orders",
    description="List purchase orders placed with you, newest first.",
    parameter_schema={
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": ORDER_STATUSES},
            "limit": {"type": "integer", "minimum": 1, "maximum": 100},
        },
        "additionalProperties": False,
    },
    required_capability=Capability.SUPPLY_OPS,
    handler=_get_supplier_orders,
)

UPDATE_ORDER_STATUS_TOOL = ToolSpec(
    name="update_order_status",
    description="Update the status of one of your purchase orders.",
    parameter_schema={
        "type": "object",
        "properties": {
            "order_id": {"type": "integer", "minimum": 1},
            "status": {"type": "string", "enum": ORDER_STATUSES},
            "notes": {"type": "string", "maxLength": 500},
        },
        "required": ["order_id", "status"],
        "additionalProperties": False,
    },
    required_capability=Capability.SUPPLY_OPS,
    handler=_update_order_status,
)

GET_MY_PRODUCTS_TOOL = ToolSpec(
    name="get_my_products",
    description="List the products you supply, optionally only those at or below minimum stock.",
    parameter_schema={
        "type": "object",
        "properties": {"low_stock_only": {"type": "boolean"}},
        "additionalProperties": False,
    },
    required_capability=Capability.SUPPLY_OPS,
    handler=_get_my_products,
)
