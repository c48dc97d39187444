"""Owner and admin tools: business analytics, reordering and delivery dispatch."""

from datetime import UTC, datetime
from typing import Any

from opsguard.tools.builtin.driver import period_start
from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec


async def _get_business_analytics(ctx: ToolContext, period: str = "month") -> dict[str, Any]:
    since = period_start(period) or "0000"
    sales = await ctx.read(
        "SELECT COUNT(*) AS orders, COALESCE(SUM(total_amount), 0) AS revenue "
        "FROM client_orders WHERE created_at >= ? AND status != 'cancelled'",
        [since],
    )
    purchasing = await ctx.read(
        "SELECT COUNT(*) AS purchase_orders, COALESCE(SUM(total_amount), 0) AS spend "
        "FROM purchase_orders WHERE created_at >= ?",
        [since],
    )
    deliveries = await ctx.read(
        "SELECT status, COUNT(*) AS count FROM delivery_tracking "
        "WHERE created_at >= ? GROUP BY status ORDER BY status",
        [since],
    )
    low_stock = await ctx.read(
        "SELECT COUNT(*) AS count FROM products WHERE stock_quantity <= min_stock_level AND is_active = 1"
    )
    revenue = sales[0]["revenue"] if sales else 0
    spend = purchasing[0]["spend"] if purchasing else 0
    return {
        "period": period,
        "orders": sales[0]["orders"] if sales else 0,
        "revenue": revenue,
        "purchaseOrders": purchasing[0]["purchase_orders"] if purchasing else 0,
        "purchasingSpend": spend,
        "grossMargin": round(revenue - spend, 2),
        "deliveriesByStatus": {row["status"]: row["count"] for row in deliveries},
        "lowStockProducts": low_stock[0]["count"] if low_stock else 0,
    }


async def _get_reorder_recommendations(ctx: ToolContext) -> dict[str, Any]:
    rows = await ctx.read(
        "SELECT id, name, stock_quantity, min_stock_level, supplier_id FROM products "
        "WHERE stock_quantity <= min_stock_level AND is_active = 1 ORDER BY stock_quantity ASC"
    )
    recommendations = []
    for row in rows:
        target = max(row["min_stock_level"] * 2, 1)
        recommendations.append({
            "productId": row["id"],
            "name": row["name"],
            "supplierId": row["supplier_id"],
            "currentStock": row["stock_quantity"],
            "recommendedQuantity": target - row["stock_quantity"],
            "urgency": "critical" if row["stock_quantity"] == 0 else "high",
        })
    return {"recommendations": recommendations, "count": len(recommendations)}


async def _get_all_orders(ctx: ToolContext, status: str | None = None, limit: int = 20) -> dict[str, Any]:
    sql = "SELECT id, user_id, status, total_amount, delivery_address, created_at FROM client_orders"
    params: list[Any] = []
    if status:
        sql += " WHERE status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    rows = await ctx.read(sql, params)
    return {"orders": rows, "count": len(rows)}


async def _assign_delivery(ctx: ToolContext, order_id: int, driver_id: int) -> dict[str, Any]:
    orders = await ctx.read(
        "SELECT id, delivery_address FROM client_orders WHERE id = ?", [order_id]
    )
    if not orders:
        return {"assigned": False, "message": f"Order {order_id} not found"}
    drivers = await ctx.read(
        "SELECT id FROM delivery_drivers WHERE id = ? AND is_active = 1", [driver_id]
    )
    if not drivers:
        return {"assigned": False, "message": f"Driver {driver_id} not found or inactive"}

    created = await ctx.write(
        "INSERT INTO delivery_tracking (order_id, driver_id, status, delivery_address, created_at) "
        "VALUES (?, ?, 'assigned', ?, ?)",
        [order_id, driver_id, orders[0]["delivery_address"], datetime.now(UTC).isoformat()],
    )
    await ctx.write(
        "UPDATE client_orders SET status = 'out_for_delivery' WHERE id = ?", [order_id]
    )
    return {"assigned": True, "deliveryId": created.last_id, "orderId": order_id, "driverId": driver_id}


GET_BUSINESS_ANALYTICS_TOOL = ToolSpec(
    name="get_business_analytics",
    description="Revenue, purchasing spend, deliveries and low-stock counts for a period.",
    parameter_schema={
        "type": "object",
        "properties": {"period": {"type": "string", "enum": ["today", "week", "month", "all"]}},
        "additionalProperties": False,
    },
    required_capability=Capability.BUSINESS_OPS,
    handler=_get_business_analytics,
)

GET_REORDER_RECOMMENDATIONS_TOOL = ToolSpec(
    name="get_reorder_recommendations",
    description="Products at or below minimum stock with suggested reorder quantities.",
    parameter_schema={"type": "object", "properties": {}, "additionalProperties": False},
    required_capability=Capability.BUSINESS_OPS,
    handler=_get_reorder_recommendations,
)

GET_ALL_ORDERS_TOOL = ToolSpec(
    name="get_all_orders",
    description="List customer orders across all accounts.",
    parameter_schema={
        "type": "object",
        "properties": {
            "status": {"type": "string", "maxLength": 30},
            "limit": {"type": "integer", "minimum": 1, "maximum": 200},
        },
        "additionalProperties": False,
    },
    required_capability=Capability.PLATFORM_ADMIN,
    handler=_get_all_orders,
)

ASSIGN_DELIVERY_TOOL = ToolSpec(
    name="assign_delivery",
    description="Assign a customer order to a driver for delivery.",
    parameter_schema={
        "type": "object",
        "properties": {
            "order_id": {"type": "integer", "minimum": 1},
            "driver_id": {"type": "integer", "minimum": 1},
        },
        "required": ["order_id", "driver_id"],
        "additionalProperties": False,
    },
    required_capability=Capability.PLATFORM_ADMIN,
    handler=_assign_delivery,
)
