"""Customer tools: product catalog, own order history and ordering."""

import json
from datetime import UTC, datetime
from typing import Any

from opsguard.exceptions import ToolValidationError
from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec


async def _search_products(
    ctx: ToolContext, query: str | None = None, category: str | None = None, limit: int = 20
) -> dict[str, Any]:
    sql = "SELECT id, name, category, price, stock_quantity FROM products WHERE is_active = 1"
    params: list[Any] = []
    if query:
        sql += " AND (name LIKE ? OR category LIKE ?)"
        params.extend([f"%{query}%", f"%{query}%"])
    if category:
        sql += " AND category = ?"
        params.append(category)
    sql += " ORDER BY name LIMIT ?"
    params.append(limit)
    rows = await ctx.read_catalog(sql, params)
    return {"products": rows, "count": len(rows)}


async def _check_product_availability(ctx: ToolContext, product_id: int) -> dict[str, Any]:
    rows = await ctx.read_catalog(
        "SELECT id, name, price, stock_quantity FROM products WHERE id = ? AND is_active = 1",
        [product_id],
    )
    if not rows:
        return {"found": False, "productId": product_id}
    product = rows[0]
    return {
        "found": True,
        "product": product,
        "available": product["stock_quantity"] > 0,
    }


async def _get_order_history(ctx: ToolContext, limit: int = 10) -> dict[str, Any]:
    rows = await ctx.read(
        "SELECT id, status, total_amount, delivery_address, created_at "
        "FROM client_orders ORDER BY created_at DESC LIMIT ?",
        [limit],
    )
    return {"orders": rows, "count": len(rows)}


async def _place_order(
    ctx: ToolContext, items: list[dict[str, int]], delivery_address: str | None = None
) -> dict[str, Any]:
    product_ids = sorted({item["product_id"] for item in items})
    placeholders = ", ".join("?" for _ in product_ids)
    products = await ctx.read_catalog(
        f"SELECT id, name, price, stock_quantity FROM products WHERE is_active = 1 AND id IN ({placeholders})",
        product_ids,
    )
    by_id = {p["id"]: p for p in products}

    total = 0.0
    lines = []
    for item in items:
        product = by_id.get(item["product_id"])
        if product is None:
            raise ToolValidationError(f"product {item['product_id']} does not exist")
        if product["stock_quantity"] < item["quantity"]:
            raise ToolValidationError(
                f"only {product['stock_quantity']} of {product['name']} in stock"
            )
        line_total = round(product["price"] * item["quantity"], 2)
        total += line_total
        lines.append({"productId": product["id"], "quantity": item["quantity"], "lineTotal": line_total})

    result = await ctx.write(
        "INSERT INTO client_orders (status, total_amount, delivery_address, items, created_at) "
        "VALUES ('pending', ?, ?, ?, ?)",
        [round(total, 2), delivery_address, json.dumps(lines), datetime.now(UTC).isoformat()],
    )
    return {"orderId": result.last_id, "status": "pending", "total": round(total, 2), "items": lines}


SEARCH_PRODUCTS_TOOL = ToolSpec(
    name="search_products",
    description="Search the product catalog by name or category.",
    parameter_schema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "maxLength": 100},
            "category": {"type": "string", "maxLength": 50},
            "limit": {"type": "integer", "minimum": 1, "maximum": 50},
        },
        "additionalProperties": False,
    },
    required_capability=Capability.SHOPPING,
    handler=_search_products,
)

CHECK_PRODUCT_AVAILABILITY_TOOL = ToolSpec(
    name="check_product_availability",
    description="Check whether a product is in stock.",
    parameter_schema={
        "type": "object",
        "properties": {"product_id": {"type": "integer", "minimum": 1}},
        "required": ["product_id"],
        "additionalProperties": False,
    },
    required_capability=Capability.SHOPPING,
    handler=_check_product_availability,
)

GET_ORDER_HISTORY_TOOL = ToolSpec(
    name="get_order_history",
    description="List your recent orders.",
    parameter_schema={
        "type": "object",
        "properties": {"limit": {"type": "integer", "minimum": 1, "maximum": 50}},
        "additionalProperties": False,
    },
    required_capability=Capability.SHOPPING,
    handler=_get_order_history,
)

PLACE_ORDER_TOOL = ToolSpec(
    name="place_order",
    description="Place an order for one or more products.",
    parameter_schema={
        "type": "object",
        "properties": {
            "items": {
                "type": "array",
                "minItems": 1,
                "maxItems": 25,
                "items": {
                    "type": "object",
                    "properties": {
                        "product_id": {"type": "integer", "minimum": 1},
                        "quantity": {"type": "integer", "minimum": 1, "maximum": 100},
                    },
                    "required": ["product_id", "quantity"],
                    "additionalProperties": False,
                },
            },
            "delivery_address": {"type": "string", "maxLength": 300},
        },
        "required": ["items"],
        "additionalProperties": False,
    },
    required_capability=Capability.SHOPPING,
    handler=_place_order,
)
