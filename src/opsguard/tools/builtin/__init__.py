"""
OpsGuard Built-in Tools

Role tool sets registered by AgentEngine.from_settings(). Every data tool
reaches the datastore only through ToolContext, so the authorization gate
scopes it to the calling actor.
"""

from opsguard.tools.builtin.customer import (
    CHECK_PRODUCT_AVAILABILITY_TOOL,
    GET_ORDER_HISTORY_TOOL,
    PLACE_ORDER_TOOL,
    SEARCH_PRODUCTS_TOOL,
)
from opsguard.tools.builtin.driver import (
    GET_DELIVERY_TOOL,
    GET_DRIVER_EARNINGS_TOOL,
    GET_MY_DELIVERIES_TOOL,
    UPDATE_DELIVERY_STATUS_TOOL,
)
from opsguard.tools.builtin.notify import SEND_EMAIL_NOTIFICATION_TOOL
from opsguard.tools.builtin.operations import (
    ASSIGN_DELIVERY_TOOL,
    GET_ALL_ORDERS_TOOL,
    GET_BUSINESS_ANALYTICS_TOOL,
    GET_REORDER_RECOMMENDATIONS_TOOL,
)
from opsguard.tools.builtin.sql_tool import DYNAMIC_SQL_TOOL
from opsguard.tools.builtin.supplier import (
    GET_MY_PRODUCTS_TOOL,
    GET_SUPPLIER_ORDERS_TOOL,
    UPDATE_ORDER_STATUS_TOOL,
)
from opsguard.tools.registry import ToolRegistry

ALL_BUILTIN_TOOLS = [
    DYNAMIC_SQL_TOOL,
    GET_MY_DELIVERIES_TOOL,
    GET_DELIVERY_TOOL,
    UPDATE_DELIVERY_STATUS_TOOL,
    GET_DRIVER_EARNINGS_TOOL,
    GET_SUPPLIER_ORDERS_TOOL,
    UPDATE_ORDER_STATUS_TOOL,
    GET_MY_PRODUCTS_TOOL,
    SEARCH_PRODUCTS_TOOL,
    CHECK_PRODUCT_AVAILABILITY_TOOL,
    GET_ORDER_HISTORY_TOOL,
    PLACE_ORDER_TOOL,
    GET_BUSINESS_ANALYTICS_TOOL,
    GET_REORDER_RECOMMENDATIONS_TOOL,
    GET_ALL_ORDERS_TOOL,
    ASSIGN_DELIVERY_TOOL,
    SEND_EMAIL_NOTIFICATION_TOOL,
]


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register all built-in tools with the given registry."""
    for tool in ALL_BUILTIN_TOOLS:
        registry.register(tool)
