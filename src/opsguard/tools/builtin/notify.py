"""Email notification tool with a small set of message templates."""

from string import Template
from typing import Any

from opsguard.exceptions import ToolValidationError
from opsguard.tools.context import ToolContext
from opsguard.tools.models import Capability, ToolSpec

# template name -> (subject, body); $placeholders filled from `data`
EMAIL_TEMPLATES: dict[str, tuple[str, str]] = {
    "order_confirmation": (
        "Order #$order_id confirmed",
        "Thank you for your order #$order_id. Total: $total. We will let you know when it ships.",
    ),
    "low_stock_alert": (
        "Low stock: $product_name",
        "$product_name is down to $stock_quantity units (minimum $min_stock_level). Please reorder.",
    ),
    "delivery_notification": (
        "Delivery #$delivery_id update",
        "Your delivery #$delivery_id is now $status.",
    ),
    "supplier_order": (
        "New purchase order #$order_id",
        "A purchase order #$order_id for $quantity x $product_name has been placed.",
    ),
}


def render_email(template: str, data: dict[str, Any], subject: str | None, body: str | None) -> tuple[str, str]:
    """Return (subject, body) for a template, or the explicit text for 'custom'."""
    if template == "custom":
        if not subject or not body:
            raise ToolValidationError("custom emails need both subject and body")
        return subject, body
    subject_tpl, body_tpl = EMAIL_TEMPLATES[template]
    values = {k: str(v) for k, v in data.items()}
    return (
        subject or Template(subject_tpl).safe_substitute(values),
        body or Template(body_tpl).safe_substitute(values),
    )


async def _send_email_notification(
    ctx: ToolContext,
    to: str,
    template: str,
    subject: str | None = None,
    body: str | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    rendered_subject, rendered_body = render_email(template, data or {}, subject, body)
    result = await ctx.notify(
        to,
        rendered_subject,
        rendered_body,
        {"template": template, "actor_id": ctx.actor.actor_id, "request_id": ctx.request_id},
    )
    return {"sent": True, "messageId": result.message_id, "to": to, "template": template}


SEND_EMAIL_NOTIFICATION_TOOL = ToolSpec(
    name="send_email_notification",
    description=(
        "Send an email using a template (order_confirmation, low_stock_alert, "
        "delivery_notification, supplier_order) or custom subject and body."
    ),
    parameter_schema={
        "type": "object",
        "properties": {
            "to": {"type": "string", "pattern": "^[^@\\s]+@[^@\\s]+\\.[^@\\s]+$"},
            "template": {"type": "string", "enum": [*EMAIL_TEMPLATES, "custom"]},
            "subject": {"type": "string", "maxLength": 200},
            "body": {"type": "string", "maxLength": 5000},
            "data": {"type": "object"},
        },
        "required": ["to", "template"],
        "additionalProperties": False,
    },
    required_capability=Capability.NOTIFY,
    handler=_send_email_notification,
    data_access=False,
)
