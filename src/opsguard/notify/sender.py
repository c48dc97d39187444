"""
OpsGuard Notification Senders

One-way email delivery used by the notification tool:

    send(to, subject, body, metadata) -> SendResult(success, message_id)

HttpMailSender posts to a transactional mail HTTP API (Mailtrap-style
``/api/send`` payload). LogMailSender only logs the message and is the
default when no mail API is configured. Neither raises on delivery
failure; the tool turns an unsuccessful SendResult into a degraded result.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from opsguard.logging import get_logger

logger = get_logger("opsguard.notify")


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class NotificationSender(Protocol):
    async def send(
        self, to: str, subject: str, body: str, metadata: dict[str, Any] | None = None
    ) -> SendResult: ...


class LogMailSender:
    """Development sender: logs instead of delivering."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(
        self, to: str, subject: str, body: str, metadata: dict[str, Any] | None = None
    ) -> SendResult:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        self.sent.append({"to": to, "subject": subject, "body": body, "metadata": metadata or {}})
        logger.info("Email logged (not delivered) to %s: %s", to, subject)
        return SendResult(success=True, message_id=message_id)


class HttpMailSender:
    """Delivers through a transactional mail HTTP API."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        sender: str,
        sender_name: str = "OpsGuard",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_url = api_url
        self._api_token = api_token
        self._sender = sender
        self._sender_name = sender_name
        self._timeout = timeout
        self._transport = transport

    async def send(
        self, to: str, subject: str, body: str, metadata: dict[str, Any] | None = None
    ) -> SendResult:
        metadata = metadata or {}
        payload = {
            "from": {"email": self._sender, "name": self._sender_name},
            "to": [{"email": to}],
            "subject": subject,
            "text": body,
            "category": metadata.get("template", "custom"),
        }
        headers = {"Authorization": f"Bearer {self._api_token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Mail API request failed: %s", e)
            return SendResult(success=False, error=f"mail API unreachable: {e}")

        if resp.status_code >= 400:
            return SendResult(
                success=False,
                error=f"mail API error: {resp.status_code} - {resp.text[:200]}",
            )
        data = resp.json()
        ids = data.get("message_ids") or []
        return SendResult(success=bool(data.get("success", True)), message_id=ids[0] if ids else None)
