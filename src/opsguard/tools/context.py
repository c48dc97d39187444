"""
OpsGuard Tool Context

The only path from a tool handler to the datastore. Every read and write
goes through the authorization gate first, and each call checks out its
own connection (released on completion or failure), so no handler holds a
connection while the conversation waits on the LLM.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from opsguard.core.models import ActorContext, ErrorKind, QueryOperation
from opsguard.exceptions import (
    ToolValidationError,
    UnauthorizedError,
    UnsafeQueryError,
    UpstreamFailureError,
)
from opsguard.gate.authorizer import AuthorizationVerdict, QueryAuthorizationGate
from opsguard.logging import get_logger
from opsguard.notify.sender import NotificationSender, SendResult
from opsguard.observability.metrics import record_gate_denial
from opsguard.storage.datastore import Datastore, DatastoreSession, WriteResult

logger = get_logger("opsguard.tools")

T = TypeVar("T")


class ToolContext:
    """Per-invocation handle given to tool handlers."""

    def __init__(
        self,
        actor: ActorContext,
        request_id: str,
        gate: QueryAuthorizationGate,
        datastore: Datastore | None,
        notifier: NotificationSender | None = None,
    ):
        self.actor = actor
        self.request_id = request_id
        self._gate = gate
        self._datastore = datastore
        self._notifier = notifier
        self.verdicts: list[AuthorizationVerdict] = []
        self.rows_affected: int | None = None

    # ─── Data Access ──────────────────────────────────────────

    async def read(self, sql: str, params: tuple | list = ()) -> list[dict[str, Any]]:
        """Authorize and run a read. Rows are scoped to the actor."""
        self._require_datastore()
        query = self._authorize(sql, QueryOperation.READ)
        return await self._in_session(lambda session: session.query(query, params))

    async def write(self, sql: str, params: tuple | list = ()) -> WriteResult:
        """Authorize and run a write. Effects are scoped to the actor."""
        self._require_datastore()
        query = self._authorize(sql, QueryOperation.WRITE)

        def run(session: DatastoreSession) -> WriteResult:
            result = session.execute(query, params)
            # counted on commit, so a late cancellation still sees it
            self.rows_affected = (self.rows_affected or 0) + result.changes
            return result

        return await self._in_session(run)

    async def read_catalog(self, sql: str, params: tuple | list = ()) -> list[dict[str, Any]]:
        """Run a fixed read of public reference data (e.g. the product list)."""
        self._require_datastore()
        verdict = self._gate.authorize_catalog_read(sql)
        if not verdict.allowed:
            raise UnauthorizedError(verdict.reason or "catalog read denied")
        query = verdict.rewritten_query
        return await self._in_session(lambda session: session.query(query, params))

    def _require_datastore(self) -> None:
        if self._datastore is None:
            raise UnauthorizedError("this tool has no datastore access")

    def _authorize(self, sql: str, expected: QueryOperation) -> str:
        verdict = self._gate.authorize(sql, self.actor.role, self.actor.actor_id)
        self.verdicts.append(verdict)
        if not verdict.allowed:
            record_gate_denial(role=self.actor.role.value, error_kind=verdict.error_kind.value)
            logger.info(
                "Query denied: %s",
                verdict.reason,
                extra={
                    "request_id": self.request_id,
                    "actor_id": self.actor.actor_id,
                    "role": self.actor.role,
                    "error_kind": verdict.error_kind,
                },
            )
            if verdict.error_kind == ErrorKind.UNSAFE_QUERY:
                raise UnsafeQueryError(verdict.reason, details={"reason": verdict.reason})
            raise UnauthorizedError(verdict.reason, details={"reason": verdict.reason})
        if verdict.operation != expected:
            raise ToolValidationError(
                f"statement is a {verdict.operation.value} operation, expected {expected.value}"
            )
        return verdict.rewritten_query

    async def _in_session(self, call: Callable[[DatastoreSession], T]) -> T:
        """Run a blocking datastore call on a worker thread.

        The worker cannot be cancelled, so cancellation interrupts the
        session and waits for the worker to roll back (or finish) before
        propagating. Nothing is committed after the caller has given up.
        """
        session = await asyncio.to_thread(self._datastore.open_session)
        work = asyncio.ensure_future(asyncio.to_thread(call, session))
        try:
            return await asyncio.shield(work)
        except asyncio.CancelledError:
            session.interrupt()
            await asyncio.wait([work])
            if work.exception() is None:
                logger.warning(
                    "Datastore call finished after cancellation",
                    extra={"request_id": self.request_id, "actor_id": self.actor.actor_id},
                )
            else:
                logger.info(
                    "Datastore call interrupted: %s",
                    work.exception(),
                    extra={"request_id": self.request_id, "actor_id": self.actor.actor_id},
                )
            raise
        finally:
            if work.done():
                session.close()
            else:
                work.add_done_callback(lambda _: session.close())

    # ─── Notifications ────────────────────────────────────────

    async def notify(
        self, to: str, subject: str, body: str, metadata: dict[str, Any] | None = None
    ) -> SendResult:
        """Send a notification. An unsuccessful send raises UpstreamFailureError."""
        if self._notifier is None:
            raise UpstreamFailureError("notification", "no sender configured")
        result = await self._notifier.send(to, subject, body, metadata)
        if not result.success:
            raise UpstreamFailureError("notification", result.error or "send failed")
        return result
