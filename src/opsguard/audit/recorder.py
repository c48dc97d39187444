"""
OpsGuard Audit Recorder

Durable, tamper-evident record of every tool invocation attempt.

Each record is linked to the previous one by SHA-256 over the canonical
JSON of the record plus the previous record's hash (genesis: 64 zeros),
so any later modification breaks the chain.

record() returns only after the record is committed. A failed write is
logged and counted but never raised: audit observes side effects, it does
not gate them.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import threading
from typing import Any

from opsguard.core.models import AuditRecord
from opsguard.logging import get_logger
from opsguard.observability.metrics import record_audit_failure
from opsguard.storage.repository import AuditRepository

logger = get_logger("opsguard.audit")

GENESIS_HASH = "0" * 64


def digest_arguments(arguments: Any) -> str:
    """SHA-256 of the canonical JSON form of tool arguments."""
    canonical = json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def compute_record_hash(record: AuditRecord) -> str:
    content = json.dumps(
        record.model_dump(mode="json", exclude={"record_hash"}),
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(content.encode()).hexdigest()


class AuditRecorder:
    """Append-only, hash-chained audit sink over an AuditRepository."""

    def __init__(self, repository: AuditRepository):
        self._repo = repository
        self._lock = threading.Lock()
        head = repository.head()
        if head is None:
            self._next_sequence, self._current_hash = 0, GENESIS_HASH
        else:
            self._next_sequence, self._current_hash = head[0] + 1, head[1]

    @property
    def repository(self) -> AuditRepository:
        return self._repo

    @property
    def chain_head(self) -> str:
        return self._current_hash

    async def record(self, record: AuditRecord) -> AuditRecord | None:
        """Chain and durably write one record.

        Returns the chained record, or None if the write failed. The write
        is shielded so that cancelling the caller cannot leave the chain
        half-advanced.
        """
        return await asyncio.shield(asyncio.to_thread(self._append, record))

    def _append(self, record: AuditRecord) -> AuditRecord | None:
        with self._lock:
            chained = record.model_copy(
                update={"sequence": self._next_sequence, "previous_hash": self._current_hash}
            )
            chained.record_hash = compute_record_hash(chained)
            try:
                self._repo.append(chained)
            except Exception as e:
                logger.error(
                    "Audit write failed: %s",
                    e,
                    extra={
                        "request_id": record.request_id,
                        "actor_id": record.actor_id,
                        "tool_name": record.tool_name,
                    },
                )
                record_audit_failure(record.tool_name)
                return None
            self._next_sequence += 1
            self._current_hash = chained.record_hash
            return chained

    def list(self, actor_id: str | None = None, tool_name: str | None = None, limit: int = 100) -> list[AuditRecord]:
        with self._lock:
            return self._repo.list(actor_id=actor_id, tool_name=tool_name, limit=limit)

    def verify_chain(self) -> tuple[bool, str]:
        """Verify the persisted chain is intact.

        Returns (is_valid, message).
        """
        with self._lock:
            records = self._repo.iter_all()
        if not records:
            return True, "Empty log: no records to verify"

        expected_prev = GENESIS_HASH
        for record in records:
            if record.previous_hash != expected_prev:
                return False, (
                    f"Chain broken at record {record.sequence}: "
                    f"expected previous_hash={expected_prev[:16]}..., "
                    f"got {record.previous_hash[:16]}..."
                )
            recomputed = compute_record_hash(record)
            if recomputed != record.record_hash:
                return False, (
                    f"Tampered record at {record.sequence}: "
                    f"stored hash={record.record_hash[:16]}..., "
                    f"recomputed={recomputed[:16]}..."
                )
            expected_prev = record.record_hash

        return True, f"All {len(records)} records verified: chain intact"
