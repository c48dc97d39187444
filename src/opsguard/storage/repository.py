"""
OpsGuard Audit Persistence

Append-only SQL table for audit records. Supports SQLite and PostgreSQL
via the ``opsguard.storage.db`` connection wrapper. The repository only
ever inserts and reads; there is no update or delete path.
"""

from __future__ import annotations

from opsguard.core.models import AuditRecord
from opsguard.storage.db import connect

_COLUMNS = [
    "sequence",
    "timestamp",
    "request_id",
    "actor_id",
    "role",
    "tool_name",
    "arguments_digest",
    "success",
    "duration_ms",
    "rows_affected",
    "error_kind",
    "error_detail",
    "previous_hash",
    "record_hash",
]


class AuditRepository:
    """Database-backed append-only store for audit records."""

    def __init__(self, db_url: str = "opsguard.db"):
        """Initialize repository.

        Args:
            db_url: Database URL. Use ``postgresql://...`` for PostgreSQL
                    or a file path / ``:memory:`` for SQLite.
        """
        self._db_url = db_url
        self._conn = connect(db_url)
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS audit_records (
                sequence INTEGER PRIMARY KEY,
                timestamp TEXT NOT NULL,
                request_id TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                role TEXT NOT NULL,
                tool_name TEXT NOT NULL,
                arguments_digest TEXT NOT NULL,
                success INTEGER NOT NULL,
                duration_ms REAL DEFAULT 0,
                rows_affected INTEGER,
                error_kind TEXT,
                error_detail TEXT,
                previous_hash TEXT NOT NULL,
                record_hash TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_records(actor_id);
            CREATE INDEX IF NOT EXISTS idx_audit_tool ON audit_records(tool_name)
        """)
        self._conn.commit()

    def append(self, record: AuditRecord) -> None:
        """Insert one chained record and commit before returning."""
        data = record.model_dump(mode="json")
        data["success"] = 1 if record.success else 0
        placeholders = ", ".join(["?"] * len(_COLUMNS))
        try:
            self._conn.execute(
                f"INSERT INTO audit_records ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                tuple(data[c] for c in _COLUMNS),
            )
            self._conn.commit()
        except self._conn.driver_errors:
            self._conn.rollback()
            raise

    def head(self) -> tuple[int, str] | None:
        """Sequence and hash of the newest record, or None when empty."""
        row = self._conn.execute(
            "SELECT sequence, record_hash FROM audit_records ORDER BY sequence DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        return row["sequence"], row["record_hash"]

    def list(
        self,
        actor_id: str | None = None,
        tool_name: str | None = None,
        limit: int = 100,
    ) -> list[AuditRecord]:
        """Newest-first records with optional filters."""
        clauses = []
        params: list = []
        if actor_id:
            clauses.append("actor_id = ?")
            params.append(actor_id)
        if tool_name:
            clauses.append("tool_name = ?")
            params.append(tool_name)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self._conn.execute(
            f"SELECT * FROM audit_records{where} ORDER BY sequence DESC LIMIT ?",
            tuple(params),
        ).fetchall()
        return [AuditRecord(**row) for row in rows]

    def iter_all(self) -> list[AuditRecord]:
        """Every record in chain order."""
        rows = self._conn.execute("SELECT * FROM audit_records ORDER BY sequence ASC").fetchall()
        return [AuditRecord(**row) for row in rows]

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM audit_records").fetchone()
        return row["n"] if row else 0

    def close(self) -> None:
        self._conn.close()
