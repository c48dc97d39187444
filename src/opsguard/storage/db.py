"""
OpsGuard Database Connection Abstraction

Provides a unified interface for SQLite and PostgreSQL.
Detects the backend from the connection URL:
- ``postgresql://`` or ``postgres://`` → psycopg (PostgreSQL)
- anything else (file path, ``:memory:``) → sqlite3

Usage::

    from opsguard.storage.db import connect

    conn = connect(os.environ.get("DATABASE_URL", "opsguard.db"))
    conn.execute("SELECT * FROM products WHERE id = ?", (3,))
    rows = conn.fetchall()
    conn.close()

``?`` placeholders are converted to ``%s`` for PostgreSQL. The conversion
is token-aware, so a ``?`` inside a string literal is left alone.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Any

from opsguard.gate.sql import TokenType, tokenize


class DbConnection:
    """Unified database connection wrapper."""

    def __init__(
        self,
        conn: Any,
        *,
        is_postgres: bool = False,
        driver_errors: tuple[type[BaseException], ...] = (sqlite3.Error,),
    ) -> None:
        self._conn = conn
        self._cursor: Any = None
        self.is_postgres = is_postgres
        self.driver_errors = driver_errors

    def _convert_sql(self, sql: str, has_params: bool) -> str:
        """Rewrite ``?`` placeholders (and literal ``%``) for psycopg."""
        if not self.is_postgres:
            return sql
        if not has_params:
            return sql
        pieces = []
        last = 0
        for tok in tokenize(sql):
            if tok.type == TokenType.PARAM and tok.text == "?":
                replacement = "%s"
            elif "%" in tok.text and tok.type in (TokenType.STRING, TokenType.PUNCT):
                replacement = tok.text.replace("%", "%%")
            else:
                continue
            pieces.append(sql[last : tok.start])
            pieces.append(replacement)
            last = tok.end
        pieces.append(sql[last:])
        return "".join(pieces)

    def _convert_ddl(self, sql: str) -> str:
        """Convert SQLite DDL to PostgreSQL DDL."""
        if not self.is_postgres:
            return sql
        return re.sub(
            r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
            "SERIAL PRIMARY KEY",
            sql,
            flags=re.IGNORECASE,
        )

    def execute(self, sql: str, params: tuple | list = ()) -> DbConnection:
        """Execute a single SQL statement. Returns self for chaining."""
        params = tuple(params)
        sql = self._convert_sql(sql, bool(params))
        if self.is_postgres:
            self._cursor = self._conn.cursor()
            self._cursor.execute(sql, params or None)
        else:
            self._cursor = self._conn.execute(sql, params)
        return self

    def executescript(self, sql: str) -> None:
        """Execute multiple DDL statements separated by semicolons."""
        if self.is_postgres:
            sql = self._convert_ddl(sql)
            cur = self._conn.cursor()
            for stmt in sql.split(";"):
                stmt = stmt.strip()
                if stmt:
                    cur.execute(stmt)
            self._conn.commit()
        else:
            self._conn.executescript(sql)

    def fetchone(self) -> dict[str, Any] | None:
        """Fetch one row as a dict."""
        if self._cursor is None:
            return None
        row = self._cursor.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self) -> list[dict[str, Any]]:
        """Fetch all rows as list of dicts."""
        if self._cursor is None or self._cursor.description is None:
            return []
        return [dict(r) for r in self._cursor.fetchall()]

    @property
    def rowcount(self) -> int:
        if self._cursor is None:
            return 0
        return max(self._cursor.rowcount, 0)

    @property
    def lastrowid(self) -> int | None:
        if self._cursor is None:
            return None
        return getattr(self._cursor, "lastrowid", None)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def interrupt(self) -> None:
        """Abort the statement running on this connection. Safe from any thread."""
        if self.is_postgres:
            self._conn.cancel()
        else:
            self._conn.interrupt()

    def close(self) -> None:
        self._conn.close()


def connect(db_url: str) -> DbConnection:
    """Create a database connection from a URL or path.

    Args:
        db_url: PostgreSQL URL (``postgresql://...`` or ``postgres://...``)
                or SQLite path (file path or ``:memory:``).
    """
    if db_url.startswith(("postgresql://", "postgres://")):
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError:
            raise ImportError(
                "PostgreSQL support requires psycopg. Install with: pip install 'opsguard[postgres]'"
            ) from None

        conn = psycopg.connect(db_url, row_factory=dict_row, autocommit=False)
        return DbConnection(conn, is_postgres=True, driver_errors=(psycopg.Error,))

    conn = sqlite3.connect(db_url, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return DbConnection(conn, is_postgres=False)
