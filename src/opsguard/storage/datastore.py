"""
OpsGuard Relational Datastore

Narrow interface the tool layer talks to:

    query(sql, params)   -> list of row dicts
    execute(sql, params) -> WriteResult(changes, last_id)

Connections are checked out per session and closed when the session ends,
whether it ends normally or with an error. Every write is committed before
execute() returns. Driver errors surface as UpstreamFailureError.

A session can be interrupted from another thread (a cancelled invocation
does this). The running statement is aborted and an uncommitted write is
rolled back.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from opsguard.exceptions import UpstreamFailureError
from opsguard.logging import get_logger
from opsguard.storage.db import DbConnection, connect

logger = get_logger("opsguard.storage")


@dataclass(frozen=True)
class WriteResult:
    changes: int
    last_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"changes": self.changes, "lastId": self.last_id}


class DatastoreSession:
    """A single checked-out connection.

    interrupt() may be called from another thread while a call is running.
    A write that has not committed yet is rolled back; one that already
    committed stays committed and is reported by its caller.
    """

    def __init__(self, conn: DbConnection):
        self._conn = conn
        self._lock = threading.Lock()
        self._interrupted = False

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    def query(self, sql: str, params: tuple | list = ()) -> list[dict[str, Any]]:
        self._check_interrupted()
        try:
            return self._conn.execute(sql, params).fetchall()
        except self._conn.driver_errors as e:
            raise UpstreamFailureError("datastore", str(e)) from e

    def execute(self, sql: str, params: tuple | list = ()) -> WriteResult:
        self._check_interrupted()
        try:
            self._conn.execute(sql, params)
            result = WriteResult(changes=self._conn.rowcount, last_id=self._conn.lastrowid)
            with self._lock:
                if self._interrupted:
                    self._conn.rollback()
                    raise UpstreamFailureError("datastore", "write interrupted before commit")
                self._conn.commit()
            return result
        except self._conn.driver_errors as e:
            self._conn.rollback()
            raise UpstreamFailureError("datastore", str(e)) from e

    def interrupt(self) -> None:
        """Stop the running call. Blocks while a commit is in progress."""
        with self._lock:
            self._interrupted = True
        self._conn.interrupt()

    def close(self) -> None:
        self._conn.close()

    def _check_interrupted(self) -> None:
        if self._interrupted:
            raise UpstreamFailureError("datastore", "session interrupted")


class Datastore:
    """Factory for per-invocation datastore sessions."""

    def __init__(self, url: str, connector: Callable[[str], DbConnection] = connect):
        self.url = url
        self._connector = connector

    def open_session(self) -> DatastoreSession:
        """Check out a connection. The caller must close the session."""
        try:
            conn = self._connector(self.url)
        except Exception as e:
            raise UpstreamFailureError("datastore", f"cannot connect: {e}") from e
        return DatastoreSession(conn)

    @contextmanager
    def session(self) -> Iterator[DatastoreSession]:
        """Check out a connection for the duration of the block."""
        session = self.open_session()
        try:
            yield session
        finally:
            session.close()

    def ping(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            with self.session() as session:
                session.query("SELECT 1")
            return True
        except UpstreamFailureError as e:
            logger.warning("Datastore ping failed: %s", e)
            return False
