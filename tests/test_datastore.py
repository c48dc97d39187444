"""Tests for datastore sessions and interruption."""

import sqlite3

import pytest

from opsguard.exceptions import UpstreamFailureError
from opsguard.storage.datastore import Datastore
from opsguard.storage.db import DbConnection


def _status(db_path: str, delivery_id: int = 41) -> str:
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(
            "SELECT status FROM delivery_tracking WHERE id = ?", (delivery_id,)
        ).fetchone()[0]
    finally:
        conn.close()


class InterruptAfterStatement(DbConnection):
    """Interrupts its owning session once a statement has run."""

    session = None

    def execute(self, sql, params=()):
        result = super().execute(sql, params)
        if self.session is not None:
            self.session.interrupt()
        return result


def _interrupting_connector(url: str) -> DbConnection:
    conn = sqlite3.connect(url, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return InterruptAfterStatement(conn)


class TestSession:
    def test_write_commits(self, datastore, db_path):
        with datastore.session() as session:
            result = session.execute("UPDATE delivery_tracking SET status = 'picked_up' WHERE id = 41")
        assert result.changes == 1
        assert _status(db_path) == "picked_up"

    def test_driver_error_becomes_upstream_failure(self, datastore):
        with datastore.session() as session:
            with pytest.raises(UpstreamFailureError, match="no such table"):
                session.query("SELECT * FROM missing_table")

    def test_unreachable_store(self, tmp_path):
        store = Datastore(str(tmp_path / "missing" / "nested" / "ops.db"))
        with pytest.raises(UpstreamFailureError, match="cannot connect"):
            store.open_session()
        assert store.ping() is False


class TestInterrupt:
    def test_interrupted_session_refuses_new_calls(self, datastore, db_path):
        session = datastore.open_session()
        try:
            session.interrupt()
            assert session.interrupted
            with pytest.raises(UpstreamFailureError, match="interrupted"):
                session.execute("UPDATE delivery_tracking SET status = 'failed' WHERE id = 41")
            with pytest.raises(UpstreamFailureError, match="interrupted"):
                session.query("SELECT 1")
        finally:
            session.close()
        assert _status(db_path) == "assigned"

    def test_write_interrupted_before_commit_is_rolled_back(self, db_path):
        store = Datastore(db_path, connector=_interrupting_connector)
        session = store.open_session()
        session._conn.session = session
        try:
            with pytest.raises(UpstreamFailureError, match="before commit"):
                session.execute("UPDATE delivery_tracking SET status = 'failed' WHERE id = 41")
        finally:
            session.close()
        assert _status(db_path) == "assigned"
