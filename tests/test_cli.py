"""Tests for the OpsGuard CLI, run in-process with click's CliRunner."""

import pytest
from click.testing import CliRunner

from opsguard import __version__
from opsguard.audit.recorder import AuditRecorder, digest_arguments
from opsguard.cli import cli
from opsguard.core.models import AuditRecord, Role
from opsguard.storage.repository import AuditRepository


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def audit_env(tmp_path, monkeypatch):
    path = str(tmp_path / "cli-audit.db")
    monkeypatch.setenv("OPSGUARD_AUDIT_DATABASE_URL", path)
    return path


class TestCLIBasic:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("chat", "tools", "authorize", "audit", "verify", "serve"):
            assert command in result.output


class TestToolsCommand:
    def test_driver_tools(self, runner):
        result = runner.invoke(cli, ["tools", "--role", "driver"])
        assert result.exit_code == 0
        assert "get_my_deliveries" in result.output
        assert "place_order" not in result.output

    def test_invalid_role(self, runner):
        result = runner.invoke(cli, ["tools", "--role", "janitor"])
        assert result.exit_code != 0


class TestAuthorizeCommand:
    def test_allowed_prints_rewrite(self, runner):
        result = runner.invoke(
            cli, ["authorize", "SELECT * FROM delivery_tracking WHERE id = 42", "-r", "driver", "-a", "7"]
        )
        assert result.exit_code == 0
        assert "ALLOWED (READ)" in result.output
        assert "WHERE (id = 42) AND driver_id = 7" in result.output

    def test_denied_exits_nonzero(self, runner):
        result = runner.invoke(cli, ["authorize", "DROP TABLE users", "-r", "owner", "-a", "1"])
        assert result.exit_code == 1
        assert "DENIED [UnsafeQuery]" in result.output


class TestAuditCommands:
    def test_empty_audit(self, runner, audit_env):
        result = runner.invoke(cli, ["audit"])
        assert result.exit_code == 0
        assert "No audit records found." in result.output

    @pytest.mark.asyncio
    async def test_audit_and_verify(self, runner, audit_env):
        repo = AuditRepository(audit_env)
        await AuditRecorder(repo).record(AuditRecord(
            request_id="inv-1",
            actor_id="7",
            role=Role.DRIVER,
            tool_name="get_delivery",
            arguments_digest=digest_arguments({"delivery_id": 42}),
            success=True,
            duration_ms=2.0,
        ))
        repo.close()

        result = runner.invoke(cli, ["audit", "--actor-id", "7"])
        assert result.exit_code == 0
        assert "get_delivery" in result.output

        result = runner.invoke(cli, ["verify"])
        assert result.exit_code == 0
        assert "intact" in result.output.lower() or "verified" in result.output.lower()
