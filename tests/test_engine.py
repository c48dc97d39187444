"""Tests for the AgentEngine facade."""

import pytest
from conftest import ScriptedProvider, text_reply, tool_reply

from opsguard import AgentEngine, ConversationStatus, Role
from opsguard.notify.sender import HttpMailSender, LogMailSender


@pytest.fixture
def engine(settings):
    provider = ScriptedProvider([text_reply("Hello from the bakery.")])
    return AgentEngine.from_settings(settings, provider=provider)


# ─── Construction ────────────────────────────────────────────


class TestFromSettings:
    def test_registers_builtin_tools(self, engine):
        assert len(engine.registry) > 0
        assert "execute_dynamic_sql" in engine.registry

    def test_defaults_to_log_sender_without_mail_api(self, engine):
        assert isinstance(engine.notifier, LogMailSender)

    def test_uses_http_sender_when_configured(self, settings):
        configured = settings.model_copy(update={"mail_api_url": "https://mail.example.com/send"})
        engine = AgentEngine.from_settings(configured, provider=ScriptedProvider([text_reply("x")]))
        assert isinstance(engine.notifier, HttpMailSender)

    def test_keeps_settings(self, engine, settings):
        assert engine.settings is settings


# ─── Chat ────────────────────────────────────────────────────


class TestChat:
    @pytest.mark.asyncio
    async def test_plain_answer(self, engine, driver7):
        response = await engine.chat(driver7, "hi")
        assert response.status == ConversationStatus.DONE
        assert response.message == "Hello from the bakery."
        assert response.iterations == 1

    @pytest.mark.asyncio
    async def test_each_chat_gets_fresh_conversation(self, engine, driver7):
        first = await engine.chat(driver7, "hi")
        second = await engine.chat(driver7, "again")
        assert first.conversation_id != second.conversation_id

    @pytest.mark.asyncio
    async def test_tool_round_is_audited(self, settings, driver7):
        provider = ScriptedProvider(
            [tool_reply(("get_my_deliveries", {})), text_reply("You have deliveries.")]
        )
        engine = AgentEngine.from_settings(settings, provider=provider)
        response = await engine.chat(driver7, "what are my deliveries?")

        assert response.status == ConversationStatus.DONE
        assert [r.tool_name for r in response.tool_calls] == ["get_my_deliveries"]
        records = engine.recorder.list(actor_id="7")
        assert [r.tool_name for r in records] == ["get_my_deliveries"]


# ─── Catalog and health ──────────────────────────────────────


class TestCatalogAndHealth:
    def test_catalog_matches_registry(self, engine):
        names = [spec.name for spec in engine.catalog_for(Role.DRIVER)]
        assert names == [spec.name for spec in engine.registry.list_for(Role.DRIVER)]

    def test_health_reports_components(self, engine):
        health = engine.health()
        assert health["datastore"] == "ok"
        assert health["audit"] == "ok"
        assert health["provider"].startswith("openai:")
