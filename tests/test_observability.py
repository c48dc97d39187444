"""Tests for OpsGuard observability helpers."""

import pytest

from opsguard.observability import (
    get_tracer,
    init_tracing,
    record_audit_failure,
    record_conversation,
    record_gate_denial,
    record_tool_call,
)
from opsguard.observability import tracing


@pytest.fixture(autouse=True)
def reset_tracing():
    yield
    tracing._tracer = None
    tracing._initialized = False


class TestTracing:
    def test_no_endpoint_skips_init(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        assert init_tracing() is False

    def test_second_init_is_noop(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        init_tracing()
        assert init_tracing() is False

    def test_get_tracer_always_returns_tracer(self):
        tracer = get_tracer()
        with tracer.start_as_current_span("opsguard.test") as span:
            span.set_attribute("opsguard.role", "driver")


class TestMetrics:
    def test_recorders_accept_calls(self):
        record_tool_call(tool_name="get_my_deliveries", role="driver", success=True, duration_ms=3.2)
        record_tool_call(
            tool_name="execute_dynamic_sql",
            role="customer",
            success=False,
            duration_ms=1.0,
            error_kind="Unauthorized",
        )
        record_gate_denial(role="customer", error_kind="Unauthorized")
        record_conversation(role="driver", status="Done", iterations=2)
        record_audit_failure("get_my_deliveries")
