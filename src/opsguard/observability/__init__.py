"""OpsGuard Observability: OpenTelemetry tracing and metrics.

Export is opt-in via the OTEL_EXPORTER_OTLP_ENDPOINT env var and the
``otel`` extra. Without an SDK installed the OpenTelemetry API hands out
no-op instruments, so every call here is safe to make unconditionally.
"""

from opsguard.observability.metrics import (
    record_audit_failure,
    record_conversation,
    record_gate_denial,
    record_tool_call,
)
from opsguard.observability.tracing import get_tracer, init_tracing

__all__ = [
    "init_tracing",
    "get_tracer",
    "record_audit_failure",
    "record_conversation",
    "record_gate_denial",
    "record_tool_call",
]
