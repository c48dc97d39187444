"""OpenTelemetry metrics for OpsGuard.

Counters and histograms for tool calls, gate denials, conversations and
audit write failures. Instruments are created lazily on first use.
"""

from __future__ import annotations

from opentelemetry import metrics

from opsguard import __version__

_meter = None
_tool_calls_total = None
_tool_errors_total = None
_tool_duration = None
_gate_denials_total = None
_conversations_total = None
_audit_failures_total = None


def _ensure_meter() -> None:
    """Lazily initialize the meter and instruments."""
    global _meter, _tool_calls_total, _tool_errors_total, _tool_duration
    global _gate_denials_total, _conversations_total, _audit_failures_total

    if _meter is not None:
        return

    _meter = metrics.get_meter("opsguard", __version__)
    _tool_calls_total = _meter.create_counter(
        "opsguard.tool.calls",
        description="Total tool invocations",
        unit="1",
    )
    _tool_errors_total = _meter.create_counter(
        "opsguard.tool.errors",
        description="Failed tool invocations by error kind",
        unit="1",
    )
    _tool_duration = _meter.create_histogram(
        "opsguard.tool.duration",
        description="Tool invocation duration in milliseconds",
        unit="ms",
    )
    _gate_denials_total = _meter.create_counter(
        "opsguard.gate.denials",
        description="Queries rejected by the authorization gate",
        unit="1",
    )
    _conversations_total = _meter.create_counter(
        "opsguard.conversations",
        description="Completed conversations by terminal status",
        unit="1",
    )
    _audit_failures_total = _meter.create_counter(
        "opsguard.audit.write_failures",
        description="Audit records that could not be written",
        unit="1",
    )


def record_tool_call(
    *, tool_name: str, role: str, success: bool, duration_ms: float, error_kind: str | None = None
) -> None:
    """Record one tool invocation and its duration."""
    _ensure_meter()
    attrs = {"opsguard.tool_name": tool_name, "opsguard.role": role, "opsguard.success": str(success)}
    _tool_calls_total.add(1, attrs)
    _tool_duration.record(duration_ms, {"opsguard.tool_name": tool_name})
    if not success:
        _tool_errors_total.add(
            1, {"opsguard.tool_name": tool_name, "opsguard.error_kind": error_kind or "unknown"}
        )


def record_gate_denial(*, role: str, error_kind: str) -> None:
    _ensure_meter()
    _gate_denials_total.add(1, {"opsguard.role": role, "opsguard.error_kind": error_kind})


def record_conversation(*, role: str, status: str, iterations: int) -> None:
    """Record a conversation reaching Done or Aborted."""
    _ensure_meter()
    _conversations_total.add(
        1,
        {"opsguard.role": role, "opsguard.status": status, "opsguard.iterations": str(iterations)},
    )


def record_audit_failure(tool_name: str) -> None:
    _ensure_meter()
    _audit_failures_total.add(1, {"opsguard.tool_name": tool_name})
