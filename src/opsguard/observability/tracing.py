"""OpenTelemetry tracing setup for OpsGuard.

Initializes the OTLP exporter when OTEL_EXPORTER_OTLP_ENDPOINT is set and
the ``otel`` extra is installed. Otherwise spans come from the API's
no-op tracer provider.
"""

from __future__ import annotations

import os

from opentelemetry import trace
from opentelemetry.trace import Tracer

from opsguard import __version__
from opsguard.logging import get_logger

logger = get_logger("opsguard.observability")

_tracer: Tracer | None = None
_initialized = False


def init_tracing(
    endpoint: str | None = None,
    service_name: str | None = None,
) -> bool:
    """Initialize OpenTelemetry tracing.

    Args:
        endpoint: OTLP endpoint URL. Falls back to OTEL_EXPORTER_OTLP_ENDPOINT env var.
        service_name: Service name for traces. Falls back to OTEL_SERVICE_NAME env var.

    Returns:
        True if tracing was initialized, False if skipped (no endpoint or no SDK).
    """
    global _tracer, _initialized

    if _initialized:
        return _tracer is not None

    _initialized = True

    endpoint = endpoint or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return False

    service_name = service_name or os.environ.get("OTEL_SERVICE_NAME", "opsguard-api")

    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning("OTLP endpoint set but the otel extra is not installed; tracing disabled")
        return False

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer("opsguard", __version__)
    return True


def get_tracer() -> Tracer:
    """Get the OpsGuard tracer (no-op unless an SDK provider is installed)."""
    if _tracer is not None:
        return _tracer
    return trace.get_tracer("opsguard", __version__)


def shutdown() -> None:
    """Flush and shut down the tracer provider."""
    global _tracer, _initialized
    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()
    _tracer = None
    _initialized = False
