"""Observability: engine events and OpenTelemetry tracing."""

from spreadengine.observability.events import EngineEvent, emit_event
from spreadengine.observability.tracing import (
    TracingConfigError,
    configure_tracing,
    get_test_spans,
    is_tracing_enabled,
    reset_tracing,
    traced_operation,
)

__all__ = [
    "EngineEvent",
    "TracingConfigError",
    "configure_tracing",
    "emit_event",
    "get_test_spans",
    "is_tracing_enabled",
    "reset_tracing",
    "traced_operation",
]
