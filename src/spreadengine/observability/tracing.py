"""OpenTelemetry tracing for spreadengine computations.

Tracing is off until configure_tracing() enables it. Computation code is
decorated with traced_operation(); when tracing is disabled the decorator
calls straight through.

Environment Variables (read by configure_tracing only):
    SPREADENGINE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    SPREADENGINE_OTEL_SERVICE_NAME: Service name for spans (default: "spreadengine")
    SPREADENGINE_OTEL_EXPORTER: "console" or "memory" (default: "console")

Span attributes carry identifiers and counts only, never financial values.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

OTEL_ENABLED_ENV = "SPREADENGINE_OTEL_ENABLED"
OTEL_SERVICE_NAME_ENV = "SPREADENGINE_OTEL_SERVICE_NAME"
OTEL_EXPORTER_ENV = "SPREADENGINE_OTEL_EXPORTER"

TRACER_NAME = "spreadengine"

F = TypeVar("F", bound=Callable[..., Any])

_tracer_provider: TracerProvider | None = None
_enabled: bool = False
_test_exporter: Any = None  # InMemorySpanExporter when exporter == "memory"


class TracingConfigError(Exception):
    """Raised when tracing is required but cannot be configured."""

    pass


def _get_env_bool(environ: Mapping[str, str], key: str, default: bool = False) -> bool:
    """Get boolean from an environment mapping."""
    val = environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def configure_tracing(environ: Mapping[str, str] | None = None) -> bool:
    """Configure OpenTelemetry tracing from the environment.

    Idempotent: a configured provider is reused.

    Args:
        environ: Environment mapping; defaults to os.environ.

    Returns:
        True if tracing is enabled and configured, False otherwise.
    """
    global _tracer_provider, _enabled, _test_exporter

    env = os.environ if environ is None else environ
    if not _get_env_bool(env, OTEL_ENABLED_ENV, False):
        _enabled = False
        logger.debug("OpenTelemetry tracing disabled (%s not set)", OTEL_ENABLED_ENV)
        return False

    if _tracer_provider is not None:
        _enabled = True
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import SimpleSpanProcessor

        service_name = env.get(OTEL_SERVICE_NAME_ENV, "spreadengine").strip() or "spreadengine"
        exporter_type = env.get(OTEL_EXPORTER_ENV, "console").strip() or "console"

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        if exporter_type == "memory":
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        else:
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider
        _enabled = True
        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type,
        )
        return True
    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        raise TracingConfigError(f"OpenTelemetry tracing configuration failed: {e}") from e


def is_tracing_enabled() -> bool:
    """Whether configure_tracing() has enabled tracing."""
    return _enabled


def _tracer() -> Any:
    if _tracer_provider is not None:
        return _tracer_provider.get_tracer(TRACER_NAME)
    from opentelemetry import trace

    return trace.get_tracer(TRACER_NAME)


def traced_operation(
    operation: str,
    attributes: Callable[..., Mapping[str, Any]] | None = None,
) -> Callable[[F], F]:
    """Decorator emitting a span named ``spreadengine.<operation>``.

    Args:
        operation: Operation name, e.g. "parity.compare".
        attributes: Optional callable receiving the wrapped call's arguments
            and returning span attributes.

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _enabled:
                return func(*args, **kwargs)

            with _tracer().start_as_current_span(f"spreadengine.{operation}") as span:
                if attributes is not None:
                    try:
                        for key, value in attributes(*args, **kwargs).items():
                            if value is not None:
                                span.set_attribute(f"spreadengine.{key}", str(value))
                    except Exception as e:
                        logger.debug("Failed to set span attributes: %s", e)
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

        return cast(F, wrapper)

    return decorator


def get_test_spans() -> list[ReadableSpan]:
    """Spans captured by the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def reset_tracing() -> None:
    """Disable tracing and clear captured spans (for testing).

    The global OpenTelemetry provider cannot be replaced once set, so the
    provider reference is kept for reuse by a later configure_tracing().
    """
    global _enabled
    if _test_exporter is not None:
        _test_exporter.clear()
    _enabled = False
