"""Tests for engine event sinks, best-effort emission and tracing."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from spreadengine.audit.sink import (
    EventSinkError,
    InMemoryEventSink,
    JsonlFileEventSink,
    get_event_sink,
)
from spreadengine.observability.events import EngineEvent, emit_event
from spreadengine.observability.tracing import (
    configure_tracing,
    get_test_spans,
    is_tracing_enabled,
    reset_tracing,
    traced_operation,
)
from spreadengine.parity.compare import compare

MEMORY_TRACING = {"SPREADENGINE_OTEL_ENABLED": "1", "SPREADENGINE_OTEL_EXPORTER": "memory"}


class FailingSink:
    """Sink that always fails."""

    def emit(self, event: dict[str, Any]) -> None:
        raise EventSinkError("sink unavailable")


class TestJsonlFileEventSink:
    """Test the append-only JSONL sink."""

    def test_appends_one_line_per_event(self, tmp_path: Path) -> None:
        """Events append; existing content is kept."""
        path = tmp_path / "nested" / "events.jsonl"
        sink = JsonlFileEventSink(path)

        sink.emit({"code": "A", "b": 1})
        sink.emit({"code": "B"})

        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["code"] for line in lines] == ["A", "B"]
        assert lines[0] == '{"b":1,"code":"A"}'

    def test_unwritable_path_raises(self, tmp_path: Path) -> None:
        """A path under a regular file cannot be created."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(EventSinkError):
            JsonlFileEventSink(blocker / "events.jsonl").emit({"code": "A"})

    def test_get_event_sink(self, tmp_path: Path) -> None:
        """A configured path gives a file sink; otherwise in-memory."""
        assert isinstance(get_event_sink(str(tmp_path / "e.jsonl")), JsonlFileEventSink)
        assert isinstance(get_event_sink(None), InMemoryEventSink)


class TestEmitEvent:
    """Test best-effort event emission."""

    def test_event_shape(self) -> None:
        """Events carry code, deal id, timestamp and payload."""
        sink = InMemoryEventSink()

        assert emit_event(sink, EngineEvent.MODEL_SHADOW_DIFF, deal_id="d1", gate="PASS")

        event = sink.events[0]
        assert event["code"] == "MODEL_SHADOW_DIFF"
        assert event["deal_id"] == "d1"
        assert event["payload"] == {"gate": "PASS"}
        assert "emitted_at" in event
        assert sink.codes() == ["MODEL_SHADOW_DIFF"]

    def test_no_sink_is_noop(self) -> None:
        """A missing sink reports False."""
        assert emit_event(None, EngineEvent.MODEL_PRIMARY_SERVED, deal_id="d1") is False

    def test_failing_sink_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Sink failures are logged and never raised."""
        with caplog.at_level(logging.WARNING, logger="spreadengine.observability.events"):
            accepted = emit_event(FailingSink(), EngineEvent.SNAPSHOT_PERSISTED, deal_id="d1")

        assert accepted is False
        assert "Failed to emit SNAPSHOT_PERSISTED for deal d1" in caplog.text


class TestTracing:
    """Test the tracing decorator with the in-memory exporter."""

    def test_disabled_by_default(self) -> None:
        """Without the enable flag, nothing is configured."""
        assert configure_tracing({}) is False
        assert is_tracing_enabled() is False

    def test_compare_emits_span(self) -> None:
        """parity.compare records a span with the deal id attribute."""
        assert configure_tracing(MEMORY_TRACING) is True

        compare("deal-traced", {}, {})

        spans = [s for s in get_test_spans() if s.name == "spreadengine.parity.compare"]
        assert len(spans) == 1
        assert spans[0].attributes is not None
        assert spans[0].attributes["spreadengine.deal_id"] == "deal-traced"

    def test_errors_marked_on_span(self) -> None:
        """Exceptions propagate and mark the span."""
        configure_tracing(MEMORY_TRACING)

        @traced_operation("test.failing")
        def failing() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            failing()

        span = next(s for s in get_test_spans() if s.name == "spreadengine.test.failing")
        assert span.attributes is not None
        assert span.attributes["error.type"] == "RuntimeError"

    def test_reset_disables(self) -> None:
        """reset_tracing turns spans off again."""
        configure_tracing(MEMORY_TRACING)
        reset_tracing()

        compare("deal-untraced", {}, {})

        assert is_tracing_enabled() is False
        assert get_test_spans() == []
