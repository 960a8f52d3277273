"""Engine event sinks.

Provides append-only sinks for engine events (mode decisions, shadow diffs,
snapshot writes). All sinks implement the EventSink protocol.

Design requirements:
- Append-only: never truncate/overwrite
- Sinks raise EventSinkError on failure; callers decide whether that is fatal
- Deterministic: consistent JSON serialization (sorted keys, no extra whitespace)
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LOG_PATH = "./var/events/engine_events.jsonl"


class EventSinkError(Exception):
    """Raised when event emission fails."""

    pass


@runtime_checkable
class EventSink(Protocol):
    """Protocol for engine event sinks."""

    def emit(self, event: dict[str, Any]) -> None:
        """Emit an event to the sink.

        Args:
            event: JSON-serializable event dict

        Raises:
            EventSinkError: If emission fails for any reason
        """
        ...


def _serialize(event: dict[str, Any]) -> str:
    try:
        return json.dumps(event, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError) as e:
        raise EventSinkError(f"Failed to serialize engine event: {e}") from e


class JsonlFileEventSink:
    """Append-only JSONL file sink.

    Appends one line per event and creates parent directories on first
    write. Existing content is never truncated.
    """

    def __init__(self, file_path: str | Path | None = None) -> None:
        """Initialize the sink.

        Args:
            file_path: Path of the event log; DEFAULT_EVENT_LOG_PATH when None.
        """
        self._file_path = Path(file_path) if file_path is not None else Path(
            DEFAULT_EVENT_LOG_PATH
        )
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        """Return the configured file path."""
        return self._file_path

    def emit(self, event: dict[str, Any]) -> None:
        """Append an event as one JSON line.

        Raises:
            EventSinkError: If serialization, directory creation or the write fails
        """
        line = _serialize(event) + "\n"

        parent = self._file_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise EventSinkError(f"Failed to create event log directory {parent}: {e}") from e

        try:
            with self._lock, open(self._file_path, mode="a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise EventSinkError(f"Failed to write event to {self._file_path}: {e}") from e


class InMemoryEventSink:
    """In-memory sink for tests; events are stored as their JSON round-trip."""

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, event: dict[str, Any]) -> None:
        line = _serialize(event)
        with self._lock:
            self._events.append(json.loads(line))

    @property
    def events(self) -> list[dict[str, Any]]:
        """Return all emitted events."""
        with self._lock:
            return list(self._events)

    def codes(self) -> list[str]:
        """Return the ``code`` of every emitted event, in order."""
        return [e.get("code", "") for e in self.events]

    def clear(self) -> None:
        """Clear all stored events."""
        with self._lock:
            self._events.clear()


def get_event_sink(file_path: str | None = None) -> EventSink:
    """Return the configured event sink.

    Args:
        file_path: Event log path from settings; in-memory sink when None.
    """
    if file_path:
        return JsonlFileEventSink(file_path)
    return InMemoryEventSink()
