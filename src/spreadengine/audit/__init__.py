"""Engine event sinks."""

from spreadengine.audit.sink import (
    DEFAULT_EVENT_LOG_PATH,
    EventSink,
    EventSinkError,
    InMemoryEventSink,
    JsonlFileEventSink,
    get_event_sink,
)

__all__ = [
    "DEFAULT_EVENT_LOG_PATH",
    "EventSink",
    "EventSinkError",
    "InMemoryEventSink",
    "JsonlFileEventSink",
    "get_event_sink",
]
