"""Engine event codes and best-effort emission.

Events are operational breadcrumbs. A failing sink is logged and swallowed:
emitting an event must never take down the computation that produced it.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from spreadengine.audit.sink import EventSink, EventSinkError

logger = logging.getLogger(__name__)


class EngineEvent(StrEnum):
    """Stable event codes."""

    MODEL_PRIMARY_SERVED = "MODEL_PRIMARY_SERVED"
    MODEL_SHADOW_DIFF = "MODEL_SHADOW_DIFF"
    MODEL_SHADOW_COMPARE_FAILED = "MODEL_SHADOW_COMPARE_FAILED"
    MODEL_LEGACY_SERVED = "MODEL_LEGACY_SERVED"
    MODEL_MODE_SELECTED = "MODEL_MODE_SELECTED"
    SNAPSHOT_PERSISTED = "SNAPSHOT_PERSISTED"
    SNAPSHOT_DEDUPLICATED = "SNAPSHOT_DEDUPLICATED"
    SNAPSHOT_PERSIST_FAILED = "SNAPSHOT_PERSIST_FAILED"
    RENDERING_PERSIST_FAILED = "RENDERING_PERSIST_FAILED"


def emit_event(
    sink: EventSink | None,
    code: EngineEvent,
    *,
    deal_id: str | None = None,
    **fields: Any,
) -> bool:
    """Emit an engine event, logging instead of raising on sink failure.

    Args:
        sink: Target sink; no-op when None.
        code: Event code.
        deal_id: Deal the event concerns.
        **fields: Extra JSON-serializable payload.

    Returns:
        True if the sink accepted the event.
    """
    if sink is None:
        return False

    event: dict[str, Any] = {
        "code": code.value,
        "deal_id": deal_id,
        "emitted_at": datetime.now(UTC).isoformat(),
        "payload": fields,
    }
    try:
        sink.emit(event)
        return True
    except EventSinkError as e:
        logger.warning("Failed to emit %s for deal %s: %s", code.value, deal_id, e)
        return False
