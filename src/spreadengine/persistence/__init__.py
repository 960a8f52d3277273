"""Snapshot and rendering persistence."""

from spreadengine.persistence.db import (
    DatabaseConfigError,
    begin_conn,
    create_schema,
    get_engine,
    is_database_configured,
    reset_engines,
)
from spreadengine.persistence.renderings import (
    STANDARD_STATEMENT_TYPE,
    InMemoryRenderingStore,
    RenderingEnvelope,
    RenderingStore,
    RenderingStoreError,
    SqlRenderingStore,
    build_rendering_envelope,
)
from spreadengine.persistence.snapshots import (
    InMemorySnapshotStore,
    SnapshotStore,
    SnapshotStoreError,
    SnapshotWriteResult,
    SqlSnapshotStore,
    persist_model_snapshot,
    save_model_snapshot,
)

__all__ = [
    "DatabaseConfigError",
    "InMemoryRenderingStore",
    "InMemorySnapshotStore",
    "RenderingEnvelope",
    "RenderingStore",
    "RenderingStoreError",
    "STANDARD_STATEMENT_TYPE",
    "SnapshotStore",
    "SnapshotStoreError",
    "SnapshotWriteResult",
    "SqlRenderingStore",
    "SqlSnapshotStore",
    "begin_conn",
    "create_schema",
    "get_engine",
    "is_database_configured",
    "persist_model_snapshot",
    "reset_engines",
    "save_model_snapshot",
]
