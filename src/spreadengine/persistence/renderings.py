"""Current-rendering persistence.

One record per (deal_id, bank_id, statement_type), overwritten on every
authoritative computation. The envelope carries the version stamps a later
replay needs to detect drift.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from spreadengine.models.snapshot import ENGINE_VERSION

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

RENDERING_SCHEMA_VERSION = 2
STANDARD_STATEMENT_TYPE = "STANDARD"


class RenderingStoreError(Exception):
    """Raised when a rendering read or write fails."""

    def __init__(self, message: str, deal_id: str | None = None) -> None:
        self.deal_id = deal_id
        super().__init__(message)


class RenderingEnvelope(BaseModel):
    """Versioned wrapper around a rendered view model."""

    engine: str | None = Field(default=ENGINE_VERSION, description="Engine that rendered")
    schema_version: int = Field(default=RENDERING_SCHEMA_VERSION)
    registry_version: str | None = None
    policy_version: str | None = None
    snapshot_hash: str | None = None
    outputs_hash: str | None = None
    explainability: dict[str, Any] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def dependency_graph(self) -> dict[str, list[str]]:
        """Realized metric dependencies recorded at render time."""
        return dict(self.explainability.get("dependency_graph") or {})

    model_config = {"frozen": True, "extra": "ignore"}


def build_rendering_envelope(
    payload: BaseModel | dict[str, Any],
    *,
    registry_version: str,
    policy_version: str,
    snapshot_hash: str,
    outputs_hash: str,
    dependency_graph: dict[str, list[str]] | None = None,
) -> RenderingEnvelope:
    """Wrap a rendered payload with its version stamps."""
    body = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else dict(payload)
    return RenderingEnvelope(
        registry_version=registry_version,
        policy_version=policy_version,
        snapshot_hash=snapshot_hash,
        outputs_hash=outputs_hash,
        explainability={"dependency_graph": dependency_graph or {}},
        payload=body,
    )


@runtime_checkable
class RenderingStore(Protocol):
    """Protocol for current-rendering storage."""

    def upsert(
        self, deal_id: str, bank_id: str, statement_type: str, envelope: RenderingEnvelope
    ) -> None:
        """Insert or overwrite the current rendering.

        Raises:
            RenderingStoreError: On storage failure.
        """
        ...

    def get(self, deal_id: str, bank_id: str, statement_type: str) -> RenderingEnvelope | None:
        """Load the current rendering, if any."""
        ...


class InMemoryRenderingStore:
    """Lock-guarded in-memory rendering store."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str, str], RenderingEnvelope] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def upsert(
        self, deal_id: str, bank_id: str, statement_type: str, envelope: RenderingEnvelope
    ) -> None:
        with self._lock:
            self._records[(deal_id, bank_id, statement_type)] = envelope
            self.write_count += 1

    def get(self, deal_id: str, bank_id: str, statement_type: str) -> RenderingEnvelope | None:
        with self._lock:
            return self._records.get((deal_id, bank_id, statement_type))


class SqlRenderingStore:
    """SQL-backed rendering store over deal_spread_renderings."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def upsert(
        self, deal_id: str, bank_id: str, statement_type: str, envelope: RenderingEnvelope
    ) -> None:
        params = {
            "deal_id": deal_id,
            "bank_id": bank_id,
            "statement_type": statement_type,
            "engine_version": envelope.engine or "",
            "snapshot_hash": envelope.snapshot_hash,
            "outputs_hash": envelope.outputs_hash,
            "envelope": json.dumps(
                envelope.model_dump(mode="json"), sort_keys=True, separators=(",", ":")
            ),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            with self._engine.connect() as conn, conn.begin():
                conn.execute(
                    text(
                        """
                        INSERT INTO deal_spread_renderings
                            (deal_id, bank_id, statement_type, engine_version,
                             snapshot_hash, outputs_hash, envelope, updated_at)
                        VALUES
                            (:deal_id, :bank_id, :statement_type, :engine_version,
                             :snapshot_hash, :outputs_hash, :envelope, :updated_at)
                        ON CONFLICT (deal_id, bank_id, statement_type) DO UPDATE SET
                            engine_version = excluded.engine_version,
                            snapshot_hash = excluded.snapshot_hash,
                            outputs_hash = excluded.outputs_hash,
                            envelope = excluded.envelope,
                            updated_at = excluded.updated_at
                        """
                    ),
                    params,
                )
        except SQLAlchemyError as e:
            raise RenderingStoreError(f"Rendering upsert failed: {e}", deal_id) from e
        logger.debug("Upserted %s rendering for deal %s", statement_type, deal_id)

    def get(self, deal_id: str, bank_id: str, statement_type: str) -> RenderingEnvelope | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(
                        """
                        SELECT envelope FROM deal_spread_renderings
                        WHERE deal_id = :deal_id AND bank_id = :bank_id
                          AND statement_type = :statement_type
                        """
                    ),
                    {"deal_id": deal_id, "bank_id": bank_id, "statement_type": statement_type},
                ).fetchone()
        except SQLAlchemyError as e:
            raise RenderingStoreError(f"Rendering read failed: {e}", deal_id) from e
        if row is None:
            return None
        return RenderingEnvelope.model_validate(json.loads(row.envelope))
