"""Content-addressed model snapshot persistence.

A snapshot is written once per unique (deal_id, outputs_hash). The lookup
before insert is advisory; the store's uniqueness constraint decides races,
and the loser re-reads the winner's id.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from spreadengine.calc.registry import MetricRegistry
from spreadengine.calc.risk import DEFAULT_RISK_POLICY
from spreadengine.hashing.snapshot import compute_snapshot_hash, hash_outputs
from spreadengine.models.facts import Fact
from spreadengine.models.financial_model import FinancialModel
from spreadengine.models.snapshot import ENGINE_VERSION, ModelSnapshot, RiskFlag

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class SnapshotStoreError(Exception):
    """Raised when a snapshot read or write fails."""

    def __init__(self, message: str, deal_id: str | None = None) -> None:
        self.deal_id = deal_id
        super().__init__(message)


@runtime_checkable
class SnapshotStore(Protocol):
    """Protocol for snapshot storage backends."""

    def find_id(self, deal_id: str, outputs_hash: str) -> str | None:
        """Return the id of the snapshot for (deal_id, outputs_hash), if any."""
        ...

    def insert(self, snapshot: ModelSnapshot) -> bool:
        """Insert unless (deal_id, outputs_hash) exists.

        Returns:
            True if a row was written, False on conflict.

        Raises:
            SnapshotStoreError: On storage failure.
        """
        ...

    def get(self, snapshot_id: str) -> ModelSnapshot | None:
        """Load a snapshot by id."""
        ...


class InMemorySnapshotStore:
    """Lock-guarded in-memory store; counts physical writes for tests."""

    def __init__(self) -> None:
        self._by_id: dict[str, ModelSnapshot] = {}
        self._by_key: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def find_id(self, deal_id: str, outputs_hash: str) -> str | None:
        with self._lock:
            return self._by_key.get((deal_id, outputs_hash))

    def insert(self, snapshot: ModelSnapshot) -> bool:
        key = (snapshot.deal_id, snapshot.outputs_hash)
        with self._lock:
            if key in self._by_key:
                return False
            self._by_key[key] = snapshot.snapshot_id
            self._by_id[snapshot.snapshot_id] = snapshot
            self.write_count += 1
            return True

    def get(self, snapshot_id: str) -> ModelSnapshot | None:
        with self._lock:
            return self._by_id.get(snapshot_id)

    def list_for_deal(self, deal_id: str) -> list[ModelSnapshot]:
        """All snapshots for a deal, oldest first."""
        with self._lock:
            found = [s for s in self._by_id.values() if s.deal_id == deal_id]
        return sorted(found, key=lambda s: s.created_at)


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


class SqlSnapshotStore:
    """SQL-backed snapshot store over the model_snapshots table.

    Args:
        engine: SQLAlchemy engine; the schema must exist (see create_schema).
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find_id(self, deal_id: str, outputs_hash: str) -> str | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(
                        """
                        SELECT snapshot_id FROM model_snapshots
                        WHERE deal_id = :deal_id AND outputs_hash = :outputs_hash
                        """
                    ),
                    {"deal_id": deal_id, "outputs_hash": outputs_hash},
                ).fetchone()
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Snapshot lookup failed: {e}", deal_id) from e
        return str(row.snapshot_id) if row is not None else None

    def insert(self, snapshot: ModelSnapshot) -> bool:
        record = snapshot.to_db_dict()
        params = {
            **record,
            "computed_metrics": _dumps(record["computed_metrics"]),
            "risk_flags": _dumps(record["risk_flags"]),
            "dependency_graph": _dumps(record["dependency_graph"]),
            "created_at": snapshot.created_at.isoformat(),
        }
        try:
            with self._engine.connect() as conn, conn.begin():
                result = conn.execute(
                    text(
                        """
                        INSERT INTO model_snapshots
                            (snapshot_id, deal_id, bank_id, snapshot_hash, outputs_hash,
                             registry_version, policy_version, engine_version, period_count,
                             computed_metrics, risk_flags, dependency_graph, created_at)
                        VALUES
                            (:snapshot_id, :deal_id, :bank_id, :snapshot_hash, :outputs_hash,
                             :registry_version, :policy_version, :engine_version, :period_count,
                             :computed_metrics, :risk_flags, :dependency_graph, :created_at)
                        ON CONFLICT (deal_id, outputs_hash) DO NOTHING
                        """
                    ),
                    params,
                )
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Snapshot insert failed: {e}", snapshot.deal_id) from e
        return result.rowcount == 1

    def get(self, snapshot_id: str) -> ModelSnapshot | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text(
                        """
                        SELECT snapshot_id, deal_id, bank_id, snapshot_hash, outputs_hash,
                               registry_version, policy_version, engine_version, period_count,
                               computed_metrics, risk_flags, dependency_graph, created_at
                        FROM model_snapshots
                        WHERE snapshot_id = :snapshot_id
                        """
                    ),
                    {"snapshot_id": snapshot_id},
                ).fetchone()
        except SQLAlchemyError as e:
            raise SnapshotStoreError(f"Snapshot read failed: {e}") from e
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def _row_to_snapshot(self, row: Any) -> ModelSnapshot:
        """Convert a database row to a ModelSnapshot."""
        metrics = json.loads(row.computed_metrics)
        return ModelSnapshot(
            snapshot_id=str(row.snapshot_id),
            deal_id=str(row.deal_id),
            bank_id=row.bank_id,
            snapshot_hash=row.snapshot_hash,
            outputs_hash=row.outputs_hash,
            registry_version=row.registry_version,
            policy_version=row.policy_version,
            engine_version=row.engine_version,
            period_count=row.period_count,
            computed_metrics={
                k: (Decimal(v) if v is not None else None) for k, v in metrics.items()
            },
            risk_flags=[RiskFlag.model_validate(f) for f in json.loads(row.risk_flags)],
            dependency_graph=json.loads(row.dependency_graph),
            created_at=datetime.fromisoformat(row.created_at),
        )


@dataclass(frozen=True)
class SnapshotWriteResult:
    """Outcome of a persist call."""

    snapshot_id: str
    created: bool
    snapshot_hash: str
    outputs_hash: str


def save_model_snapshot(
    store: SnapshotStore,
    *,
    deal_id: str,
    bank_id: str | None,
    model: FinancialModel,
    computed_metrics: Mapping[str, Decimal | None],
    risk_flags: Sequence[RiskFlag] = (),
    facts: Iterable[Fact] = (),
    registry_version: str | None = None,
    policy_version: str | None = None,
    dependency_graph: Mapping[str, list[str]] | None = None,
) -> SnapshotWriteResult:
    """Persist a snapshot unless identical outputs already exist for the deal.

    Args:
        store: Snapshot store.
        deal_id: Deal identifier.
        bank_id: Owning bank.
        model: Built financial model.
        computed_metrics: Metric graph output.
        risk_flags: Risk evaluator output.
        facts: Input facts, folded into the snapshot hash.
        registry_version: Metric registry version; the seed registry's when None.
        policy_version: Risk policy version; the default policy's when None.
        dependency_graph: Realized dependencies per metric, for explainability.

    Returns:
        SnapshotWriteResult; created is False when an existing snapshot was reused.

    Raises:
        SnapshotStoreError: On storage failure.
    """
    registry_version = registry_version or MetricRegistry.seed().version
    policy_version = policy_version or DEFAULT_RISK_POLICY.version
    outputs_hash = hash_outputs(model, computed_metrics, risk_flags)
    snapshot_hash = compute_snapshot_hash(
        facts, model, computed_metrics, registry_version, policy_version
    )

    existing = store.find_id(deal_id, outputs_hash)
    if existing is not None:
        logger.info("Snapshot for deal %s deduplicated: %s", deal_id, existing)
        return SnapshotWriteResult(existing, False, snapshot_hash, outputs_hash)

    snapshot = ModelSnapshot(
        snapshot_id=str(uuid.uuid4()),
        deal_id=deal_id,
        bank_id=bank_id,
        snapshot_hash=snapshot_hash,
        outputs_hash=outputs_hash,
        registry_version=registry_version,
        policy_version=policy_version,
        engine_version=ENGINE_VERSION,
        period_count=len(model.periods),
        computed_metrics=dict(computed_metrics),
        risk_flags=list(risk_flags),
        dependency_graph={k: list(v) for k, v in (dependency_graph or {}).items()},
    )
    if store.insert(snapshot):
        logger.info("Persisted snapshot %s for deal %s", snapshot.snapshot_id, deal_id)
        return SnapshotWriteResult(snapshot.snapshot_id, True, snapshot_hash, outputs_hash)

    winner = store.find_id(deal_id, outputs_hash)
    if winner is None:
        raise SnapshotStoreError(
            f"Snapshot insert conflicted but no row found for outputs {outputs_hash}", deal_id
        )
    logger.info("Snapshot for deal %s lost insert race; reusing %s", deal_id, winner)
    return SnapshotWriteResult(winner, False, snapshot_hash, outputs_hash)


def persist_model_snapshot(
    store: SnapshotStore,
    *,
    deal_id: str,
    bank_id: str | None,
    model: FinancialModel,
    computed_metrics: Mapping[str, Decimal | None],
    risk_flags: Sequence[RiskFlag] = (),
    **kwargs: Any,
) -> str:
    """Persist a snapshot and return its id; see save_model_snapshot."""
    return save_model_snapshot(
        store,
        deal_id=deal_id,
        bank_id=bank_id,
        model=model,
        computed_metrics=computed_metrics,
        risk_flags=risk_flags,
        **kwargs,
    ).snapshot_id
