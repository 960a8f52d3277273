"""Tests for the authoritative engine boundary and snapshot replay.

Tests cover:
1. Primary computation persists one snapshot and one rendering
2. Store failures are reported as events without losing the result
3. Shadow mode compares against legacy without affecting the served model
4. Legacy mode serves the legacy rendering
5. Replay reproduces stored hashes and refuses version drift
"""

from __future__ import annotations

from decimal import Decimal, Overflow
from typing import Any

import pytest

from spreadengine.audit.sink import InMemoryEventSink
from spreadengine.authority.engine import EngineAuthority
from spreadengine.authority.mode import EngineMode, ModeConfig, ModeContext, ModeReason
from spreadengine.authority.replay import ReplayCode, replay_snapshot
from spreadengine.calc.metric_graph import MetricCycleError
from spreadengine.calc.registry import MetricRegistry, seed_metric_definitions
from spreadengine.calc.risk import RiskPolicy
from spreadengine.models.facts import Fact
from spreadengine.models.metric import FormulaNode, FormulaOp, MetricDefinition
from spreadengine.models.parity import GateVerdict
from spreadengine.models.snapshot import ModelSnapshot
from spreadengine.models.view_model import ViewSource
from spreadengine.parity.legacy_spread import RenderedSpread
from spreadengine.persistence.renderings import (
    STANDARD_STATEMENT_TYPE,
    InMemoryRenderingStore,
    RenderingEnvelope,
    RenderingStoreError,
)
from spreadengine.persistence.snapshots import InMemorySnapshotStore, SnapshotStoreError
from spreadengine.sources.facts import InMemoryFactSource
from spreadengine.sources.legacy import InMemoryLegacySpreadSource, LegacyLoadError

DEAL_ID = "deal-001"
BANK_ID = "bank-001"
SHADOW = ModeConfig(mode=EngineMode.SHADOW)
PRIVILEGED = ModeContext(privileged=True, deal_id=DEAL_ID, bank_id=BANK_ID)


class BrokenSnapshotStore(InMemorySnapshotStore):
    """Snapshot store whose writes fail."""

    def insert(self, snapshot: ModelSnapshot) -> bool:
        raise SnapshotStoreError("connection reset", snapshot.deal_id)


class OverflowingLegacySource(InMemoryLegacySpreadSource):
    """Legacy source whose cells overflow Decimal arithmetic."""

    def load_spreads(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = 10.0
    ) -> list[RenderedSpread]:
        raise Overflow("above Emax")


class BrokenRenderingStore(InMemoryRenderingStore):
    """Rendering store whose writes fail."""

    def upsert(
        self, deal_id: str, bank_id: str, statement_type: str, envelope: RenderingEnvelope
    ) -> None:
        raise RenderingStoreError("connection reset", deal_id)


@pytest.fixture
def fact_source(sample_fact_rows: list[dict[str, Any]]) -> InMemoryFactSource:
    """Fact source holding the sample facts."""
    return InMemoryFactSource({(DEAL_ID, BANK_ID): sample_fact_rows})


@pytest.fixture
def legacy_source(sample_legacy_documents: list[dict[str, Any]]) -> InMemoryLegacySpreadSource:
    """Legacy source holding the sample spreads."""
    return InMemoryLegacySpreadSource({(DEAL_ID, BANK_ID): sample_legacy_documents})


@pytest.fixture
def sink() -> InMemoryEventSink:
    """Captures engine events."""
    return InMemoryEventSink()


class TestComputeAuthoritative:
    """Test the primary computation path."""

    def test_persists_snapshot_and_rendering(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """One computation writes one snapshot and the current rendering."""
        snapshots = InMemorySnapshotStore()
        renderings = InMemoryRenderingStore()
        authority = EngineAuthority(
            fact_source, snapshot_store=snapshots, rendering_store=renderings, event_sink=sink
        )

        result = authority.compute_authoritative(DEAL_ID, BANK_ID)

        assert result.computed_metrics["DSCR"] == Decimal("4")
        assert result.risk_flags == []
        assert result.snapshot_id is not None
        assert snapshots.write_count == 1
        assert result.dependency_graph["DSCR"] == ["CFADS", "DEBT_SERVICE"]
        envelope = renderings.get(DEAL_ID, BANK_ID, STANDARD_STATEMENT_TYPE)
        assert envelope is not None
        assert envelope.snapshot_hash == result.snapshot_hash
        assert envelope.registry_version == result.registry_version
        assert envelope.dependency_graph == result.dependency_graph
        assert envelope.payload["deal_id"] == DEAL_ID
        assert sink.codes() == ["SNAPSHOT_PERSISTED", "MODEL_PRIMARY_SERVED"]

    def test_recompute_deduplicates(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """Unchanged facts reuse the existing snapshot."""
        snapshots = InMemorySnapshotStore()
        authority = EngineAuthority(fact_source, snapshot_store=snapshots, event_sink=sink)

        first = authority.compute_authoritative(DEAL_ID, BANK_ID)
        sink.clear()
        second = authority.compute_authoritative(DEAL_ID, BANK_ID)

        assert first.snapshot_id == second.snapshot_id
        assert snapshots.write_count == 1
        assert sink.codes()[0] == "SNAPSHOT_DEDUPLICATED"

    def test_snapshot_failure_still_returns_result(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """A failing snapshot store is reported, not raised."""
        authority = EngineAuthority(
            fact_source, snapshot_store=BrokenSnapshotStore(), event_sink=sink
        )

        result = authority.compute_authoritative(DEAL_ID, BANK_ID)

        assert result.snapshot_id is None
        assert result.model.periods
        failed = sink.events[0]
        assert failed["code"] == "SNAPSHOT_PERSIST_FAILED"
        assert failed["payload"]["error"] == "connection reset"

    def test_rendering_failure_still_returns_result(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """A failing rendering store is reported, not raised."""
        authority = EngineAuthority(
            fact_source, rendering_store=BrokenRenderingStore(), event_sink=sink
        )

        result = authority.compute_authoritative(DEAL_ID, BANK_ID)

        assert result.view_model.source == ViewSource.MODEL
        assert sink.codes() == ["RENDERING_PERSIST_FAILED", "MODEL_PRIMARY_SERVED"]

    def test_no_stores_configured(self, fact_source: InMemoryFactSource) -> None:
        """Without stores or a sink the computation still completes."""
        result = EngineAuthority(fact_source).compute_authoritative(DEAL_ID, BANK_ID)

        assert result.snapshot_id is None
        assert len(result.outputs_hash) == 64

    def test_cycle_propagates(self, fact_source: InMemoryFactSource) -> None:
        """A cyclic registry is a hard failure."""
        registry = MetricRegistry(
            definitions=(
                MetricDefinition(
                    key="A",
                    depends_on=("B",),
                    formula=FormulaNode(op=FormulaOp.ADD, left="B", right="1"),
                ),
                MetricDefinition(
                    key="B",
                    depends_on=("A",),
                    formula=FormulaNode(op=FormulaOp.ADD, left="A", right="1"),
                ),
            )
        )

        with pytest.raises(MetricCycleError):
            EngineAuthority(fact_source, registry=registry).compute_authoritative(
                DEAL_ID, BANK_ID
            )


class TestServe:
    """Test mode-driven serving."""

    def test_unprivileged_serves_primary(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """No context: primary, whatever the config."""
        authority = EngineAuthority(
            fact_source, mode_config=ModeConfig(mode=EngineMode.LEGACY), event_sink=sink
        )

        served = authority.serve(DEAL_ID, BANK_ID)

        assert served.selection.reason == ModeReason.ENFORCED
        assert served.authoritative is not None
        assert served.comparison is None
        assert sink.codes() == ["MODEL_MODE_SELECTED", "MODEL_PRIMARY_SERVED"]

    def test_shadow_compares_against_legacy(
        self,
        fact_source: InMemoryFactSource,
        legacy_source: InMemoryLegacySpreadSource,
        sink: InMemoryEventSink,
    ) -> None:
        """Shadow serves the model and records the legacy comparison."""
        authority = EngineAuthority(
            fact_source, legacy_source=legacy_source, mode_config=SHADOW, event_sink=sink
        )

        served = authority.serve(DEAL_ID, BANK_ID, PRIVILEGED)

        assert served.view_model.source == ViewSource.MODEL
        assert served.comparison is not None
        assert served.comparison.parity is not None
        assert served.comparison.parity.gate == GateVerdict.PASS
        assert served.warnings == []
        diff_event = sink.events[-1]
        assert diff_event["code"] == "MODEL_SHADOW_DIFF"
        assert diff_event["payload"]["gate"] == "PASS"
        assert diff_event["payload"]["material_cells"] == 0

    def test_shadow_failure_keeps_model_result(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """A broken legacy load never affects the served model."""
        legacy = InMemoryLegacySpreadSource({(DEAL_ID, BANK_ID): [{"rows": "not-a-list"}]})
        authority = EngineAuthority(
            fact_source, legacy_source=legacy, mode_config=SHADOW, event_sink=sink
        )

        served = authority.serve(DEAL_ID, BANK_ID, PRIVILEGED)

        assert served.authoritative is not None
        assert served.view_model.source == ViewSource.MODEL
        assert served.comparison is None
        assert served.warnings[0].startswith("shadow comparison failed")
        assert sink.codes()[-1] == "MODEL_SHADOW_COMPARE_FAILED"

    def test_shadow_arithmetic_error_keeps_model_result(
        self, fact_source: InMemoryFactSource, sink: InMemoryEventSink
    ) -> None:
        """Decimal overflow in the legacy path is a shadow failure, not a serve failure."""
        authority = EngineAuthority(
            fact_source,
            legacy_source=OverflowingLegacySource(),
            mode_config=SHADOW,
            event_sink=sink,
        )

        served = authority.serve(DEAL_ID, BANK_ID, PRIVILEGED)

        assert served.authoritative is not None
        assert served.view_model.source == ViewSource.MODEL
        assert served.comparison is None
        assert served.warnings == ["shadow comparison failed: above Emax"]
        assert sink.codes()[-1] == "MODEL_SHADOW_COMPARE_FAILED"

    def test_shadow_without_legacy_source_warns(self, fact_source: InMemoryFactSource) -> None:
        """Shadow without a legacy source serves the model with a warning."""
        served = EngineAuthority(fact_source, mode_config=SHADOW).serve(
            DEAL_ID, BANK_ID, PRIVILEGED
        )

        assert served.authoritative is not None
        assert served.warnings == ["shadow comparison skipped: no legacy source configured"]

    def test_legacy_mode_serves_legacy(
        self,
        fact_source: InMemoryFactSource,
        legacy_source: InMemoryLegacySpreadSource,
        sink: InMemoryEventSink,
    ) -> None:
        """Legacy mode serves the legacy rendering and computes nothing."""
        snapshots = InMemorySnapshotStore()
        authority = EngineAuthority(
            fact_source,
            legacy_source=legacy_source,
            snapshot_store=snapshots,
            mode_config=ModeConfig(mode=EngineMode.LEGACY),
            event_sink=sink,
        )

        served = authority.serve(DEAL_ID, BANK_ID, PRIVILEGED)

        assert served.view_model.source == ViewSource.LEGACY
        assert served.authoritative is None
        assert snapshots.write_count == 0
        assert sink.codes() == ["MODEL_MODE_SELECTED", "MODEL_LEGACY_SERVED"]

    def test_legacy_mode_without_source_raises(self, fact_source: InMemoryFactSource) -> None:
        """Legacy mode has nothing to serve without a legacy source."""
        authority = EngineAuthority(fact_source, mode_config=ModeConfig(mode=EngineMode.LEGACY))

        with pytest.raises(LegacyLoadError):
            authority.serve(DEAL_ID, BANK_ID, PRIVILEGED)


class TestComputeLegacyComparison:
    """Test the read-only comparison path."""

    def test_disabled_without_shadow_compare(
        self, fact_source: InMemoryFactSource, legacy_source: InMemoryLegacySpreadSource
    ) -> None:
        """Comparison is skipped unless enabled or forced."""
        authority = EngineAuthority(fact_source, legacy_source=legacy_source)

        assert authority.compute_legacy_comparison(DEAL_ID, BANK_ID) is None
        assert authority.compute_legacy_comparison(DEAL_ID, BANK_ID, force=True) is not None

    def test_enabled_by_config(
        self, fact_source: InMemoryFactSource, legacy_source: InMemoryLegacySpreadSource
    ) -> None:
        """shadow_compare enables comparison; no model means no parity report."""
        snapshots = InMemorySnapshotStore()
        authority = EngineAuthority(
            fact_source,
            legacy_source=legacy_source,
            snapshot_store=snapshots,
            mode_config=ModeConfig(shadow_compare=True),
        )

        comparison = authority.compute_legacy_comparison(DEAL_ID, BANK_ID)

        assert comparison is not None
        assert len(comparison.spreads) == 2
        assert comparison.parity is None
        assert comparison.diff is None
        assert snapshots.write_count == 0


class TestReplay:
    """Test replaying a stored rendering."""

    @pytest.fixture
    def envelope(self, fact_source: InMemoryFactSource) -> RenderingEnvelope:
        renderings = InMemoryRenderingStore()
        EngineAuthority(fact_source, rendering_store=renderings).compute_authoritative(
            DEAL_ID, BANK_ID
        )
        stored = renderings.get(DEAL_ID, BANK_ID, STANDARD_STATEMENT_TYPE)
        assert stored is not None
        return stored

    def test_replay_reproduces_hash(
        self, envelope: RenderingEnvelope, sample_facts: list[Fact]
    ) -> None:
        """Same facts, registry and policy reproduce the stored hashes."""
        result = replay_snapshot(envelope, sample_facts, deal_id=DEAL_ID)

        assert result.ok
        assert result.hash_match
        assert result.outputs_match
        assert result.actual_hash == envelope.snapshot_hash

    def test_replay_accepts_raw_mapping(
        self, envelope: RenderingEnvelope, sample_facts: list[Fact]
    ) -> None:
        """A JSON-loaded envelope replays like the model."""
        result = replay_snapshot(
            envelope.model_dump(mode="json"), reversed(sample_facts), deal_id=DEAL_ID
        )

        assert result.hash_match

    def test_changed_facts_mismatch(
        self, envelope: RenderingEnvelope, sample_facts: list[Fact]
    ) -> None:
        """Different facts complete the replay with hash_match False."""
        changed = [f for f in sample_facts if f.fact_key != "CAPITAL_EXPENDITURES"]

        result = replay_snapshot(envelope, changed, deal_id=DEAL_ID)

        assert result.ok
        assert not result.hash_match
        assert result.expected_hash == envelope.snapshot_hash

    def test_legacy_envelope_refused(self, sample_facts: list[Fact]) -> None:
        """Envelopes without engine version stamps cannot be replayed."""
        stale = {"schema_version": 1, "engine": None}

        result = replay_snapshot(stale, sample_facts, deal_id=DEAL_ID)

        assert not result.ok
        assert result.code == ReplayCode.MODEL_SNAPSHOT_LEGACY_VERSION

    def test_registry_drift_refused(
        self, envelope: RenderingEnvelope, sample_facts: list[Fact]
    ) -> None:
        """A changed metric registry is refused before recomputing."""
        fewer = [d for d in seed_metric_definitions() if d.key != "ROA"]

        result = replay_snapshot(envelope, sample_facts, fewer, deal_id=DEAL_ID)

        assert result.code == ReplayCode.MODEL_REGISTRY_VERSION_MISMATCH

    def test_policy_drift_refused(
        self, envelope: RenderingEnvelope, sample_facts: list[Fact]
    ) -> None:
        """A changed risk policy is refused."""
        stricter = RiskPolicy(min_dscr=Decimal("1.50"))

        result = replay_snapshot(envelope, sample_facts, deal_id=DEAL_ID, policy=stricter)

        assert result.code == ReplayCode.MODEL_POLICY_VERSION_MISMATCH
