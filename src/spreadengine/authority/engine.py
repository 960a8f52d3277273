"""Authoritative engine boundary.

EngineAuthority is the only component that persists snapshots or writes the
current rendering. The legacy comparison path is read-only.

Failure policy:
    - fact load failure and metric graph cycles propagate to the caller
    - snapshot, rendering and event writes are logged and reported as
      events; the computed result is still returned
    - in shadow mode, a failed legacy comparison never affects the served
      model result
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from spreadengine.audit.sink import EventSink
from spreadengine.authority.mode import (
    EngineMode,
    ModeConfig,
    ModeContext,
    ModeSelection,
    select_mode,
)
from spreadengine.builder.base_values import extract_base_values
from spreadengine.builder.model_builder import ModelBuilderConfig, build_financial_model
from spreadengine.calc.metric_graph import evaluate_metric_graph_with_audit
from spreadengine.calc.registry import MetricRegistry
from spreadengine.calc.risk import DEFAULT_RISK_POLICY, RiskPolicy, evaluate_risk
from spreadengine.hashing.snapshot import compute_snapshot_hash, hash_outputs
from spreadengine.models.facts import Fact
from spreadengine.models.financial_model import FinancialModel
from spreadengine.models.parity import ParityReport, ParityThresholds
from spreadengine.models.snapshot import RiskFlag
from spreadengine.models.view_model import SpreadViewModel
from spreadengine.observability.events import EngineEvent, emit_event
from spreadengine.observability.tracing import traced_operation
from spreadengine.parity.compare import compare_legacy_to_model
from spreadengine.parity.legacy_spread import RenderedSpread
from spreadengine.persistence.renderings import (
    STANDARD_STATEMENT_TYPE,
    RenderingStore,
    RenderingStoreError,
    build_rendering_envelope,
)
from spreadengine.persistence.snapshots import (
    SnapshotStore,
    SnapshotStoreError,
    save_model_snapshot,
)
from spreadengine.renderer.legacy_adapter import render_from_legacy_spread
from spreadengine.renderer.model_adapter import render_from_financial_model
from spreadengine.renderer.view_model_diff import ViewModelDiff, diff_view_models
from spreadengine.sources.facts import DEFAULT_TIMEOUT_SECONDS, FactSource
from spreadengine.sources.legacy import LegacyLoadError, LegacySpreadSource

logger = logging.getLogger(__name__)


@dataclass
class AuthoritativeResult:
    """Everything one authoritative computation produced."""

    deal_id: str
    bank_id: str
    facts: list[Fact]
    model: FinancialModel
    computed_metrics: dict[str, Decimal | None]
    dependency_graph: dict[str, list[str]]
    risk_flags: list[RiskFlag]
    view_model: SpreadViewModel
    registry_version: str
    policy_version: str
    snapshot_hash: str
    outputs_hash: str
    snapshot_id: str | None = None


@dataclass
class LegacyComparison:
    """Legacy rendering plus, when a model result was supplied, its diffs."""

    spreads: list[RenderedSpread]
    view_model: SpreadViewModel
    parity: ParityReport | None = None
    diff: ViewModelDiff | None = None


@dataclass
class ServeResult:
    """What serve() returned and why."""

    selection: ModeSelection
    view_model: SpreadViewModel
    authoritative: AuthoritativeResult | None = None
    comparison: LegacyComparison | None = None
    warnings: list[str] = field(default_factory=list)


def _attributes(
    self: EngineAuthority, deal_id: str, bank_id: str, *args: object, **kwargs: object
) -> dict[str, object]:
    return {"deal_id": deal_id, "bank_id": bank_id}


class EngineAuthority:
    """Orchestrates load, build, evaluate, render and persist for one deal.

    Args:
        fact_source: Where facts come from.
        legacy_source: Legacy renderings; required for shadow and legacy modes.
        snapshot_store: Snapshot store; snapshots are skipped when None.
        rendering_store: Current-rendering store; skipped when None.
        event_sink: Engine event sink; events are dropped when None.
        mode_config: Mode selection config; all defaults when None.
        builder_config: Model builder config.
        registry: Metric registry; the seed registry when None.
        risk_policy: Risk policy; DEFAULT_RISK_POLICY when None.
        parity_thresholds: Threshold profile for shadow comparisons.
        timeout_seconds: Timeout applied to every load.
    """

    def __init__(
        self,
        fact_source: FactSource,
        *,
        legacy_source: LegacySpreadSource | None = None,
        snapshot_store: SnapshotStore | None = None,
        rendering_store: RenderingStore | None = None,
        event_sink: EventSink | None = None,
        mode_config: ModeConfig | None = None,
        builder_config: ModelBuilderConfig | None = None,
        registry: MetricRegistry | None = None,
        risk_policy: RiskPolicy | None = None,
        parity_thresholds: ParityThresholds | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._fact_source = fact_source
        self._legacy_source = legacy_source
        self._snapshot_store = snapshot_store
        self._rendering_store = rendering_store
        self._event_sink = event_sink
        self._mode_config = mode_config or ModeConfig()
        self._builder_config = builder_config or ModelBuilderConfig()
        self._registry = registry or MetricRegistry.seed()
        self._risk_policy = risk_policy or DEFAULT_RISK_POLICY
        self._parity_thresholds = parity_thresholds
        self._timeout_seconds = timeout_seconds

    @property
    def mode_config(self) -> ModeConfig:
        return self._mode_config

    @traced_operation("authority.compute_authoritative", attributes=_attributes)
    def compute_authoritative(self, deal_id: str, bank_id: str) -> AuthoritativeResult:
        """Compute, render and persist the authoritative model for a deal.

        Raises:
            FactLoadError: If facts cannot be loaded.
            MetricCycleError: If the metric registry contains a cycle.
        """
        facts = self._fact_source.load_facts(
            deal_id, bank_id, timeout_seconds=self._timeout_seconds
        )
        model = build_financial_model(deal_id, facts, self._builder_config)

        audit = evaluate_metric_graph_with_audit(
            list(self._registry.definitions), extract_base_values(model)
        )
        computed = audit.values
        risk = evaluate_risk(computed, self._risk_policy)

        registry_version = self._registry.version
        policy_version = risk.policy_version
        result = AuthoritativeResult(
            deal_id=deal_id,
            bank_id=bank_id,
            facts=facts,
            model=model,
            computed_metrics=computed,
            dependency_graph=audit.dependency_graph,
            risk_flags=risk.flags,
            view_model=render_from_financial_model(model, deal_id),
            registry_version=registry_version,
            policy_version=policy_version,
            snapshot_hash=compute_snapshot_hash(
                facts, model, computed, registry_version, policy_version
            ),
            outputs_hash=hash_outputs(model, computed, risk.flags),
        )

        result.snapshot_id = self._persist_snapshot(result)
        self._persist_rendering(result)

        emit_event(
            self._event_sink,
            EngineEvent.MODEL_PRIMARY_SERVED,
            deal_id=deal_id,
            bank_id=bank_id,
            surface="authoritative_engine",
            section_count=len(result.view_model.sections),
            period_count=len(model.periods),
            metrics_computed=len(computed),
        )
        logger.info(
            "Computed deal %s: %d periods, %d risk flags, snapshot %s",
            deal_id,
            len(model.periods),
            len(risk.flags),
            result.snapshot_id,
        )
        return result

    def _persist_snapshot(self, result: AuthoritativeResult) -> str | None:
        if self._snapshot_store is None:
            return None
        try:
            write = save_model_snapshot(
                self._snapshot_store,
                deal_id=result.deal_id,
                bank_id=result.bank_id,
                model=result.model,
                computed_metrics=result.computed_metrics,
                risk_flags=result.risk_flags,
                facts=result.facts,
                registry_version=result.registry_version,
                policy_version=result.policy_version,
                dependency_graph=result.dependency_graph,
            )
        except SnapshotStoreError as e:
            logger.warning("Snapshot persist failed for deal %s: %s", result.deal_id, e)
            emit_event(
                self._event_sink,
                EngineEvent.SNAPSHOT_PERSIST_FAILED,
                deal_id=result.deal_id,
                error=str(e),
            )
            return None

        emit_event(
            self._event_sink,
            EngineEvent.SNAPSHOT_PERSISTED if write.created else EngineEvent.SNAPSHOT_DEDUPLICATED,
            deal_id=result.deal_id,
            snapshot_id=write.snapshot_id,
            outputs_hash=write.outputs_hash,
        )
        return write.snapshot_id

    def _persist_rendering(self, result: AuthoritativeResult) -> None:
        if self._rendering_store is None:
            return
        envelope = build_rendering_envelope(
            result.view_model,
            registry_version=result.registry_version,
            policy_version=result.policy_version,
            snapshot_hash=result.snapshot_hash,
            outputs_hash=result.outputs_hash,
            dependency_graph=result.dependency_graph,
        )
        try:
            self._rendering_store.upsert(
                result.deal_id, result.bank_id, STANDARD_STATEMENT_TYPE, envelope
            )
        except RenderingStoreError as e:
            logger.warning("Rendering persist failed for deal %s: %s", result.deal_id, e)
            emit_event(
                self._event_sink,
                EngineEvent.RENDERING_PERSIST_FAILED,
                deal_id=result.deal_id,
                error=str(e),
            )

    def compute_legacy_comparison(
        self,
        deal_id: str,
        bank_id: str,
        authoritative: AuthoritativeResult | None = None,
        *,
        force: bool = False,
    ) -> LegacyComparison | None:
        """Load and render the legacy spreads for comparison. Never persists.

        Args:
            deal_id: Deal identifier.
            bank_id: Bank identifier.
            authoritative: Model result to diff against, if any.
            force: Run even when shadow compare is disabled in the mode config.

        Returns:
            LegacyComparison, or None when comparison is disabled or no legacy
            source is configured.

        Raises:
            LegacyLoadError: If the legacy spreads cannot be loaded.
        """
        if self._legacy_source is None:
            return None
        if not (force or self._mode_config.shadow_compare):
            return None

        spreads = self._legacy_source.load_spreads(
            deal_id, bank_id, timeout_seconds=self._timeout_seconds
        )
        comparison = LegacyComparison(
            spreads=spreads, view_model=render_from_legacy_spread(spreads, deal_id)
        )
        if authoritative is not None:
            comparison.parity = compare_legacy_to_model(
                deal_id, spreads, authoritative.model, self._parity_thresholds
            )
            comparison.diff = diff_view_models(comparison.view_model, authoritative.view_model)
        return comparison

    def serve(
        self, deal_id: str, bank_id: str, context: ModeContext | None = None
    ) -> ServeResult:
        """Serve a deal's spread according to the selected mode.

        Raises:
            FactLoadError: If facts cannot be loaded (primary and shadow).
            LegacyLoadError: If legacy spreads cannot be loaded (legacy mode).
            MetricCycleError: If the metric registry contains a cycle.
        """
        selection = select_mode(self._mode_config, context)
        emit_event(
            self._event_sink,
            EngineEvent.MODEL_MODE_SELECTED,
            deal_id=deal_id,
            bank_id=bank_id,
            **selection.to_dict(),
        )
        logger.debug("Mode for deal %s: %s (%s)", deal_id, selection.mode, selection.reason)

        match selection.mode:
            case EngineMode.LEGACY:
                return self._serve_legacy(deal_id, bank_id, selection)
            case EngineMode.SHADOW:
                return self._serve_shadow(deal_id, bank_id, selection)
            case EngineMode.PRIMARY:
                result = self.compute_authoritative(deal_id, bank_id)
                return ServeResult(
                    selection=selection, view_model=result.view_model, authoritative=result
                )

    def _serve_legacy(self, deal_id: str, bank_id: str, selection: ModeSelection) -> ServeResult:
        if self._legacy_source is None:
            raise LegacyLoadError(
                "Legacy mode selected but no legacy source is configured", deal_id
            )
        spreads = self._legacy_source.load_spreads(
            deal_id, bank_id, timeout_seconds=self._timeout_seconds
        )
        view = render_from_legacy_spread(spreads, deal_id)
        emit_event(
            self._event_sink,
            EngineEvent.MODEL_LEGACY_SERVED,
            deal_id=deal_id,
            bank_id=bank_id,
            reason=selection.reason.value,
        )
        return ServeResult(
            selection=selection,
            view_model=view,
            comparison=LegacyComparison(spreads=spreads, view_model=view),
        )

    def _serve_shadow(self, deal_id: str, bank_id: str, selection: ModeSelection) -> ServeResult:
        result = self.compute_authoritative(deal_id, bank_id)
        served = ServeResult(
            selection=selection, view_model=result.view_model, authoritative=result
        )
        try:
            comparison = self.compute_legacy_comparison(deal_id, bank_id, result, force=True)
        except (LegacyLoadError, ValueError, ArithmeticError) as e:
            logger.warning("Shadow comparison failed for deal %s: %s", deal_id, e)
            emit_event(
                self._event_sink,
                EngineEvent.MODEL_SHADOW_COMPARE_FAILED,
                deal_id=deal_id,
                error=str(e),
            )
            served.warnings.append(f"shadow comparison failed: {e}")
            return served

        served.comparison = comparison
        if comparison is None:
            served.warnings.append("shadow comparison skipped: no legacy source configured")
            return served

        parity = comparison.parity
        diff = comparison.diff
        emit_event(
            self._event_sink,
            EngineEvent.MODEL_SHADOW_DIFF,
            deal_id=deal_id,
            bank_id=bank_id,
            gate=parity.gate.value if parity else None,
            pass_fail=parity.pass_fail.value if parity else None,
            material_cells=diff.summary.material_diffs if diff else None,
        )
        return served
