"""Parity comparison between the legacy and model representations.

Pure: no storage, no clock other than the report timestamp (which is
excluded from hashing). Parity problems are reported as flags, never raised.

Verdicts:
    gate       PASS  no material diffs and no missing-period errors
               BLOCK any diff crosses its category BLOCK threshold
               WARN  otherwise
    pass_fail  FAIL when the gate is not PASS, a headline metric is out of
               tolerance, or any error-severity flag exists
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from spreadengine.models.financial_model import FinancialModel
from spreadengine.models.parity import (
    FlagSeverity,
    FlagType,
    GateVerdict,
    HeadlineDiff,
    MetricDiff,
    ParityFlag,
    ParityReport,
    ParitySummary,
    ParityThresholds,
    PassFail,
    PeriodAlignment,
    PeriodComparison,
    Severity,
)
from spreadengine.observability.tracing import traced_operation
from spreadengine.parity.adapters import (
    PeriodMetricMap,
    legacy_period_metrics,
    model_period_metrics,
)
from spreadengine.parity.legacy_spread import RenderedSpread, extract_legacy_spread_data
from spreadengine.parity.materiality import is_material
from spreadengine.parity.metric_dictionary import (
    CANONICAL_PARITY_METRICS,
    HEADLINE_METRIC_KEYS,
    METRICS_BY_KEY,
)
from spreadengine.parity.thresholds import DEFAULT_THRESHOLDS, classify_severity

logger = logging.getLogger(__name__)

SCALING_BANDS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("900"), Decimal("1100")),
    (Decimal("0.0009"), Decimal("0.0011")),
)

_ZERO = Decimal("0")
_INFINITY = Decimal("Infinity")


def pct_delta(left: Decimal, right: Decimal) -> Decimal:
    """``(right - left) / |left|``; Infinity when only left is zero, 0 when both are."""
    if left != 0:
        return (right - left) / abs(left)
    if right != 0:
        return _INFINITY
    return _ZERO


def _align(left: PeriodMetricMap, right: PeriodMetricMap) -> PeriodAlignment:
    alignment = PeriodAlignment()
    for period_end in sorted(set(left) | set(right)):
        if period_end in left and period_end in right:
            alignment.aligned.append(period_end)
        elif period_end in left:
            alignment.legacy_only.append(period_end)
        else:
            alignment.model_only.append(period_end)
    return alignment


def detect_value_flags(
    key: str, left: Decimal, right: Decimal, period_end: date | None = None
) -> list[ParityFlag]:
    """Sign-flip, scaling and zero-fill checks for one numeric pair."""
    label = METRICS_BY_KEY[key].label if key in METRICS_BY_KEY else key
    where = f" for {period_end.isoformat()}" if period_end else ""
    flags: list[ParityFlag] = []

    if (left > 0 and right < 0) or (left < 0 and right > 0):
        flags.append(
            ParityFlag(
                type=FlagType.SIGN_FLIP,
                severity=FlagSeverity.ERROR,
                period_end=period_end,
                key=key,
                message=f"{label}: legacy={left}, model={right}{where}",
                left=left,
                right=right,
            )
        )

    if left != 0 and right != 0:
        ratio = abs(left / right)
        if any(low < ratio < high for low, high in SCALING_BANDS):
            flags.append(
                ParityFlag(
                    type=FlagType.SCALING_ERROR,
                    severity=FlagSeverity.ERROR,
                    period_end=period_end,
                    key=key,
                    message=f"{label}: legacy={left} vs model={right} (~1000x){where}",
                    left=left,
                    right=right,
                )
            )

    if (left == 0) != (right == 0):
        zero_side = "legacy" if left == 0 else "model"
        other = right if left == 0 else left
        flags.append(
            ParityFlag(
                type=FlagType.ZERO_FILLED,
                severity=FlagSeverity.WARNING,
                period_end=period_end,
                key=key,
                message=f"{label}: {zero_side}=0 but other side={other}{where}",
                left=left,
                right=right,
            )
        )

    return flags


def _headline(
    key: str,
    period_end: date,
    left: Decimal | None,
    right: Decimal | None,
    thresholds: ParityThresholds,
) -> HeadlineDiff:
    if left is None or right is None:
        # One-sided coverage is reported through notes, not as a headline failure.
        return HeadlineDiff(
            key=key, period_end=period_end, left=left, right=right, within_tolerance=True
        )
    delta = right - left
    pct = pct_delta(left, right)
    within = (
        abs(delta) <= thresholds.headline_abs_tolerance
        or abs(pct) <= thresholds.headline_pct_tolerance
    )
    return HeadlineDiff(
        key=key,
        period_end=period_end,
        left=left,
        right=right,
        delta=delta,
        pct_delta=pct,
        within_tolerance=within,
    )


def _attributes(deal_id: str, *args: object, **kwargs: object) -> dict[str, object]:
    return {"deal_id": deal_id}


@traced_operation("parity.compare", attributes=_attributes)
def compare(
    deal_id: str,
    left: PeriodMetricMap,
    right: PeriodMetricMap,
    thresholds: ParityThresholds | None = None,
) -> ParityReport:
    """Compare legacy (left) and model (right) period metrics.

    Args:
        deal_id: Deal identifier.
        left: Legacy side, from legacy_period_metrics().
        right: Model side, from model_period_metrics().
        thresholds: Threshold profile; DEFAULT_THRESHOLDS when None.

    Returns:
        ParityReport with alignment, diffs, headline checks, flags and verdicts.
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    alignment = _align(left, right)
    flags: list[ParityFlag] = []
    notes: list[str] = []
    comparisons: list[PeriodComparison] = []
    headline: list[HeadlineDiff] = []

    for period_end in alignment.legacy_only:
        flags.append(
            ParityFlag(
                type=FlagType.MISSING_PERIOD,
                severity=(
                    FlagSeverity.ERROR if thresholds.missing_period_fails else FlagSeverity.WARNING
                ),
                period_end=period_end,
                message=f"Period {period_end.isoformat()} exists in legacy but not in model",
            )
        )
    for period_end in alignment.model_only:
        flags.append(
            ParityFlag(
                type=FlagType.MISSING_PERIOD,
                severity=FlagSeverity.WARNING,
                period_end=period_end,
                message=f"Period {period_end.isoformat()} exists in model but not in legacy",
            )
        )

    for period_end in alignment.aligned:
        left_metrics = left[period_end].metrics
        right_metrics = right[period_end].metrics
        comparison = PeriodComparison(period_end=period_end)

        for metric in CANONICAL_PARITY_METRICS:
            lv = left_metrics.get(metric.key)
            rv = right_metrics.get(metric.key)
            if lv is None and rv is None:
                continue
            if lv is None or rv is None:
                missing_side = "legacy" if lv is None else "model"
                notes.append(
                    f"{metric.label} missing in {missing_side} for {period_end.isoformat()}"
                )
                flags.append(
                    ParityFlag(
                        type=FlagType.MISSING_ROW,
                        severity=FlagSeverity.WARNING,
                        period_end=period_end,
                        key=metric.key,
                        message=f"{metric.label} missing in {missing_side}",
                        left=lv,
                        right=rv,
                    )
                )
                continue

            delta = rv - lv
            pct = pct_delta(lv, rv)
            material = is_material(lv, delta)
            severity = classify_severity(thresholds.for_category(metric.category), delta, pct)
            if not material and severity != Severity.BLOCK:
                severity = Severity.NONE
            comparison.diffs[metric.key] = MetricDiff(
                key=metric.key,
                category=metric.category,
                left=lv,
                right=rv,
                delta=delta,
                pct_delta=pct,
                material=material,
                severity=severity,
            )
            flags.extend(detect_value_flags(metric.key, lv, rv, period_end))

        for key in HEADLINE_METRIC_KEYS:
            headline.append(
                _headline(
                    key, period_end, left_metrics.get(key), right_metrics.get(key), thresholds
                )
            )
        comparisons.append(comparison)

    summary = _summarize(comparisons)
    gate = _gate(flags, summary)
    failed = (
        gate != GateVerdict.PASS
        or any(not h.within_tolerance for h in headline)
        or any(f.severity == FlagSeverity.ERROR for f in flags)
    )

    report = ParityReport(
        deal_id=deal_id,
        alignment=alignment,
        period_comparisons=comparisons,
        headline=headline,
        flags=flags,
        notes=notes,
        summary=summary,
        gate=gate,
        pass_fail=PassFail.FAIL if failed else PassFail.PASS,
        thresholds=thresholds,
    )
    logger.info(
        "Parity for deal %s: gate=%s pass_fail=%s material=%d flags=%d",
        deal_id,
        report.gate.value,
        report.pass_fail.value,
        summary.material_count,
        len(flags),
    )
    return report


def _summarize(comparisons: list[PeriodComparison]) -> ParitySummary:
    summary = ParitySummary()
    for comparison in comparisons:
        for diff in comparison.diffs.values():
            summary.comparisons += 1
            if diff.delta != 0:
                summary.total_differences += 1
            if diff.material:
                summary.material_count += 1
            if diff.severity == Severity.WARN:
                summary.warn_count += 1
            elif diff.severity == Severity.BLOCK:
                summary.block_count += 1
            summary.max_abs_delta = max(summary.max_abs_delta, abs(diff.delta))
    summary.materially_different = summary.material_count > 0
    return summary


def _gate(flags: list[ParityFlag], summary: ParitySummary) -> GateVerdict:
    if summary.block_count > 0:
        return GateVerdict.BLOCK
    missing_period_error = any(
        f.type == FlagType.MISSING_PERIOD and f.severity == FlagSeverity.ERROR for f in flags
    )
    if summary.material_count == 0 and not missing_period_error:
        return GateVerdict.PASS
    return GateVerdict.WARN


def compare_legacy_to_model(
    deal_id: str,
    spreads: Iterable[RenderedSpread],
    model: FinancialModel,
    thresholds: ParityThresholds | None = None,
) -> ParityReport:
    """Run both adapters and compare: rendered legacy spreads vs built model."""
    legacy = legacy_period_metrics(extract_legacy_spread_data(s) for s in spreads)
    return compare(deal_id, legacy, model_period_metrics(model), thresholds)
