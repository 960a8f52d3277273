"""Per-category WARN/BLOCK threshold profiles for parity gating."""

from __future__ import annotations

from decimal import Decimal

from spreadengine.models.parity import (
    CategoryThresholds,
    MetricCategory,
    ParityThresholds,
    Severity,
)

DEFAULT_THRESHOLDS = ParityThresholds(
    name="default",
    categories={
        MetricCategory.INCOME_STATEMENT: CategoryThresholds(
            warn_abs=Decimal("1"),
            warn_pct=Decimal("0.0001"),
            block_abs=Decimal("1000"),
            block_pct=Decimal("0.01"),
        ),
        MetricCategory.BALANCE_SHEET: CategoryThresholds(
            warn_abs=Decimal("1"),
            warn_pct=Decimal("0.0001"),
            block_abs=Decimal("1000"),
            block_pct=Decimal("0.01"),
        ),
        MetricCategory.DERIVED: CategoryThresholds(
            warn_abs=Decimal("0.01"),
            warn_pct=Decimal("0.001"),
            block_abs=Decimal("0.25"),
            block_pct=Decimal("0.05"),
        ),
    },
    headline_abs_tolerance=Decimal("1"),
    headline_pct_tolerance=Decimal("0.0001"),
    missing_period_fails=True,
)

# Used while legacy coverage is known to be incomplete.
RELAXED_THRESHOLDS = ParityThresholds(
    name="relaxed",
    categories={
        MetricCategory.INCOME_STATEMENT: CategoryThresholds(
            warn_abs=Decimal("100"),
            warn_pct=Decimal("0.001"),
            block_abs=Decimal("10000"),
            block_pct=Decimal("0.05"),
        ),
        MetricCategory.BALANCE_SHEET: CategoryThresholds(
            warn_abs=Decimal("100"),
            warn_pct=Decimal("0.001"),
            block_abs=Decimal("10000"),
            block_pct=Decimal("0.05"),
        ),
        MetricCategory.DERIVED: CategoryThresholds(
            warn_abs=Decimal("0.05"),
            warn_pct=Decimal("0.01"),
            block_abs=Decimal("0.5"),
            block_pct=Decimal("0.10"),
        ),
    },
    headline_abs_tolerance=Decimal("100"),
    headline_pct_tolerance=Decimal("0.001"),
    missing_period_fails=False,
)

THRESHOLD_PROFILES: dict[str, ParityThresholds] = {
    DEFAULT_THRESHOLDS.name: DEFAULT_THRESHOLDS,
    RELAXED_THRESHOLDS.name: RELAXED_THRESHOLDS,
}


def classify_severity(
    thresholds: CategoryThresholds, delta: Decimal, pct_delta: Decimal
) -> Severity:
    """Severity of a diff: a level is crossed when abs or pct delta exceeds it."""
    abs_delta = abs(delta)
    abs_pct = abs(pct_delta)
    if abs_delta > thresholds.block_abs or abs_pct > thresholds.block_pct:
        return Severity.BLOCK
    if abs_delta > thresholds.warn_abs or abs_pct > thresholds.warn_pct:
        return Severity.WARN
    return Severity.NONE


def get_threshold_profile(name: str) -> ParityThresholds:
    """Look up a named threshold profile.

    Raises:
        KeyError: If no profile has that name.
    """
    try:
        return THRESHOLD_PROFILES[name]
    except KeyError:
        raise KeyError(f"Unknown parity threshold profile: {name}") from None
