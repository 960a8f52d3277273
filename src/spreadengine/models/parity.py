"""Parity report models: the output of comparing two model representations.

``left`` is always the legacy side and ``right`` the model side, so
``delta = right - left`` reads as "how far the new engine moved".
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class MetricCategory(StrEnum):
    """Threshold category a canonical metric belongs to."""

    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"
    DERIVED = "derived"


class Severity(StrEnum):
    """Per-diff severity against category thresholds."""

    NONE = "NONE"
    WARN = "WARN"
    BLOCK = "BLOCK"


class GateVerdict(StrEnum):
    """Three-level rollout gate."""

    PASS = "PASS"
    WARN = "WARN"
    BLOCK = "BLOCK"


class PassFail(StrEnum):
    """Overall comparison verdict."""

    PASS = "PASS"
    FAIL = "FAIL"


class FlagType(StrEnum):
    """Classified parity problems."""

    MISSING_PERIOD = "missing_period"
    MISSING_ROW = "missing_row"
    SIGN_FLIP = "sign_flip"
    SCALING_ERROR = "scaling_error"
    ZERO_FILLED = "zero_filled"


class FlagSeverity(StrEnum):
    """How a flag affects the overall verdict."""

    ERROR = "error"
    WARNING = "warning"


class CategoryThresholds(BaseModel):
    """WARN and BLOCK levels for one metric category.

    A diff crosses a level when either the absolute or the relative delta
    exceeds it.
    """

    warn_abs: Decimal
    warn_pct: Decimal
    block_abs: Decimal
    block_pct: Decimal

    model_config = {"frozen": True, "extra": "forbid"}


class ParityThresholds(BaseModel):
    """Full threshold configuration for a comparison run."""

    name: str = Field(default="default", description="Threshold profile name")
    categories: dict[MetricCategory, CategoryThresholds]
    headline_abs_tolerance: Decimal = Field(default=Decimal("1"))
    headline_pct_tolerance: Decimal = Field(default=Decimal("0.0001"))
    missing_period_fails: bool = Field(
        default=True, description="Legacy-only periods are error flags"
    )

    def for_category(self, category: MetricCategory) -> CategoryThresholds:
        """Return thresholds for a category."""
        return self.categories[category]

    model_config = {"frozen": True, "extra": "forbid"}


class MetricDiff(BaseModel):
    """Comparison of one canonical metric in one period."""

    key: str
    category: MetricCategory
    left: Decimal
    right: Decimal
    delta: Decimal
    pct_delta: Decimal = Field(..., allow_inf_nan=True, description="delta / |left|")
    material: bool
    severity: Severity = Severity.NONE

    model_config = {"frozen": True, "extra": "forbid"}


class PeriodComparison(BaseModel):
    """All metric diffs for one aligned period."""

    period_end: date
    diffs: dict[str, MetricDiff] = Field(default_factory=dict)

    model_config = {"frozen": False, "extra": "forbid"}


class PeriodAlignment(BaseModel):
    """Result of matching period end dates across the two sides."""

    aligned: list[date] = Field(default_factory=list)
    legacy_only: list[date] = Field(default_factory=list)
    model_only: list[date] = Field(default_factory=list)

    model_config = {"frozen": False, "extra": "forbid"}


class HeadlineDiff(BaseModel):
    """Headline metric comparison, judged against headline tolerances."""

    key: str
    period_end: date
    left: Decimal | None = None
    right: Decimal | None = None
    delta: Decimal | None = None
    pct_delta: Decimal | None = Field(default=None, allow_inf_nan=True)
    within_tolerance: bool

    model_config = {"frozen": True, "extra": "forbid"}


class ParityFlag(BaseModel):
    """A classified parity problem."""

    type: FlagType
    severity: FlagSeverity
    period_end: date | None = None
    key: str | None = None
    message: str
    left: Decimal | None = None
    right: Decimal | None = None

    model_config = {"frozen": True, "extra": "forbid"}


class ParitySummary(BaseModel):
    """Aggregate counters over all diffs."""

    comparisons: int = 0
    total_differences: int = 0
    material_count: int = 0
    materially_different: bool = False
    max_abs_delta: Decimal = Decimal("0")
    warn_count: int = 0
    block_count: int = 0

    model_config = {"frozen": False, "extra": "forbid"}


class ParityReport(BaseModel):
    """Complete parity comparison output."""

    deal_id: str
    alignment: PeriodAlignment
    period_comparisons: list[PeriodComparison] = Field(default_factory=list)
    headline: list[HeadlineDiff] = Field(default_factory=list)
    flags: list[ParityFlag] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    summary: ParitySummary
    gate: GateVerdict
    pass_fail: PassFail
    thresholds: ParityThresholds
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def passed(self) -> bool:
        """True when the overall verdict is PASS."""
        return self.pass_fail == PassFail.PASS

    model_config = {"frozen": False, "extra": "forbid"}
