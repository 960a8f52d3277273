"""Tests for the parity comparator.

Tests cover:
1. Materiality boundary ($1.00 vs $1.01)
2. Scaling, sign flip and zero-fill flags
3. Period alignment and missing-period severity
4. Gate and pass/fail verdicts, headline tolerance
5. End-to-end comparison of legacy spreads against a built model
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

import pytest

from spreadengine.builder.model_builder import build_financial_model
from spreadengine.models.facts import Fact
from spreadengine.models.parity import (
    FlagSeverity,
    FlagType,
    GateVerdict,
    PassFail,
    Severity,
)
from spreadengine.parity.adapters import PeriodMetricMap, PeriodMetrics
from spreadengine.parity.compare import (
    compare,
    compare_legacy_to_model,
    detect_value_flags,
    pct_delta,
)
from spreadengine.parity.materiality import is_material
from spreadengine.parity.metric_dictionary import (
    CANONICAL_PARITY_METRIC_KEYS,
    EXPECTED_METRIC_COUNT,
    HEADLINE_METRIC_KEYS,
)
from spreadengine.parity.thresholds import RELAXED_THRESHOLDS, get_threshold_profile
from spreadengine.sources.legacy import parse_spreads

DEAL_ID = "deal-parity"
FY2024 = date(2024, 12, 31)
FY2025 = date(2025, 12, 31)


def side(**periods: dict[str, Any]) -> PeriodMetricMap:
    """Build a PeriodMetricMap from {"fy2025": {...}} style keyword arguments."""
    ends = {"fy2024": FY2024, "fy2025": FY2025}
    return {
        ends[name]: PeriodMetrics(
            period_end=ends[name],
            metrics={k: Decimal(str(v)) for k, v in metrics.items()},
        )
        for name, metrics in periods.items()
    }


class TestMetricDictionary:
    """Test the frozen canonical metric dictionary."""

    def test_exactly_ten_metrics(self) -> None:
        """5 income statement + 4 balance sheet + 1 derived."""
        assert len(CANONICAL_PARITY_METRIC_KEYS) == EXPECTED_METRIC_COUNT == 10

    def test_headlines_are_canonical(self) -> None:
        """Every headline metric is a canonical metric."""
        assert set(HEADLINE_METRIC_KEYS) <= set(CANONICAL_PARITY_METRIC_KEYS)


class TestMateriality:
    """Test the combined absolute/relative materiality test."""

    def test_one_dollar_is_not_material(self) -> None:
        """$1.00 on a large baseline is immaterial."""
        assert is_material(Decimal("1000000"), Decimal("1.00")) is False

    def test_one_dollar_one_cent_is_material(self) -> None:
        """$1.01 crosses the absolute threshold."""
        assert is_material(Decimal("1000000"), Decimal("1.01")) is True

    def test_relative_threshold_on_small_baseline(self) -> None:
        """A small baseline makes a sub-dollar delta material."""
        assert is_material(Decimal("100"), Decimal("0.02")) is True
        assert is_material(Decimal("100"), Decimal("0.01")) is False

    def test_baseline_floored_at_one(self) -> None:
        """A zero baseline divides by 1, not 0."""
        assert is_material(Decimal("0"), Decimal("0.00005")) is False

    def test_pct_delta_zero_left(self) -> None:
        """Infinity when only left is zero; zero when both are."""
        assert pct_delta(Decimal("0"), Decimal("5")) == Decimal("Infinity")
        assert pct_delta(Decimal("0"), Decimal("0")) == Decimal("0")
        assert pct_delta(Decimal("-200"), Decimal("-100")) == Decimal("0.5")


class TestValueFlags:
    """Test sign-flip, scaling and zero-fill detection."""

    def test_scaling_error_detected(self) -> None:
        """2,571 vs 2,571,777 is a thousands-scaling error."""
        flags = detect_value_flags("revenue", Decimal("2571"), Decimal("2571777"))

        assert [f.type for f in flags] == [FlagType.SCALING_ERROR]
        assert flags[0].severity == FlagSeverity.ERROR

    def test_scaling_error_detected_in_reverse(self) -> None:
        """The model side may be the one scaled down."""
        flags = detect_value_flags("revenue", Decimal("2571777"), Decimal("2571"))

        assert [f.type for f in flags] == [FlagType.SCALING_ERROR]

    def test_one_dollar_apart_is_not_scaling(self) -> None:
        """2,571,777 vs 2,571,778 raises no flags."""
        assert detect_value_flags("revenue", Decimal("2571777"), Decimal("2571778")) == []

    def test_sign_flip(self) -> None:
        """Opposite signs are an error."""
        flags = detect_value_flags("net_income", Decimal("150000"), Decimal("-150000"))

        assert [f.type for f in flags] == [FlagType.SIGN_FLIP]
        assert flags[0].severity == FlagSeverity.ERROR

    def test_zero_filled(self) -> None:
        """Zero on one side only is a warning."""
        flags = detect_value_flags("cash", Decimal("0"), Decimal("250000"))

        assert [f.type for f in flags] == [FlagType.ZERO_FILLED]
        assert flags[0].severity == FlagSeverity.WARNING
        assert "legacy=0" in flags[0].message


class TestCompareVerdicts:
    """Test gate and pass/fail verdicts."""

    def test_identical_sides_pass(self) -> None:
        """No diffs: PASS / PASS."""
        metrics = {"revenue": 1000000, "ebitda": 450000, "equity": 2000000}

        report = compare(DEAL_ID, side(fy2025=metrics), side(fy2025=metrics))

        assert report.gate == GateVerdict.PASS
        assert report.pass_fail == PassFail.PASS
        assert report.passed
        assert report.summary.comparisons == 3
        assert report.summary.total_differences == 0

    def test_immaterial_diff_passes(self) -> None:
        """A $1 difference is not material and passes."""
        report = compare(
            DEAL_ID,
            side(fy2025={"revenue": 1000000}),
            side(fy2025={"revenue": 1000001}),
        )

        diff = report.period_comparisons[0].diffs["revenue"]
        assert diff.material is False
        assert diff.severity == Severity.NONE
        assert report.summary.total_differences == 1
        assert report.pass_fail == PassFail.PASS

    def test_warn_level_diff(self) -> None:
        """A material diff under the BLOCK level warns and fails headline tolerance."""
        report = compare(
            DEAL_ID,
            side(fy2025={"revenue": 1000000}),
            side(fy2025={"revenue": 1000500}),
        )

        assert report.period_comparisons[0].diffs["revenue"].severity == Severity.WARN
        assert report.gate == GateVerdict.WARN
        assert report.pass_fail == PassFail.FAIL
        assert not report.headline[0].within_tolerance

    def test_block_level_diff(self) -> None:
        """A diff above the BLOCK level blocks."""
        report = compare(
            DEAL_ID,
            side(fy2025={"cogs": 400000}),
            side(fy2025={"cogs": 460000}),
        )

        assert report.gate == GateVerdict.BLOCK
        assert report.summary.block_count == 1
        assert report.pass_fail == PassFail.FAIL

    def test_sign_flip_on_immaterial_values_blocks(self) -> None:
        """Opposite signs cross the BLOCK level even when no diff is material."""
        report = compare(
            DEAL_ID,
            side(fy2025={"net_income": "0.00003"}),
            side(fy2025={"net_income": "-0.00002"}),
        )

        assert [f.type for f in report.flags] == [FlagType.SIGN_FLIP]
        assert report.summary.material_count == 0
        assert report.summary.block_count == 1
        assert report.gate == GateVerdict.BLOCK
        assert report.pass_fail == PassFail.FAIL

    def test_immaterial_block_level_ratio_blocks(self) -> None:
        """A 90% move on a sub-unit leverage ratio blocks although it is not material."""
        report = compare(
            DEAL_ID,
            side(fy2025={"leverage_debt_to_ebitda": "0.0001"}),
            side(fy2025={"leverage_debt_to_ebitda": "0.00019"}),
        )

        diff = report.period_comparisons[0].diffs["leverage_debt_to_ebitda"]
        assert diff.material is False
        assert diff.severity == Severity.BLOCK
        assert report.summary.material_count == 0
        assert report.summary.block_count == 1
        assert report.gate == GateVerdict.BLOCK
        assert report.pass_fail == PassFail.FAIL

    def test_immaterial_warn_level_ratio_is_not_flagged(self) -> None:
        """WARN applies only to material diffs."""
        report = compare(
            DEAL_ID,
            side(fy2025={"leverage_debt_to_ebitda": "0.001"}),
            side(fy2025={"leverage_debt_to_ebitda": "0.00101"}),
        )

        diff = report.period_comparisons[0].diffs["leverage_debt_to_ebitda"]
        assert diff.material is False
        assert diff.severity == Severity.NONE
        assert report.gate == GateVerdict.PASS

    def test_legacy_only_period_is_error(self) -> None:
        """A period missing from the model fails the comparison."""
        report = compare(
            DEAL_ID,
            side(fy2024={"revenue": 900000}, fy2025={"revenue": 1000000}),
            side(fy2025={"revenue": 1000000}),
        )

        assert report.alignment.legacy_only == [FY2024]
        flag = report.flags[0]
        assert flag.type == FlagType.MISSING_PERIOD
        assert flag.severity == FlagSeverity.ERROR
        assert report.gate == GateVerdict.WARN
        assert report.pass_fail == PassFail.FAIL

    def test_legacy_only_period_warns_under_relaxed_profile(self) -> None:
        """The relaxed profile downgrades legacy-only periods to warnings."""
        report = compare(
            DEAL_ID,
            side(fy2024={"revenue": 900000}, fy2025={"revenue": 1000000}),
            side(fy2025={"revenue": 1000000}),
            RELAXED_THRESHOLDS,
        )

        assert report.flags[0].severity == FlagSeverity.WARNING
        assert report.pass_fail == PassFail.PASS

    def test_model_only_period_is_warning(self) -> None:
        """Extra model coverage is allowed."""
        report = compare(
            DEAL_ID,
            side(fy2025={"revenue": 1000000}),
            side(fy2024={"revenue": 900000}, fy2025={"revenue": 1000000}),
        )

        assert report.alignment.model_only == [FY2024]
        assert report.flags[0].severity == FlagSeverity.WARNING
        assert report.pass_fail == PassFail.PASS

    def test_one_sided_metric_is_noted(self) -> None:
        """A metric on one side only is a note plus a warning flag, not a diff."""
        report = compare(
            DEAL_ID,
            side(fy2025={"revenue": 1000000, "cash": 250000}),
            side(fy2025={"revenue": 1000000}),
        )

        assert "cash" not in report.period_comparisons[0].diffs
        assert report.notes == ["Cash & Equivalents missing in model for 2025-12-31"]
        assert report.flags[0].type == FlagType.MISSING_ROW
        assert report.pass_fail == PassFail.PASS


class TestThresholdProfiles:
    """Test threshold profile lookup."""

    def test_known_profiles(self) -> None:
        """default and relaxed are registered."""
        assert get_threshold_profile("default").name == "default"
        assert get_threshold_profile("relaxed").missing_period_fails is False

    def test_unknown_profile(self) -> None:
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError):
            get_threshold_profile("strict")


class TestCompareLegacyToModel:
    """Test the end-to-end adapter plus comparator path."""

    def test_matching_legacy_passes(
        self, sample_facts: list[Fact], sample_legacy_documents: list[dict[str, Any]]
    ) -> None:
        """Legacy spreads agreeing with the model pass; extra model years only warn."""
        model = build_financial_model(DEAL_ID, sample_facts)
        spreads = parse_spreads(sample_legacy_documents, DEAL_ID)

        report = compare_legacy_to_model(DEAL_ID, spreads, model)

        assert report.alignment.aligned == [FY2025]
        assert report.alignment.model_only == [FY2024]
        diffs = report.period_comparisons[0].diffs
        assert diffs["leverage_debt_to_ebitda"].left == Decimal("2")
        assert diffs["equity"].right == Decimal("2000000")
        assert report.summary.material_count == 0
        assert report.gate == GateVerdict.PASS
        assert report.pass_fail == PassFail.PASS

    def test_scaled_legacy_revenue_fails(
        self, sample_facts: list[Fact], sample_legacy_documents: list[dict[str, Any]]
    ) -> None:
        """Legacy revenue entered in thousands is flagged as scaling."""
        t12 = sample_legacy_documents[0]
        for row in t12["rows"]:
            if row["key"] == "TOTAL_REVENUE":
                row["values"] = [{"value_by_col": {"c2025": 1000, "ttm": 1000}}]
        model = build_financial_model(DEAL_ID, sample_facts)

        report = compare_legacy_to_model(
            DEAL_ID, parse_spreads(sample_legacy_documents, DEAL_ID), model
        )

        assert any(
            f.type == FlagType.SCALING_ERROR and f.key == "revenue" for f in report.flags
        )
        assert report.gate == GateVerdict.BLOCK
        assert report.pass_fail == PassFail.FAIL
