"""Parity engine: compare legacy spreads with the normalized model."""

from spreadengine.parity.adapters import (
    PeriodMetricMap,
    PeriodMetrics,
    legacy_period_metrics,
    model_period_metrics,
)
from spreadengine.parity.compare import (
    compare,
    compare_legacy_to_model,
    detect_value_flags,
    pct_delta,
)
from spreadengine.parity.legacy_spread import (
    LegacySpreadData,
    RenderedSpread,
    extract_legacy_spread_data,
    infer_end_date_from_label,
    parse_cell_value,
)
from spreadengine.parity.materiality import is_material
from spreadengine.parity.metric_dictionary import (
    CANONICAL_PARITY_METRIC_KEYS,
    CANONICAL_PARITY_METRICS,
    EXPECTED_METRIC_COUNT,
    HEADLINE_METRIC_KEYS,
)
from spreadengine.parity.report import format_parity_report
from spreadengine.parity.thresholds import (
    DEFAULT_THRESHOLDS,
    RELAXED_THRESHOLDS,
    classify_severity,
    get_threshold_profile,
)

__all__ = [
    "CANONICAL_PARITY_METRICS",
    "CANONICAL_PARITY_METRIC_KEYS",
    "DEFAULT_THRESHOLDS",
    "EXPECTED_METRIC_COUNT",
    "HEADLINE_METRIC_KEYS",
    "LegacySpreadData",
    "PeriodMetricMap",
    "PeriodMetrics",
    "RELAXED_THRESHOLDS",
    "RenderedSpread",
    "classify_severity",
    "compare",
    "compare_legacy_to_model",
    "detect_value_flags",
    "extract_legacy_spread_data",
    "format_parity_report",
    "get_threshold_profile",
    "infer_end_date_from_label",
    "is_material",
    "legacy_period_metrics",
    "model_period_metrics",
    "parse_cell_value",
    "pct_delta",
]
