"""Spread renderers and view model diffing."""

from spreadengine.renderer.legacy_adapter import render_from_legacy_spread
from spreadengine.renderer.model_adapter import (
    period_label,
    render_from_financial_model,
    standard_fact_values,
)
from spreadengine.renderer.standard_rows import (
    STANDARD_ROWS,
    STATEMENT_LABELS,
    StandardRow,
    Statement,
    format_value,
)
from spreadengine.renderer.view_model_diff import (
    CellDiff,
    ViewModelDiff,
    diff_view_models,
    format_view_model_diff,
)

__all__ = [
    "CellDiff",
    "STANDARD_ROWS",
    "STATEMENT_LABELS",
    "StandardRow",
    "Statement",
    "ViewModelDiff",
    "diff_view_models",
    "format_value",
    "format_view_model_diff",
    "period_label",
    "render_from_financial_model",
    "render_from_legacy_spread",
    "standard_fact_values",
]
