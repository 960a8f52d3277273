"""Canonical parity metric dictionary.

Exactly ten metrics are compared: five income statement lines, four balance
sheet lines and one derived leverage ratio. Both adapters and the comparator
read this dictionary; the import-time check below stops a partial edit from
loading.
"""

from __future__ import annotations

from dataclasses import dataclass

from spreadengine.models.parity import MetricCategory


@dataclass(frozen=True)
class ParityMetric:
    """A metric compared across the legacy and model representations."""

    key: str
    label: str
    category: MetricCategory


CANONICAL_PARITY_METRICS: tuple[ParityMetric, ...] = (
    ParityMetric("revenue", "Revenue", MetricCategory.INCOME_STATEMENT),
    ParityMetric("cogs", "Cost of Goods Sold", MetricCategory.INCOME_STATEMENT),
    ParityMetric("operating_expenses", "Operating Expenses", MetricCategory.INCOME_STATEMENT),
    ParityMetric("ebitda", "EBITDA", MetricCategory.INCOME_STATEMENT),
    ParityMetric("net_income", "Net Income", MetricCategory.INCOME_STATEMENT),
    ParityMetric("cash", "Cash & Equivalents", MetricCategory.BALANCE_SHEET),
    ParityMetric("total_assets", "Total Assets", MetricCategory.BALANCE_SHEET),
    ParityMetric("total_liabilities", "Total Liabilities", MetricCategory.BALANCE_SHEET),
    ParityMetric("equity", "Total Equity", MetricCategory.BALANCE_SHEET),
    ParityMetric("leverage_debt_to_ebitda", "Leverage (Debt/EBITDA)", MetricCategory.DERIVED),
)

EXPECTED_METRIC_COUNT = 10

CANONICAL_PARITY_METRIC_KEYS: tuple[str, ...] = tuple(m.key for m in CANONICAL_PARITY_METRICS)

METRICS_BY_KEY: dict[str, ParityMetric] = {m.key: m for m in CANONICAL_PARITY_METRICS}

HEADLINE_METRIC_KEYS: tuple[str, ...] = ("revenue", "ebitda", "equity", "leverage_debt_to_ebitda")

LEVERAGE_KEY = "leverage_debt_to_ebitda"

# Legacy spread row key -> canonical metric key, per legacy spread type.
LEGACY_INCOME_ROW_MAP: dict[str, str] = {
    "TOTAL_REVENUE": "revenue",
    "TOTAL_INCOME": "revenue",
    "GROSS_RENTAL_INCOME": "revenue",
    "COST_OF_GOODS_SOLD": "cogs",
    "TOTAL_OPEX": "operating_expenses",
    "TOTAL_OPERATING_EXPENSES": "operating_expenses",
    "NOI": "ebitda",
    "EBITDA": "ebitda",
    "NET_INCOME": "net_income",
}

LEGACY_BALANCE_ROW_MAP: dict[str, str] = {
    "CASH_AND_EQUIVALENTS": "cash",
    "TOTAL_ASSETS": "total_assets",
    "TOTAL_LIABILITIES": "total_liabilities",
    "TOTAL_EQUITY": "equity",
}

LEGACY_DEBT_ROW_KEYS = frozenset({"SHORT_TERM_DEBT", "LONG_TERM_DEBT"})

LEGACY_ROW_MAPS: dict[str, dict[str, str]] = {
    "T12": LEGACY_INCOME_ROW_MAP,
    "INCOME_STATEMENT": LEGACY_INCOME_ROW_MAP,
    "BALANCE_SHEET": LEGACY_BALANCE_ROW_MAP,
}


class MetricDictionaryError(RuntimeError):
    """Raised at import time when the canonical dictionary is inconsistent."""

    pass


def _verify_dictionary() -> None:
    if len(CANONICAL_PARITY_METRICS) != EXPECTED_METRIC_COUNT:
        raise MetricDictionaryError(
            f"Expected {EXPECTED_METRIC_COUNT} canonical parity metrics, "
            f"found {len(CANONICAL_PARITY_METRICS)}"
        )
    if len(METRICS_BY_KEY) != len(CANONICAL_PARITY_METRICS):
        raise MetricDictionaryError("Canonical parity metric keys are not unique")
    for key in HEADLINE_METRIC_KEYS:
        if key not in METRICS_BY_KEY:
            raise MetricDictionaryError(f"Headline metric {key} is not a canonical metric")
    for row_map in LEGACY_ROW_MAPS.values():
        for metric_key in row_map.values():
            if metric_key not in METRICS_BY_KEY:
                raise MetricDictionaryError(f"Legacy row maps to unknown metric {metric_key}")


_verify_dictionary()
