"""Adapters normalizing both representations into a PeriodMetricMap.

The comparator only ever sees PeriodMetricMap; it never branches on which
side produced a value. Each adapter emits canonical dictionary keys only,
for discrete (non-aggregate) periods only.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from spreadengine.models.financial_model import FinancialModel
from spreadengine.parity.legacy_spread import LegacySpreadData
from spreadengine.parity.metric_dictionary import (
    LEGACY_DEBT_ROW_KEYS,
    LEGACY_ROW_MAPS,
    LEVERAGE_KEY,
    METRICS_BY_KEY,
)


@dataclass
class PeriodMetrics:
    """Canonical metric values for one period end."""

    period_end: date
    metrics: dict[str, Decimal] = field(default_factory=dict)
    label: str | None = None


PeriodMetricMap = dict[date, PeriodMetrics]


def _leverage(total_debt: Decimal | None, ebitda: Decimal | None) -> Decimal | None:
    if total_debt is None or ebitda is None or ebitda == 0:
        return None
    return total_debt / ebitda


def legacy_period_metrics(spreads: Iterable[LegacySpreadData]) -> PeriodMetricMap:
    """Canonical metrics per period from extracted legacy spreads.

    Only spread types with a known row map contribute. Leverage is derived
    per period from the balance sheet debt rows and the same period's EBITDA,
    possibly across two spreads.
    """
    result: PeriodMetricMap = {}
    debt_by_period: dict[date, dict[str, Decimal]] = {}

    for spread in spreads:
        row_map = LEGACY_ROW_MAPS.get(spread.spread_type)
        if row_map is None:
            continue

        for period in spread.periods:
            if period.end_date is None or period.is_aggregate:
                continue
            pm = result.setdefault(
                period.end_date, PeriodMetrics(period_end=period.end_date, label=period.label)
            )
            for row in spread.rows:
                value = row.value_by_period.get(period.key)
                if value is None:
                    continue
                metric_key = row_map.get(row.key)
                if metric_key is not None:
                    pm.metrics[metric_key] = value
                elif row.key in LEGACY_DEBT_ROW_KEYS:
                    debt_by_period.setdefault(period.end_date, {})[row.key] = value

    for period_end, debts in debt_by_period.items():
        pm = result[period_end]
        leverage = _leverage(sum(debts.values(), Decimal("0")), pm.metrics.get("ebitda"))
        if leverage is not None:
            pm.metrics[LEVERAGE_KEY] = leverage

    return result


def model_period_metrics(model: FinancialModel) -> PeriodMetricMap:
    """Canonical metrics per period from the normalized model."""
    result: PeriodMetricMap = {}
    for period in model.periods:
        candidates: dict[str, Decimal | None] = {
            "revenue": period.income.revenue,
            "cogs": period.income.cogs,
            "operating_expenses": period.income.operating_expenses,
            "ebitda": period.cashflow.ebitda,
            "net_income": period.income.net_income,
            "cash": period.balance.cash,
            "total_assets": period.balance.total_assets,
            "total_liabilities": period.balance.total_liabilities,
            "equity": period.balance.equity,
            LEVERAGE_KEY: _leverage(period.total_debt, period.cashflow.ebitda),
        }
        result[period.period_end] = PeriodMetrics(
            period_end=period.period_end,
            metrics={
                k: v for k, v in candidates.items() if v is not None and k in METRICS_BY_KEY
            },
        )
    return result
