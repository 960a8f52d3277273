"""Render a FinancialModel into the standard spread view model."""

from __future__ import annotations

import logging
from decimal import Decimal

from spreadengine.calc.metric_graph import evaluate_metric_graph
from spreadengine.models.financial_model import FinancialModel, FinancialPeriod
from spreadengine.models.view_model import (
    SpreadColumn,
    SpreadRow,
    SpreadSection,
    SpreadViewModel,
    ViewModelMeta,
    ViewSource,
)
from spreadengine.renderer.standard_rows import (
    STATEMENT_LABELS,
    StandardRow,
    format_value,
    formula_definitions,
    sorted_rows,
)

logger = logging.getLogger(__name__)


def period_label(period: FinancialPeriod) -> str:
    """Column label in "Mon YYYY" form, e.g. "Dec 2024"."""
    return period.period_end.strftime("%b %Y")


def standard_fact_values(period: FinancialPeriod) -> dict[str, Decimal | None]:
    """Flatten one period into standard fact keys."""
    inc = period.income
    bal = period.balance
    cf = period.cashflow
    return {
        "TOTAL_REVENUE": inc.revenue,
        "COST_OF_GOODS_SOLD": inc.cogs,
        "TOTAL_OPERATING_EXPENSES": inc.operating_expenses,
        "DEPRECIATION": inc.depreciation,
        "DEBT_SERVICE": inc.interest,
        "NET_INCOME": inc.net_income,
        "CASH_AND_EQUIVALENTS": bal.cash,
        "ACCOUNTS_RECEIVABLE": bal.accounts_receivable,
        "INVENTORY": bal.inventory,
        "TOTAL_CURRENT_ASSETS": bal.current_assets,
        "TOTAL_ASSETS": bal.total_assets,
        "SHORT_TERM_DEBT": bal.short_term_debt,
        "LONG_TERM_DEBT": bal.long_term_debt,
        "TOTAL_CURRENT_LIABILITIES": bal.current_liabilities,
        "TOTAL_LIABILITIES": bal.total_liabilities,
        "TOTAL_EQUITY": bal.equity,
        "EBITDA": cf.ebitda,
        "CAPITAL_EXPENDITURES": cf.capex,
        "CASH_FLOW_AVAILABLE": cf.cfads,
    }


def _period_values(period: FinancialPeriod) -> dict[str, Decimal | None]:
    # Formula rows override same-named facts.
    return evaluate_metric_graph(formula_definitions(), standard_fact_values(period))


def _build_row(
    row: StandardRow, columns: list[SpreadColumn], values: list[dict[str, Decimal | None]]
) -> SpreadRow:
    spread_row = SpreadRow(key=row.key, label=row.label, format=row.format)
    for column, period_values in zip(columns, values, strict=True):
        value = period_values.get(row.key)
        spread_row.value_by_col[column.key] = value
        spread_row.display_by_col[column.key] = format_value(value, row.format)
    return spread_row


def render_from_financial_model(
    model: FinancialModel, deal_id: str | None = None
) -> SpreadViewModel:
    """Render the model as a standard spread.

    Columns are the model periods in ascending order, keyed by ISO period
    end. Sections follow statement order; rows within a section follow
    row order. Formula rows are evaluated per period through the metric
    graph, so a missing input yields an empty cell rather than an error.

    Args:
        model: Normalized financial model.
        deal_id: Overrides model.deal_id on the view model when given.

    Returns:
        SpreadViewModel with source=model.
    """
    columns = [
        SpreadColumn(key=p.period_end.isoformat(), label=period_label(p)) for p in model.periods
    ]
    values = [_period_values(p) for p in model.periods]

    sections: list[SpreadSection] = []
    for row in sorted_rows():
        if not sections or sections[-1].key != row.statement.value:
            sections.append(
                SpreadSection(key=row.statement.value, label=STATEMENT_LABELS[row.statement])
            )
        sections[-1].rows.append(_build_row(row, columns, values))

    meta = ViewModelMeta(
        row_count=sum(len(s.rows) for s in sections),
        section_count=len(sections),
        period_count=len(columns),
        non_null_cell_count=sum(
            1
            for s in sections
            for r in s.rows
            for v in r.value_by_col.values()
            if v is not None
        ),
    )
    view = SpreadViewModel(
        source=ViewSource.MODEL,
        deal_id=deal_id or model.deal_id,
        columns=columns,
        sections=sections,
        meta=meta,
    )
    logger.debug(
        "Rendered model spread for deal %s: %d rows x %d periods",
        view.deal_id,
        meta.row_count,
        meta.period_count,
    )
    return view
