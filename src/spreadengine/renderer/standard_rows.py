"""Standard spread row layout shared by both renderers.

Each row either reads a standard fact key directly or computes its value
with a formula. Formula rows are evaluated through the metric graph, so a
ratio may reference a computed row from another statement.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from spreadengine.models.metric import FormulaNode, FormulaOp, MetricDefinition
from spreadengine.models.view_model import RowFormat


class Statement(StrEnum):
    """Spread sections, in display order."""

    BALANCE_SHEET = "BALANCE_SHEET"
    INCOME_STATEMENT = "INCOME_STATEMENT"
    CASH_FLOW = "CASH_FLOW"
    RATIOS = "RATIOS"
    EXEC_SUMMARY = "EXEC_SUMMARY"


STATEMENT_ORDER: tuple[Statement, ...] = tuple(Statement)

STATEMENT_LABELS: dict[Statement, str] = {
    Statement.BALANCE_SHEET: "Balance Sheet",
    Statement.INCOME_STATEMENT: "Income Statement",
    Statement.CASH_FLOW: "Cash Flow Analysis",
    Statement.RATIOS: "Financial Ratios",
    Statement.EXEC_SUMMARY: "Executive Summary",
}


@dataclass(frozen=True)
class StandardRow:
    """One row of the standard spread."""

    key: str
    label: str
    statement: Statement
    order: int
    formula: FormulaNode | None = None
    format: RowFormat = RowFormat.CURRENCY


def _f(op: FormulaOp, left: str, right: str) -> FormulaNode:
    return FormulaNode(op=op, left=left, right=right)


_BS = Statement.BALANCE_SHEET
_IS = Statement.INCOME_STATEMENT
_CF = Statement.CASH_FLOW
_RT = Statement.RATIOS
_EX = Statement.EXEC_SUMMARY

STANDARD_ROWS: tuple[StandardRow, ...] = (
    StandardRow("CASH_AND_EQUIVALENTS", "Cash & Equivalents", _BS, 1),
    StandardRow("ACCOUNTS_RECEIVABLE", "Accounts Receivable", _BS, 2),
    StandardRow("INVENTORY", "Inventory", _BS, 3),
    StandardRow("TOTAL_CURRENT_ASSETS", "Total Current Assets", _BS, 4),
    StandardRow("TOTAL_ASSETS", "Total Assets", _BS, 5),
    StandardRow("SHORT_TERM_DEBT", "Short-Term Debt", _BS, 6),
    StandardRow("LONG_TERM_DEBT", "Long-Term Debt", _BS, 7),
    StandardRow(
        "TOTAL_DEBT",
        "Total Debt",
        _BS,
        8,
        _f(FormulaOp.ADD, "SHORT_TERM_DEBT", "LONG_TERM_DEBT"),
    ),
    StandardRow("TOTAL_CURRENT_LIABILITIES", "Total Current Liabilities", _BS, 9),
    StandardRow("TOTAL_LIABILITIES", "Total Liabilities", _BS, 10),
    StandardRow("TOTAL_EQUITY", "Total Equity", _BS, 11),
    StandardRow("TOTAL_REVENUE", "Total Revenue", _IS, 1),
    StandardRow("COST_OF_GOODS_SOLD", "Cost of Goods Sold", _IS, 2),
    StandardRow(
        "GROSS_PROFIT",
        "Gross Profit",
        _IS,
        3,
        _f(FormulaOp.SUBTRACT, "TOTAL_REVENUE", "COST_OF_GOODS_SOLD"),
    ),
    StandardRow("TOTAL_OPERATING_EXPENSES", "Total Operating Expenses", _IS, 4),
    StandardRow("DEPRECIATION", "Depreciation", _IS, 5),
    StandardRow("DEBT_SERVICE", "Debt Service", _IS, 6),
    StandardRow("NET_INCOME", "Net Income", _IS, 7),
    StandardRow("EBITDA", "EBITDA", _CF, 1),
    StandardRow("CAPITAL_EXPENDITURES", "Capital Expenditures", _CF, 2),
    StandardRow("CASH_FLOW_AVAILABLE", "Cash Flow Available for Debt Service", _CF, 3),
    StandardRow(
        "GROSS_MARGIN",
        "Gross Margin",
        _RT,
        1,
        _f(FormulaOp.DIVIDE, "GROSS_PROFIT", "TOTAL_REVENUE"),
        RowFormat.PERCENT,
    ),
    StandardRow(
        "EBITDA_MARGIN",
        "EBITDA Margin",
        _RT,
        2,
        _f(FormulaOp.DIVIDE, "EBITDA", "TOTAL_REVENUE"),
        RowFormat.PERCENT,
    ),
    StandardRow(
        "CURRENT_RATIO",
        "Current Ratio",
        _RT,
        3,
        _f(FormulaOp.DIVIDE, "TOTAL_CURRENT_ASSETS", "TOTAL_CURRENT_LIABILITIES"),
        RowFormat.RATIO,
    ),
    StandardRow(
        "DEBT_TO_EQUITY",
        "Debt / Equity",
        _RT,
        4,
        _f(FormulaOp.DIVIDE, "TOTAL_DEBT", "TOTAL_EQUITY"),
        RowFormat.RATIO,
    ),
    StandardRow(
        "LEVERAGE",
        "Debt / EBITDA",
        _RT,
        5,
        _f(FormulaOp.DIVIDE, "TOTAL_DEBT", "EBITDA"),
        RowFormat.RATIO,
    ),
    StandardRow(
        "DSCR",
        "Debt Service Coverage",
        _RT,
        6,
        _f(FormulaOp.DIVIDE, "CASH_FLOW_AVAILABLE", "DEBT_SERVICE"),
        RowFormat.RATIO,
    ),
    StandardRow("TOTAL_REVENUE", "Revenue", _EX, 1),
    StandardRow("EBITDA", "EBITDA", _EX, 2),
    StandardRow("NET_INCOME", "Net Income", _EX, 3),
    StandardRow("TOTAL_DEBT", "Total Debt", _EX, 4),
    StandardRow("DSCR", "DSCR", _EX, 5, format=RowFormat.RATIO),
)

# Legacy row key -> (statement, standard row key)
LEGACY_ROW_ALIASES: dict[str, tuple[Statement, str]] = {
    "TOTAL_INCOME": (_IS, "TOTAL_REVENUE"),
    "GROSS_RENTAL_INCOME": (_IS, "TOTAL_REVENUE"),
    "TOTAL_OPEX": (_IS, "TOTAL_OPERATING_EXPENSES"),
    "NOI": (_CF, "EBITDA"),
    "CAPEX": (_CF, "CAPITAL_EXPENDITURES"),
    "NET_CASH_FLOW_BEFORE_DEBT": (_CF, "CASH_FLOW_AVAILABLE"),
}


def home_row(key: str) -> StandardRow | None:
    """The first non-summary standard row for a key, following legacy aliases."""
    if key in LEGACY_ROW_ALIASES:
        statement, standard_key = LEGACY_ROW_ALIASES[key]
        return row_for_key(statement, standard_key)
    for row in STANDARD_ROWS:
        if row.key == key and row.statement != Statement.EXEC_SUMMARY:
            return row
    return None


def sorted_rows() -> list[StandardRow]:
    """Standard rows in statement order, then row order."""
    rank = {s: i for i, s in enumerate(STATEMENT_ORDER)}
    return sorted(STANDARD_ROWS, key=lambda r: (rank[r.statement], r.order))


def row_for_key(statement: Statement, key: str) -> StandardRow | None:
    """Find the standard row for a key within a statement."""
    for row in STANDARD_ROWS:
        if row.statement == statement and row.key == key:
            return row
    return None


def formula_definitions() -> list[MetricDefinition]:
    """Formula rows as metric definitions, one per distinct key."""
    seen: set[str] = set()
    definitions: list[MetricDefinition] = []
    for row in STANDARD_ROWS:
        if row.formula is None or row.key in seen:
            continue
        seen.add(row.key)
        definitions.append(
            MetricDefinition(
                key=row.key,
                depends_on=(row.formula.left, row.formula.right),
                formula=row.formula,
                description=row.label,
            )
        )
    return definitions


def format_value(value: Decimal | None, fmt: RowFormat) -> str:
    """Display string for a cell; "-" for missing values."""
    if value is None:
        return "-"
    match fmt:
        case RowFormat.PERCENT:
            return f"{value * 100:.1f}%"
        case RowFormat.RATIO:
            return f"{value:.2f}x"
        case _:
            if value < 0:
                return f"({abs(value):,.0f})"
            return f"{value:,.0f}"
