"""Flatten the latest model period into metric-graph base values."""

from __future__ import annotations

from decimal import Decimal

from spreadengine.models.financial_model import FinancialModel

BASE_VALUE_KEYS: tuple[str, ...] = (
    "REVENUE",
    "COGS",
    "OPERATING_EXPENSES",
    "DEPRECIATION",
    "NET_INCOME",
    "DEBT_SERVICE",
    "CASH",
    "CURRENT_ASSETS",
    "TOTAL_ASSETS",
    "CURRENT_LIABILITIES",
    "TOTAL_LIABILITIES",
    "EQUITY",
    "EBITDA",
    "CAPEX",
    "CFADS",
    "TOTAL_DEBT",
)


def extract_base_values(model: FinancialModel) -> dict[str, Decimal | None]:
    """Return base values from the most recent period.

    Every key in BASE_VALUE_KEYS is present; absent line items are an
    explicit None so that downstream formulas propagate nulls instead of
    failing on a missing key.
    """
    values: dict[str, Decimal | None] = {key: None for key in BASE_VALUE_KEYS}
    period = model.latest_period
    if period is None:
        return values

    inc = period.income
    bal = period.balance
    cf = period.cashflow
    values.update(
        {
            "REVENUE": inc.revenue,
            "COGS": inc.cogs,
            "OPERATING_EXPENSES": inc.operating_expenses,
            "DEPRECIATION": inc.depreciation,
            "NET_INCOME": inc.net_income,
            "DEBT_SERVICE": inc.interest,
            "CASH": bal.cash,
            "CURRENT_ASSETS": bal.current_assets,
            "TOTAL_ASSETS": bal.total_assets,
            "CURRENT_LIABILITIES": bal.current_liabilities,
            "TOTAL_LIABILITIES": bal.total_liabilities,
            "EQUITY": bal.equity,
            "EBITDA": cf.ebitda,
            "CAPEX": cf.capex,
            "CFADS": cf.cfads,
            "TOTAL_DEBT": period.total_debt,
        }
    )
    return values
