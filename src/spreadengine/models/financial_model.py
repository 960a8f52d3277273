"""Normalized financial model: per-period statement snapshots for a deal.

Statement sub-records are sparse. A field that was never reported stays
None; it is never defaulted to zero, because "absent" and "zero" mean
different things to the metric graph and the parity engine.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class PeriodType(StrEnum):
    """Whether a period closes a fiscal year or is an interim cut."""

    FYE = "FYE"
    YTD = "YTD"


class QualityFlag(StrEnum):
    """Data quality warnings attached to a period."""

    BALANCE_SHEET_IMBALANCE = "BALANCE_SHEET_IMBALANCE"
    NEGATIVE_REVENUE = "NEGATIVE_REVENUE"
    MISSING_REVENUE = "MISSING_REVENUE"
    MISSING_TOTAL_ASSETS = "MISSING_TOTAL_ASSETS"


class IncomeStatement(BaseModel):
    """Income statement line items for one period."""

    revenue: Decimal | None = None
    cogs: Decimal | None = None
    operating_expenses: Decimal | None = None
    depreciation: Decimal | None = None
    interest: Decimal | None = None
    net_income: Decimal | None = None

    model_config = {"frozen": False, "extra": "forbid"}


class BalanceSheet(BaseModel):
    """Balance sheet line items for one period."""

    cash: Decimal | None = None
    accounts_receivable: Decimal | None = None
    inventory: Decimal | None = None
    current_assets: Decimal | None = None
    total_assets: Decimal | None = None
    short_term_debt: Decimal | None = None
    long_term_debt: Decimal | None = None
    current_liabilities: Decimal | None = None
    total_liabilities: Decimal | None = None
    equity: Decimal | None = None

    model_config = {"frozen": False, "extra": "forbid"}


class CashFlow(BaseModel):
    """Cash flow line items for one period."""

    ebitda: Decimal | None = None
    capex: Decimal | None = None
    cfads: Decimal | None = None

    model_config = {"frozen": False, "extra": "forbid"}


class StatementKind(StrEnum):
    """Statement sub-record names on FinancialPeriod."""

    INCOME = "income"
    BALANCE = "balance"
    CASHFLOW = "cashflow"


class FinancialPeriod(BaseModel):
    """One reporting period of the normalized model."""

    period_id: str = Field(..., description='"{deal_id}:{period_end}"')
    period_end: date = Field(..., description="Period end date")
    period_type: PeriodType = Field(..., description="FYE or YTD")
    income: IncomeStatement = Field(default_factory=IncomeStatement)
    balance: BalanceSheet = Field(default_factory=BalanceSheet)
    cashflow: CashFlow = Field(default_factory=CashFlow)
    quality_flags: list[QualityFlag] = Field(default_factory=list)

    def statement(self, kind: StatementKind | str) -> BaseModel:
        """Return the sub-record for a statement kind."""
        match StatementKind(kind):
            case StatementKind.INCOME:
                return self.income
            case StatementKind.BALANCE:
                return self.balance
            case StatementKind.CASHFLOW:
                return self.cashflow

    @property
    def total_debt(self) -> Decimal | None:
        """Short plus long term debt, or None when neither is reported."""
        st = self.balance.short_term_debt
        lt = self.balance.long_term_debt
        if st is None and lt is None:
            return None
        return (st or Decimal("0")) + (lt or Decimal("0"))

    model_config = {"frozen": False, "extra": "forbid"}


class FinancialModel(BaseModel):
    """Normalized per-period model for a deal; periods sorted ascending."""

    deal_id: str = Field(..., description="Deal identifier")
    periods: list[FinancialPeriod] = Field(default_factory=list)

    @property
    def latest_period(self) -> FinancialPeriod | None:
        """Most recent period, or None for an empty model."""
        return self.periods[-1] if self.periods else None

    def period_by_end(self, period_end: date) -> FinancialPeriod | None:
        """Look up a period by its end date."""
        for period in self.periods:
            if period.period_end == period_end:
                return period
        return None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation with Decimals as strings."""
        return self.model_dump(mode="json")

    model_config = {"frozen": False, "extra": "forbid"}
