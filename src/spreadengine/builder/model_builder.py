"""Model builder: fold extracted facts into a normalized per-period model.

The builder is a pure function of its inputs. It performs no I/O, reads no
clock and no environment; everything configurable arrives through
ModelBuilderConfig.

Pipeline:
    1. Filter to relevant fact types with a numeric value and a valid date.
    2. Group by period end date.
    3. Promote undated facts of current-pass statement types onto the most
       recent real period, after dated facts, so they win key collisions.
    4. Map fact keys onto statement fields (unmapped keys are ignored).
    5. Derive EBITDA, equity and CFADS from values in the same period.
    6. Attach quality flags.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from spreadengine.models.facts import Fact, FactType
from spreadengine.models.financial_model import (
    FinancialModel,
    FinancialPeriod,
    PeriodType,
    QualityFlag,
    StatementKind,
)

logger = logging.getLogger(__name__)

PRODUCTION_ENV = "production"

RELEVANT_FACT_TYPES = frozenset(
    {
        FactType.INCOME_STATEMENT.value,
        FactType.BALANCE_SHEET.value,
        FactType.T12.value,
        FactType.CASH_FLOW.value,
        FactType.TAX_RETURN.value,
    }
)

SENTINEL_DATES = frozenset({date(1900, 1, 1), date(1, 1, 1)})

BALANCE_TOLERANCE = Decimal("1")

# fact_key -> (statement, field)
FACT_KEY_MAP: dict[str, tuple[StatementKind, str]] = {
    # income statement
    "TOTAL_REVENUE": (StatementKind.INCOME, "revenue"),
    "TOTAL_INCOME": (StatementKind.INCOME, "revenue"),
    "GROSS_RENTAL_INCOME": (StatementKind.INCOME, "revenue"),
    "REVENUE": (StatementKind.INCOME, "revenue"),
    "COST_OF_GOODS_SOLD": (StatementKind.INCOME, "cogs"),
    "COGS": (StatementKind.INCOME, "cogs"),
    "TOTAL_OPERATING_EXPENSES": (StatementKind.INCOME, "operating_expenses"),
    "TOTAL_OPEX": (StatementKind.INCOME, "operating_expenses"),
    "DEPRECIATION": (StatementKind.INCOME, "depreciation"),
    "DEPRECIATION_AMORTIZATION": (StatementKind.INCOME, "depreciation"),
    "INTEREST_EXPENSE": (StatementKind.INCOME, "interest"),
    "DEBT_SERVICE": (StatementKind.INCOME, "interest"),
    "NET_INCOME": (StatementKind.INCOME, "net_income"),
    # balance sheet
    "CASH_AND_EQUIVALENTS": (StatementKind.BALANCE, "cash"),
    "CASH": (StatementKind.BALANCE, "cash"),
    "ACCOUNTS_RECEIVABLE": (StatementKind.BALANCE, "accounts_receivable"),
    "INVENTORY": (StatementKind.BALANCE, "inventory"),
    "TOTAL_CURRENT_ASSETS": (StatementKind.BALANCE, "current_assets"),
    "TOTAL_ASSETS": (StatementKind.BALANCE, "total_assets"),
    "SHORT_TERM_DEBT": (StatementKind.BALANCE, "short_term_debt"),
    "LONG_TERM_DEBT": (StatementKind.BALANCE, "long_term_debt"),
    "TOTAL_CURRENT_LIABILITIES": (StatementKind.BALANCE, "current_liabilities"),
    "TOTAL_LIABILITIES": (StatementKind.BALANCE, "total_liabilities"),
    "TOTAL_EQUITY": (StatementKind.BALANCE, "equity"),
    "NET_WORTH": (StatementKind.BALANCE, "equity"),
    # cash flow
    "EBITDA": (StatementKind.CASHFLOW, "ebitda"),
    "NET_OPERATING_INCOME": (StatementKind.CASHFLOW, "ebitda"),
    "CAPITAL_EXPENDITURES": (StatementKind.CASHFLOW, "capex"),
    "CAPEX": (StatementKind.CASHFLOW, "capex"),
    "CASH_FLOW_AVAILABLE": (StatementKind.CASHFLOW, "cfads"),
}


class DuplicatePeriodError(Exception):
    """Raised when two periods share a period id outside production."""

    def __init__(self, period_id: str) -> None:
        self.period_id = period_id
        super().__init__(f"Duplicate period id in financial model: {period_id}")


@dataclass(frozen=True)
class ModelBuilderConfig:
    """Builder settings, threaded explicitly into build_financial_model.

    Attributes:
        environment: Deployment environment; "production" downgrades
            duplicate-period defects from an exception to a logged drop.
        min_year: Facts dated in an earlier year are excluded from the model.
        sentinel_dates: Placeholder dates emitted by extraction for "no date".
        fiscal_year_end_month: Month that closes the fiscal year (FYE periods).
        undated_fact_types: Fact types produced by the current/undated pass;
            their undated facts are promoted onto the latest real period.
        min_confidence: When set, facts with a lower confidence are skipped.
    """

    environment: str = "development"
    min_year: int = 1990
    sentinel_dates: frozenset[date] = SENTINEL_DATES
    fiscal_year_end_month: int = 12
    undated_fact_types: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {FactType.BALANCE_SHEET.value, FactType.INCOME_STATEMENT.value}
        )
    )
    min_confidence: Decimal | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION_ENV


def _is_undated(period_end: date | None, config: ModelBuilderConfig) -> bool:
    return period_end is None or period_end in config.sentinel_dates


def _is_before_cutoff(period_end: date, config: ModelBuilderConfig) -> bool:
    return period_end.year < config.min_year


def _is_usable(fact: Fact, config: ModelBuilderConfig) -> bool:
    if fact.fact_type not in RELEVANT_FACT_TYPES:
        return False
    if fact.value is None:
        return False
    if fact.fact_key not in FACT_KEY_MAP:
        return False
    if config.min_confidence is not None and fact.confidence is not None:
        if fact.confidence < config.min_confidence:
            return False
    return True


def _application_order(fact: Fact) -> tuple[Decimal, str, Decimal]:
    # Later facts overwrite earlier ones: highest confidence is applied last.
    confidence = fact.confidence if fact.confidence is not None else Decimal("-1")
    value = fact.value if fact.value is not None else Decimal("0")
    return (confidence, fact.fact_type, value)


def _apply_facts(period: FinancialPeriod, facts: Iterable[Fact]) -> None:
    for fact in sorted(facts, key=_application_order):
        statement, field_name = FACT_KEY_MAP[fact.fact_key]
        setattr(period.statement(statement), field_name, fact.value)


def _period_type(period_end: date, config: ModelBuilderConfig) -> PeriodType:
    if period_end.month == config.fiscal_year_end_month:
        return PeriodType.FYE
    return PeriodType.YTD


def _derive(period: FinancialPeriod) -> None:
    """Fill derived fields from values present in the same period."""
    zero = Decimal("0")
    inc = period.income
    bal = period.balance
    cf = period.cashflow

    if inc.revenue is not None and cf.ebitda is None:
        cf.ebitda = (
            inc.revenue
            - (inc.cogs or zero)
            - (inc.operating_expenses or zero)
            + (inc.depreciation or zero)
        )

    if bal.equity is None and bal.total_assets is not None and bal.total_liabilities is not None:
        bal.equity = bal.total_assets - bal.total_liabilities

    if cf.ebitda is not None and cf.cfads is None:
        cf.cfads = cf.ebitda - (cf.capex or zero)


def _quality_flags(period: FinancialPeriod) -> list[QualityFlag]:
    flags: list[QualityFlag] = []
    inc = period.income
    bal = period.balance

    if (
        bal.total_assets is not None
        and bal.total_liabilities is not None
        and bal.equity is not None
    ):
        gap = bal.total_assets - (bal.total_liabilities + bal.equity)
        if abs(gap) > BALANCE_TOLERANCE:
            flags.append(QualityFlag.BALANCE_SHEET_IMBALANCE)

    if inc.revenue is None:
        flags.append(QualityFlag.MISSING_REVENUE)
    elif inc.revenue < 0:
        flags.append(QualityFlag.NEGATIVE_REVENUE)

    if bal.total_assets is None:
        flags.append(QualityFlag.MISSING_TOTAL_ASSETS)

    return flags


def check_unique_periods(
    periods: list[FinancialPeriod], config: ModelBuilderConfig
) -> list[FinancialPeriod]:
    """Enforce one period per period id.

    Args:
        periods: Candidate periods, in order.
        config: Builder config; decides fail-fast vs. log-and-drop.

    Returns:
        Periods with duplicates removed (first occurrence kept).

    Raises:
        DuplicatePeriodError: On a duplicate outside production.
    """
    seen: set[str] = set()
    unique: list[FinancialPeriod] = []
    for period in periods:
        if period.period_id in seen:
            if not config.is_production:
                raise DuplicatePeriodError(period.period_id)
            logger.error("Dropping duplicate period %s", period.period_id)
            continue
        seen.add(period.period_id)
        unique.append(period)
    return unique


def build_financial_model(
    deal_id: str,
    facts: Iterable[Fact],
    config: ModelBuilderConfig | None = None,
) -> FinancialModel:
    """Build the normalized financial model for a deal.

    Args:
        deal_id: Deal identifier, used in period ids.
        facts: Extracted facts, in any order.
        config: Builder config; defaults to ModelBuilderConfig().

    Returns:
        FinancialModel with periods sorted ascending by end date.

    Raises:
        DuplicatePeriodError: If duplicate period ids appear outside production.
    """
    config = config or ModelBuilderConfig()

    dated: dict[date, list[Fact]] = defaultdict(list)
    undated: list[Fact] = []
    skipped = 0

    for fact in facts:
        if not _is_usable(fact, config):
            skipped += 1
            continue
        period_end = fact.period_end
        if period_end is None or _is_undated(period_end, config):
            if fact.fact_type in config.undated_fact_types:
                undated.append(fact)
            else:
                skipped += 1
            continue
        if _is_before_cutoff(period_end, config):
            skipped += 1
            continue
        dated[period_end].append(fact)

    periods: list[FinancialPeriod] = []
    for period_end in sorted(dated):
        period = FinancialPeriod(
            period_id=f"{deal_id}:{period_end.isoformat()}",
            period_end=period_end,
            period_type=_period_type(period_end, config),
        )
        _apply_facts(period, dated[period_end])
        periods.append(period)

    if undated:
        if periods:
            _apply_facts(periods[-1], undated)
        else:
            logger.debug(
                "Dropping %d undated facts for deal %s: no dated period to attach to",
                len(undated),
                deal_id,
            )

    for period in periods:
        _derive(period)
        period.quality_flags = _quality_flags(period)

    periods = check_unique_periods(periods, config)

    if skipped:
        logger.debug("Skipped %d unusable facts for deal %s", skipped, deal_id)

    return FinancialModel(deal_id=deal_id, periods=periods)
