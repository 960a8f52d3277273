"""Pytest configuration and fixtures for spreadengine tests.

This module provides sample facts and legacy spreads shared by the builder,
parity, renderer and authority tests.
"""

from __future__ import annotations

import os
from typing import Any

import pytest

from spreadengine.models.facts import Fact
from spreadengine.observability.tracing import reset_tracing
from spreadengine.sources.facts import parse_facts

DEAL_ID = "deal-001"
BANK_ID = "bank-001"


def _fact(fact_type: str, key: str, value: Any, period_end: str | None) -> dict[str, Any]:
    return {
        "fact_type": fact_type,
        "fact_key": key,
        "fact_value_num": value,
        "fact_period_end": period_end,
        "confidence": "0.95",
    }


@pytest.fixture(autouse=True)
def clear_engine_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove SPREADENGINE_* variables so tests never see the host configuration."""
    for name in list(os.environ):
        if name.startswith("SPREADENGINE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def disable_tracing() -> None:
    """Keep tracing off unless a test enables it."""
    reset_tracing()


@pytest.fixture
def sample_fact_rows() -> list[dict[str, Any]]:
    """Two fiscal years of extracted facts, as the extraction layer emits them.

    FY2025: revenue 1,000,000, COGS 400,000, opex 200,000, depreciation 50,000
    (EBITDA 450,000), interest 100,000, capex 50,000 (CFADS 400,000), total
    assets 3,000,000 and liabilities 1,000,000 (equity 2,000,000), debt 900,000.
    """
    rows: list[dict[str, Any]] = []
    years = {
        "2024-12-31": {
            "TOTAL_REVENUE": 900000,
            "COST_OF_GOODS_SOLD": 380000,
            "TOTAL_OPERATING_EXPENSES": 190000,
            "DEPRECIATION": 45000,
            "INTEREST_EXPENSE": 95000,
            "NET_INCOME": 120000,
        },
        "2025-12-31": {
            "TOTAL_REVENUE": 1000000,
            "COST_OF_GOODS_SOLD": 400000,
            "TOTAL_OPERATING_EXPENSES": 200000,
            "DEPRECIATION": 50000,
            "INTEREST_EXPENSE": 100000,
            "NET_INCOME": 150000,
        },
    }
    for period_end, lines in years.items():
        for key, value in lines.items():
            rows.append(_fact("INCOME_STATEMENT", key, value, period_end))

    balance = {
        "CASH_AND_EQUIVALENTS": 250000,
        "TOTAL_CURRENT_ASSETS": 800000,
        "TOTAL_ASSETS": 3000000,
        "SHORT_TERM_DEBT": 200000,
        "LONG_TERM_DEBT": 700000,
        "TOTAL_CURRENT_LIABILITIES": 400000,
        "TOTAL_LIABILITIES": 1000000,
    }
    for key, value in balance.items():
        rows.append(_fact("BALANCE_SHEET", key, value, "2025-12-31"))

    rows.append(_fact("CASH_FLOW", "CAPITAL_EXPENDITURES", 50000, "2025-12-31"))
    return rows


@pytest.fixture
def sample_facts(sample_fact_rows: list[dict[str, Any]]) -> list[Fact]:
    """Parsed sample facts."""
    return parse_facts(sample_fact_rows)


@pytest.fixture
def sample_legacy_documents() -> list[dict[str, Any]]:
    """Legacy spreads agreeing with the FY2025 sample facts.

    The T12 spread uses typed columns (schema v3) with a trailing-twelve
    rollup; the balance sheet uses positional values (schema v1).
    """
    t12_values = {
        "TOTAL_REVENUE": 1000000,
        "COST_OF_GOODS_SOLD": 400000,
        "TOTAL_OPEX": 200000,
        "EBITDA": 450000,
        "NET_INCOME": 150000,
    }
    t12_rows: list[dict[str, Any]] = [
        {"key": "INCOME_HEADER", "label": "Income", "notes": "section_header"}
    ]
    for key, value in t12_values.items():
        t12_rows.append(
            {
                "key": key,
                "label": key.replace("_", " ").title(),
                "values": [{"value_by_col": {"c2025": value, "ttm": value}}],
            }
        )

    balance_values = {
        "CASH_AND_EQUIVALENTS": "250,000",
        "TOTAL_ASSETS": "3,000,000",
        "SHORT_TERM_DEBT": "200,000",
        "LONG_TERM_DEBT": "700,000",
        "TOTAL_LIABILITIES": "1,000,000",
        "TOTAL_EQUITY": "2,000,000",
    }
    return [
        {
            "spread_type": "T12",
            "schema_version": 3,
            "columns_v2": [
                {"key": "c2025", "label": "Dec 2025", "kind": "period", "end_date": "2025-12-31"},
                {"key": "ttm", "label": "TTM", "kind": "ttm"},
            ],
            "rows": t12_rows,
        },
        {
            "spread_type": "BALANCE_SHEET",
            "schema_version": 1,
            "columns": ["Dec 2025"],
            "rows": [
                {"key": key, "label": key.replace("_", " ").title(), "values": [value]}
                for key, value in balance_values.items()
            ],
        },
    ]
