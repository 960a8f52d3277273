"""Legacy rendered-spread input and its normalized extraction.

Legacy spreads arrive in two layouts:
    - schema v1: ``columns`` is a list of labels and each row's ``values``
      is positional, one cell per column.
    - schema v3: ``columns_v2`` carries typed columns (key, label, kind,
      end_date) and the first cell of each row holds a ``value_by_col`` map.

Extraction is read-only and never mutates the input.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

AGGREGATE_COLUMN_KINDS = frozenset({"ttm", "ytd", "prior_ytd"})

SECTION_HEADER_NOTE = "section_header"

_AGGREGATE_LABEL_RE = re.compile(r"^(TTM|YTD|PY.YTD)$", re.IGNORECASE)
_MONTH_LABEL_RE = re.compile(
    r"^(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+(\d{4})$"
)
_MONTHS = {
    "Jan": 1, "Feb": 2, "Mar": 3, "Apr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Aug": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dec": 12,
}  # fmt: skip


class RenderedColumn(BaseModel):
    """Typed legacy column (schema v3)."""

    key: str
    label: str
    kind: str = "period"
    end_date: date | None = Field(
        default=None, validation_alias=AliasChoices("end_date", "endDate")
    )

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}


class RenderedRow(BaseModel):
    """Legacy spread row as rendered."""

    key: str
    label: str = ""
    section: str | None = None
    notes: str | None = None
    values: list[Any] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}


class RenderedSpread(BaseModel):
    """A legacy rendered spread document."""

    spread_type: str | None = None
    schema_version: int = 1
    columns: list[str] = Field(default_factory=list)
    columns_v2: list[RenderedColumn] = Field(
        default_factory=list, validation_alias=AliasChoices("columns_v2", "columnsV2")
    )
    rows: list[RenderedRow] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}


@dataclass(frozen=True)
class LegacyPeriodColumn:
    """A legacy column with its inferred period end."""

    key: str
    label: str
    end_date: date | None
    is_aggregate: bool


@dataclass
class LegacyRow:
    """A data row with values keyed by column key."""

    key: str
    label: str
    section: str | None
    value_by_period: dict[str, Decimal | None] = field(default_factory=dict)


@dataclass
class LegacySpreadData:
    """Normalized content of one legacy spread."""

    spread_type: str
    periods: list[LegacyPeriodColumn]
    rows: list[LegacyRow]


def infer_end_date_from_label(label: str) -> date | None:
    """Infer a month-end date from a "Mon YYYY" label, e.g. "Dec 2024"."""
    m = _MONTH_LABEL_RE.match(label.strip())
    if not m:
        return None
    year = int(m.group(2))
    month = _MONTHS[m.group(1)]
    return date(year, month, calendar.monthrange(year, month)[1])


def parse_cell_value(raw: Any) -> Decimal | None:
    """Parse a rendered cell into a Decimal.

    Accepts numbers and display strings such as "1,234", "$1,234.50" or
    "(1,234)" for negatives. Anything else is None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, (int, float)):
        value = Decimal(str(raw))
        return value if value.is_finite() else None
    if not isinstance(raw, str):
        return None

    text = raw.strip().replace(",", "").replace("$", "")
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    if not text or text in ("-", "n/a", "N/A"):
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return -value if negative else value


def _cell_value(row: RenderedRow, column_key: str, columns: list[str]) -> Decimal | None:
    if not row.values:
        return None

    first = row.values[0]
    if isinstance(first, Mapping):
        by_col = first.get("value_by_col", first.get("valueByCol"))
        if isinstance(by_col, Mapping):
            return parse_cell_value(by_col.get(column_key))

    if column_key in columns:
        idx = columns.index(column_key)
        if idx < len(row.values):
            return parse_cell_value(row.values[idx])
    return None


def extract_legacy_spread_data(spread: RenderedSpread) -> LegacySpreadData:
    """Normalize a legacy rendered spread.

    Section header rows are skipped. Columns whose kind (or, for schema v1,
    label) marks a trailing or year-to-date rollup are flagged aggregate.

    Args:
        spread: Rendered legacy spread.

    Returns:
        LegacySpreadData with one value per (row, column).
    """
    periods: list[LegacyPeriodColumn] = []
    if spread.columns_v2:
        for col in spread.columns_v2:
            periods.append(
                LegacyPeriodColumn(
                    key=col.key,
                    label=col.label,
                    end_date=col.end_date,
                    is_aggregate=col.kind.lower() in AGGREGATE_COLUMN_KINDS,
                )
            )
    else:
        for label in spread.columns:
            periods.append(
                LegacyPeriodColumn(
                    key=label,
                    label=label,
                    end_date=infer_end_date_from_label(label),
                    is_aggregate=bool(_AGGREGATE_LABEL_RE.match(label.strip())),
                )
            )

    rows: list[LegacyRow] = []
    for row in spread.rows:
        if row.notes == SECTION_HEADER_NOTE:
            continue
        rows.append(
            LegacyRow(
                key=row.key,
                label=row.label,
                section=row.section,
                value_by_period={
                    p.key: _cell_value(row, p.key, spread.columns) for p in periods
                },
            )
        )

    return LegacySpreadData(
        spread_type=spread.spread_type or "UNKNOWN",
        periods=periods,
        rows=rows,
    )
