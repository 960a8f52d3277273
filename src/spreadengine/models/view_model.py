"""Presentation-neutral spread view model.

Both the model renderer and the legacy renderer adapter produce this shape,
so the two can be diffed cell by cell without knowing where either came
from.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class ViewSource(StrEnum):
    """Which engine produced a view model."""

    MODEL = "model"
    LEGACY = "legacy"


class ColumnKind(StrEnum):
    """Column classification."""

    PERIOD = "period"
    AGGREGATE = "aggregate"


class RowFormat(StrEnum):
    """How a row's values are displayed."""

    CURRENCY = "currency"
    RATIO = "ratio"
    PERCENT = "percent"


class SpreadColumn(BaseModel):
    """A column of the spread, usually one period end."""

    key: str = Field(..., description="Stable column key, e.g. 2024-12-31")
    label: str = Field(..., description="Display label, e.g. Dec 2024")
    kind: ColumnKind = ColumnKind.PERIOD

    model_config = {"frozen": True, "extra": "forbid"}


class SpreadRow(BaseModel):
    """A row of the spread with one value per column."""

    key: str
    label: str
    format: RowFormat = RowFormat.CURRENCY
    value_by_col: dict[str, Decimal | None] = Field(default_factory=dict)
    display_by_col: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": False, "extra": "forbid"}


class SpreadSection(BaseModel):
    """A titled group of rows."""

    key: str
    label: str
    rows: list[SpreadRow] = Field(default_factory=list)

    model_config = {"frozen": False, "extra": "forbid"}


class ViewModelMeta(BaseModel):
    """Shape counters used by health checks and diffs."""

    row_count: int = 0
    section_count: int = 0
    period_count: int = 0
    non_null_cell_count: int = 0

    model_config = {"frozen": False, "extra": "forbid"}


class SpreadViewModel(BaseModel):
    """Renderer output consumed by presentation layers."""

    source: ViewSource
    deal_id: str
    columns: list[SpreadColumn] = Field(default_factory=list)
    sections: list[SpreadSection] = Field(default_factory=list)
    meta: ViewModelMeta = Field(default_factory=ViewModelMeta)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def section(self, key: str) -> SpreadSection | None:
        """Find a section by key."""
        for section in self.sections:
            if section.key == key:
                return section
        return None

    model_config = {"frozen": False, "extra": "forbid"}
