"""Extracted financial facts, the raw input of the model builder.

A fact is one numeric value pulled from a source document (an income
statement line, a balance sheet total, a tax return field). Facts arrive
from the extraction layer with loose typing; this module coerces them into
a strict, Decimal-valued shape.

Malformed values and dates are not rejected here. They are coerced to None
so that the builder can filter them as input defects without aborting.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class FactType(StrEnum):
    """Statement families a fact can belong to."""

    INCOME_STATEMENT = "INCOME_STATEMENT"
    BALANCE_SHEET = "BALANCE_SHEET"
    T12 = "T12"
    CASH_FLOW = "CASH_FLOW"
    TAX_RETURN = "TAX_RETURN"
    EXTRACTION_HEARTBEAT = "EXTRACTION_HEARTBEAT"


def _coerce_decimal(v: object) -> Decimal | None:
    """Coerce a loosely typed numeric to a finite Decimal, or None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, Decimal):
        result = v
    elif isinstance(v, (int, float, str)):
        text = str(v).strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def _coerce_date(v: object) -> date | None:
    """Coerce an ISO date (or datetime) to a date, or None when unparseable."""
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        text = v.strip()
        if len(text) < 10:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


class Fact(BaseModel):
    """A single extracted financial fact.

    Accepts both the builder's field names and the extraction layer's column
    names (``fact_value_num``, ``fact_period_end``).
    """

    fact_type: str = Field(..., description="Statement family (see FactType)")
    fact_key: str = Field(..., description="Line item key, e.g. TOTAL_REVENUE")
    value: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("value", "fact_value_num"),
        description="Numeric value; None when missing or unparseable",
    )
    period_end: date | None = Field(
        default=None,
        validation_alias=AliasChoices("period_end", "fact_period_end"),
        description="Period end date; None when missing or unparseable",
    )
    confidence: Decimal | None = Field(
        default=None, description="Extraction confidence in [0, 1], if known"
    )

    @field_validator("value", "confidence", mode="before")
    @classmethod
    def coerce_numeric(cls, v: object) -> Decimal | None:
        """Coerce numeric inputs to Decimal."""
        return _coerce_decimal(v)

    @field_validator("period_end", mode="before")
    @classmethod
    def coerce_period_end(cls, v: object) -> date | None:
        """Coerce period end to a date."""
        return _coerce_date(v)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "fact_type": self.fact_type,
            "fact_key": self.fact_key,
            "value": str(self.value) if self.value is not None else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "confidence": str(self.confidence) if self.confidence is not None else None,
        }

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}
