"""Metric definitions and evaluation results for the metric graph.

Formula operators form a closed set. An unknown operator cannot be
represented: constructing a FormulaNode with one raises a pydantic
ValidationError.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class FormulaOp(StrEnum):
    """Binary operators supported by metric formulas."""

    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


class FormulaNode(BaseModel):
    """A binary formula; each operand is a numeric literal or a value key."""

    op: FormulaOp = Field(..., description="Operator")
    left: str = Field(..., min_length=1, description="Left operand: literal or key")
    right: str = Field(..., min_length=1, description="Right operand: literal or key")

    model_config = {"frozen": True, "extra": "forbid"}


class MetricDefinition(BaseModel):
    """Declarative definition of a derived metric."""

    key: str = Field(..., min_length=1, description="Unique metric key")
    depends_on: tuple[str, ...] = Field(
        default_factory=tuple, description="Keys this metric reads"
    )
    formula: FormulaNode = Field(..., description="Formula producing the metric")
    version: str = Field(default="v1", description="Definition version")
    description: str | None = Field(default=None, description="Human readable meaning")
    unit: str | None = Field(default=None, description="ratio, currency, percent")

    model_config = {"frozen": True, "extra": "forbid"}


class DiagnosticCode(StrEnum):
    """Reasons a formula produced no value."""

    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    DIVIDE_BY_ZERO = "DIVIDE_BY_ZERO"
    INVALID_OP = "INVALID_OP"


class MetricDiagnostic(BaseModel):
    """Explains why a metric evaluated to None."""

    code: DiagnosticCode
    metric: str | None = Field(default=None, description="Metric being evaluated")
    operand: str | None = Field(default=None, description="Offending operand, if any")
    message: str

    model_config = {"frozen": True, "extra": "forbid"}


class FormulaResult(BaseModel):
    """Single formula evaluation; ``error`` is set whenever ``value`` is None."""

    value: Decimal | None = None
    error: MetricDiagnostic | None = None

    model_config = {"frozen": False, "extra": "forbid"}


class MetricGraphDiagnostics(BaseModel):
    """Graph evaluation values plus every diagnostic raised along the way."""

    values: dict[str, Decimal | None] = Field(default_factory=dict)
    diagnostics: list[MetricDiagnostic] = Field(default_factory=list)

    model_config = {"frozen": False, "extra": "forbid"}


class MetricGraphAudit(BaseModel):
    """Graph evaluation values plus the realized dependency graph.

    ``dependency_graph`` maps each metric key to the operand keys its formula
    actually referenced (literals excluded), in evaluation order.
    """

    values: dict[str, Decimal | None] = Field(default_factory=dict)
    dependency_graph: dict[str, list[str]] = Field(default_factory=dict)

    model_config = {"frozen": False, "extra": "forbid"}
