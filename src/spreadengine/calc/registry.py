"""Metric definition registry with content-addressed versioning.

The registry version is derived from the definitions themselves, so two
processes holding the same definitions always agree on the version id, and
any edit to a formula produces a new one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from spreadengine.calc.metric_graph import MetricGraphError
from spreadengine.hashing.canonical import hash_value
from spreadengine.models.metric import (
    DiagnosticCode,
    FormulaNode,
    FormulaOp,
    MetricDefinition,
    MetricDiagnostic,
)

logger = logging.getLogger(__name__)

REGISTRY_VERSION_LENGTH = 16


def _ratio(
    key: str, left: str, right: str, description: str, unit: str = "ratio"
) -> MetricDefinition:
    return MetricDefinition(
        key=key,
        depends_on=(left, right),
        formula=FormulaNode(op=FormulaOp.DIVIDE, left=left, right=right),
        description=description,
        unit=unit,
    )


def seed_metric_definitions() -> list[MetricDefinition]:
    """Return the v1 seed definitions.

    A fresh list is built on every call; callers may not share or mutate a
    module-level registry.
    """
    return [
        MetricDefinition(
            key="GROSS_PROFIT",
            depends_on=("REVENUE", "COGS"),
            formula=FormulaNode(op=FormulaOp.SUBTRACT, left="REVENUE", right="COGS"),
            description="Revenue less cost of goods sold",
            unit="currency",
        ),
        _ratio("GROSS_MARGIN", "GROSS_PROFIT", "REVENUE", "Gross profit / revenue", "percent"),
        _ratio("NET_MARGIN", "NET_INCOME", "REVENUE", "Net income / revenue", "percent"),
        _ratio("EBITDA_MARGIN", "EBITDA", "REVENUE", "EBITDA / revenue", "percent"),
        _ratio(
            "CURRENT_RATIO",
            "CURRENT_ASSETS",
            "CURRENT_LIABILITIES",
            "Current assets / current liabilities",
        ),
        _ratio("DEBT_TO_EQUITY", "TOTAL_DEBT", "EQUITY", "Total debt / equity"),
        _ratio("LEVERAGE", "TOTAL_DEBT", "EBITDA", "Total debt / EBITDA"),
        _ratio("DSCR", "CFADS", "DEBT_SERVICE", "Cash flow available / debt service"),
        _ratio("ROA", "NET_INCOME", "TOTAL_ASSETS", "Net income / total assets", "percent"),
    ]


def registry_content_hash(metrics: Iterable[MetricDefinition]) -> str:
    """Version id of a set of definitions: leading hex of their canonical hash.

    Definition order does not affect the result.
    """
    ordered = sorted(metrics, key=lambda m: m.key)
    return hash_value(ordered)[:REGISTRY_VERSION_LENGTH]


@dataclass(frozen=True)
class MetricRegistry:
    """Immutable set of metric definitions plus their version id."""

    definitions: tuple[MetricDefinition, ...]

    @classmethod
    def seed(cls) -> MetricRegistry:
        """Registry over the v1 seed definitions."""
        return cls(definitions=tuple(seed_metric_definitions()))

    @property
    def version(self) -> str:
        return registry_content_hash(self.definitions)

    def get(self, key: str) -> MetricDefinition | None:
        for definition in self.definitions:
            if definition.key == key:
                return definition
        return None

    def keys(self) -> list[str]:
        return [d.key for d in self.definitions]


def _first(row: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in row:
            return row[name]
    return None


def parse_metric_definitions(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[list[MetricDefinition], list[MetricDiagnostic]]:
    """Parse stored definition rows into MetricDefinitions.

    Rows with an operator outside the closed operator set are skipped and
    reported as INVALID_OP diagnostics. Any other malformed row is a
    structural error.

    Args:
        rows: Mappings with ``key``, ``depends_on`` (or ``dependsOn``) and a
            ``formula`` holding ``op`` (or ``type``), ``left`` and ``right``.

    Returns:
        Tuple of (definitions, diagnostics).

    Raises:
        MetricGraphError: If a row is malformed for a reason other than its
            operator.
    """
    valid_ops = {op.value for op in FormulaOp}
    definitions: list[MetricDefinition] = []
    diagnostics: list[MetricDiagnostic] = []

    for row in rows:
        key = row.get("key")
        formula = row.get("formula")
        if not isinstance(formula, Mapping):
            raise MetricGraphError(f"Metric definition {key!r} has no formula")

        op = _first(formula, "op", "type")
        if op not in valid_ops:
            diagnostics.append(
                MetricDiagnostic(
                    code=DiagnosticCode.INVALID_OP,
                    metric=str(key) if key is not None else None,
                    operand=None,
                    message=f"Invalid operator {op!r} in metric definition {key!r}",
                )
            )
            logger.warning("Skipping metric definition %r: invalid operator %r", key, op)
            continue

        depends_on: Sequence[str] = _first(row, "depends_on", "dependsOn") or ()
        try:
            definitions.append(
                MetricDefinition(
                    key=key,
                    depends_on=tuple(depends_on),
                    formula=FormulaNode(
                        op=op, left=formula.get("left"), right=formula.get("right")
                    ),
                    version=row.get("version") or "v1",
                    description=row.get("description"),
                    unit=row.get("unit"),
                )
            )
        except ValidationError as e:
            raise MetricGraphError(f"Invalid metric definition {key!r}: {e}") from e

    return definitions, diagnostics
