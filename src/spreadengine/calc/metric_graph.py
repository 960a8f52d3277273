"""Metric graph evaluator: dependency ordering and null-propagating formulas.

Semantics:
    - Operands resolve as a numeric literal first, then as a key in the
      value map.
    - Any null or missing operand makes the formula null; never zero.
    - Division by zero yields null; never infinity, never an exception.
    - A dependency cycle is fatal and raises MetricCycleError.

The plain, diagnostics and audit evaluators share one evaluation loop so
that their values cannot diverge.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from spreadengine.models.metric import (
    DiagnosticCode,
    FormulaNode,
    FormulaOp,
    FormulaResult,
    MetricDefinition,
    MetricDiagnostic,
    MetricGraphAudit,
    MetricGraphDiagnostics,
)

logger = logging.getLogger(__name__)

ValueMap = Mapping[str, Decimal | None]


class MetricGraphError(Exception):
    """Raised when a metric graph is structurally invalid."""

    pass


class MetricCycleError(MetricGraphError):
    """Raised when metric definitions form a dependency cycle.

    Attributes:
        key: Metric at which the cycle was detected.
        cycle: Keys along the cycle, starting and ending with ``key``.
    """

    def __init__(self, key: str, cycle: Sequence[str]) -> None:
        self.key = key
        self.cycle = list(cycle)
        path = " -> ".join(self.cycle)
        super().__init__(f"Cycle detected at metric '{key}': {path}")


def parse_literal(operand: str) -> Decimal | None:
    """Parse an operand as a finite numeric literal, or return None."""
    try:
        value = Decimal(operand)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def operand_references(formula: FormulaNode) -> list[str]:
    """Return the non-literal operands of a formula, left then right."""
    refs: list[str] = []
    for operand in (formula.left, formula.right):
        if parse_literal(operand) is None and operand not in refs:
            refs.append(operand)
    return refs


def _metric_edges(metric: MetricDefinition, metric_keys: set[str]) -> list[str]:
    edges: list[str] = []
    for dep in (*metric.depends_on, *operand_references(metric.formula)):
        if dep in metric_keys and dep not in edges:
            edges.append(dep)
    return edges


def topological_sort(metrics: Sequence[MetricDefinition]) -> list[MetricDefinition]:
    """Order metrics so every metric follows the metrics it depends on.

    Dependencies are the declared ``depends_on`` keys plus formula operands
    that name another metric; keys that are not metrics are base values.
    Ties keep input order.

    Args:
        metrics: Metric definitions.

    Returns:
        Definitions in dependency order.

    Raises:
        MetricGraphError: If two definitions share a key.
        MetricCycleError: If the definitions contain a cycle.
    """
    by_key: dict[str, MetricDefinition] = {}
    for metric in metrics:
        if metric.key in by_key:
            raise MetricGraphError(f"Duplicate metric key: {metric.key}")
        by_key[metric.key] = metric

    metric_keys = set(by_key)
    ordered: list[MetricDefinition] = []
    done: set[str] = set()

    for metric in metrics:
        if metric.key in done:
            continue
        path: list[str] = [metric.key]
        on_path: set[str] = {metric.key}
        stack: list[Iterator[str]] = [iter(_metric_edges(metric, metric_keys))]
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                key = path.pop()
                on_path.discard(key)
                done.add(key)
                ordered.append(by_key[key])
                continue
            if dep in done:
                continue
            if dep in on_path:
                start = path.index(dep)
                raise MetricCycleError(dep, [*path[start:], dep])
            path.append(dep)
            on_path.add(dep)
            stack.append(iter(_metric_edges(by_key[dep], metric_keys)))

    return ordered


@dataclass(frozen=True)
class _Operand:
    value: Decimal | None
    missing: str | None


def _resolve(operand: str, values: ValueMap) -> _Operand:
    literal = parse_literal(operand)
    if literal is not None:
        return _Operand(literal, None)
    value = values.get(operand)
    if value is None:
        return _Operand(None, operand)
    return _Operand(value, None)


def evaluate_formula_with_diagnostics(
    formula: FormulaNode,
    values: ValueMap,
    metric_key: str | None = None,
) -> FormulaResult:
    """Evaluate one formula, explaining a null result.

    Args:
        formula: Formula to evaluate.
        values: Current value map.
        metric_key: Metric being evaluated, used in diagnostics.

    Returns:
        FormulaResult whose ``error`` is set when ``value`` is None.
    """
    label = metric_key or "<formula>"

    left = _resolve(formula.left, values)
    right = _resolve(formula.right, values)
    for operand in (left, right):
        if operand.missing is not None:
            return FormulaResult(
                value=None,
                error=MetricDiagnostic(
                    code=DiagnosticCode.MISSING_DEPENDENCY,
                    metric=metric_key,
                    operand=operand.missing,
                    message=f"Missing dependency '{operand.missing}' for metric '{label}'",
                ),
            )

    a = left.value
    b = right.value
    assert a is not None and b is not None

    match formula.op:
        case FormulaOp.ADD:
            return FormulaResult(value=a + b)
        case FormulaOp.SUBTRACT:
            return FormulaResult(value=a - b)
        case FormulaOp.MULTIPLY:
            return FormulaResult(value=a * b)
        case FormulaOp.DIVIDE:
            if b == 0:
                return FormulaResult(
                    value=None,
                    error=MetricDiagnostic(
                        code=DiagnosticCode.DIVIDE_BY_ZERO,
                        metric=metric_key,
                        operand=formula.right,
                        message=f"Division by zero in metric '{label}' ({formula.right} is 0)",
                    ),
                )
            return FormulaResult(value=a / b)
        case _:
            return FormulaResult(
                value=None,
                error=MetricDiagnostic(
                    code=DiagnosticCode.INVALID_OP,
                    metric=metric_key,
                    operand=None,
                    message=f"Invalid operator '{formula.op}' in metric '{label}'",
                ),
            )


def evaluate_formula(formula: FormulaNode, values: ValueMap) -> Decimal | None:
    """Evaluate one formula; None on any missing operand or division by zero."""
    return evaluate_formula_with_diagnostics(formula, values).value


def _run_graph(
    metrics: Sequence[MetricDefinition],
    base_values: ValueMap,
) -> tuple[dict[str, Decimal | None], list[tuple[MetricDefinition, FormulaResult]]]:
    """Shared evaluation loop for every graph evaluator."""
    ordered = topological_sort(metrics)
    values: dict[str, Decimal | None] = dict(base_values)
    results: list[tuple[MetricDefinition, FormulaResult]] = []
    for metric in ordered:
        result = evaluate_formula_with_diagnostics(metric.formula, values, metric.key)
        values[metric.key] = result.value
        results.append((metric, result))
    return values, results


def evaluate_metric_graph(
    metrics: Sequence[MetricDefinition],
    base_values: ValueMap,
) -> dict[str, Decimal | None]:
    """Evaluate all metrics in dependency order.

    Args:
        metrics: Metric definitions.
        base_values: Base values; copied, never mutated.

    Returns:
        Base values plus one entry per metric key.

    Raises:
        MetricCycleError: If the definitions contain a cycle.
    """
    values, _ = _run_graph(metrics, base_values)
    return values


def evaluate_metric_graph_with_diagnostics(
    metrics: Sequence[MetricDefinition],
    base_values: ValueMap,
) -> MetricGraphDiagnostics:
    """Evaluate all metrics and collect one diagnostic per null metric.

    Raises:
        MetricCycleError: If the definitions contain a cycle.
    """
    values, results = _run_graph(metrics, base_values)
    diagnostics = [result.error for _, result in results if result.error is not None]
    if diagnostics:
        logger.debug("Metric graph produced %d diagnostics", len(diagnostics))
    return MetricGraphDiagnostics(values=values, diagnostics=diagnostics)


def evaluate_metric_graph_with_audit(
    metrics: Sequence[MetricDefinition],
    base_values: ValueMap,
) -> MetricGraphAudit:
    """Evaluate all metrics and record the operand keys each one read.

    Values are identical to evaluate_metric_graph for the same inputs.

    Raises:
        MetricCycleError: If the definitions contain a cycle.
    """
    values, results = _run_graph(metrics, base_values)
    dependency_graph = {
        metric.key: operand_references(metric.formula) for metric, _ in results
    }
    return MetricGraphAudit(values=values, dependency_graph=dependency_graph)
