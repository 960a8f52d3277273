"""Tests for the metric graph evaluator.

Tests cover:
1. Formula semantics: literals, null propagation, division by zero
2. Dependency ordering and cycle detection
3. Diagnostics and audit variants agree with plain evaluation
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from spreadengine.calc.metric_graph import (
    MetricCycleError,
    MetricGraphError,
    evaluate_formula,
    evaluate_formula_with_diagnostics,
    evaluate_metric_graph,
    evaluate_metric_graph_with_audit,
    evaluate_metric_graph_with_diagnostics,
    operand_references,
    topological_sort,
)
from spreadengine.calc.registry import seed_metric_definitions
from spreadengine.models.metric import (
    DiagnosticCode,
    FormulaNode,
    FormulaOp,
    MetricDefinition,
)


def metric(key: str, op: FormulaOp, left: str, right: str) -> MetricDefinition:
    """Build a metric definition whose dependencies are its operands."""
    return MetricDefinition(
        key=key, depends_on=(left, right), formula=FormulaNode(op=op, left=left, right=right)
    )


def chain(length: int, tail: str) -> list[MetricDefinition]:
    """M0 = M1 + 1, M1 = M2 + 1, ..., with the last metric reading ``tail``."""
    return [
        metric(f"M{i}", FormulaOp.ADD, f"M{i + 1}" if i < length - 1 else tail, "1")
        for i in range(length)
    ]


class TestFormulaEvaluation:
    """Test single-formula semantics."""

    @pytest.mark.parametrize(
        ("op", "expected"),
        [
            (FormulaOp.ADD, Decimal("12")),
            (FormulaOp.SUBTRACT, Decimal("8")),
            (FormulaOp.MULTIPLY, Decimal("20")),
            (FormulaOp.DIVIDE, Decimal("5")),
        ],
    )
    def test_operators(self, op: FormulaOp, expected: Decimal) -> None:
        """Each operator applies to resolved operands."""
        formula = FormulaNode(op=op, left="A", right="B")

        assert evaluate_formula(formula, {"A": Decimal("10"), "B": Decimal("2")}) == expected

    def test_literal_operand(self) -> None:
        """Numeric literals resolve before keys."""
        formula = FormulaNode(op=FormulaOp.MULTIPLY, left="REVENUE", right="0.5")

        assert evaluate_formula(formula, {"REVENUE": Decimal("100")}) == Decimal("50.0")

    def test_null_operand_propagates(self) -> None:
        """A None operand makes the result None, never zero."""
        formula = FormulaNode(op=FormulaOp.ADD, left="A", right="B")

        assert evaluate_formula(formula, {"A": Decimal("1"), "B": None}) is None

    def test_missing_key_propagates(self) -> None:
        """An absent key behaves like None."""
        formula = FormulaNode(op=FormulaOp.SUBTRACT, left="A", right="B")

        result = evaluate_formula_with_diagnostics(formula, {"A": Decimal("1")}, "M")

        assert result.value is None
        assert result.error is not None
        assert result.error.code == DiagnosticCode.MISSING_DEPENDENCY
        assert result.error.operand == "B"
        assert result.error.metric == "M"

    def test_divide_by_zero_is_null(self) -> None:
        """Division by zero yields None with a DIVIDE_BY_ZERO diagnostic."""
        formula = FormulaNode(op=FormulaOp.DIVIDE, left="A", right="B")

        result = evaluate_formula_with_diagnostics(
            formula, {"A": Decimal("5"), "B": Decimal("0")}
        )

        assert result.value is None
        assert result.error is not None
        assert result.error.code == DiagnosticCode.DIVIDE_BY_ZERO

    def test_unknown_operator_cannot_be_constructed(self) -> None:
        """The operator set is closed."""
        with pytest.raises(ValidationError):
            FormulaNode(op="power", left="A", right="B")  # type: ignore[arg-type]

    def test_operand_references_skip_literals(self) -> None:
        """Only key operands are references."""
        formula = FormulaNode(op=FormulaOp.MULTIPLY, left="EBITDA", right="1.25")

        assert operand_references(formula) == ["EBITDA"]


class TestGraphOrdering:
    """Test dependency ordering."""

    def test_dependents_follow_dependencies(self) -> None:
        """A metric defined before its dependency is still evaluated after it."""
        metrics = [
            metric("MARGIN", FormulaOp.DIVIDE, "PROFIT", "REVENUE"),
            metric("PROFIT", FormulaOp.SUBTRACT, "REVENUE", "COST"),
        ]

        ordered = topological_sort(metrics)
        values = evaluate_metric_graph(
            metrics, {"REVENUE": Decimal("200"), "COST": Decimal("50")}
        )

        assert [m.key for m in ordered] == ["PROFIT", "MARGIN"]
        assert values["PROFIT"] == Decimal("150")
        assert values["MARGIN"] == Decimal("0.75")

    def test_two_node_cycle_raises(self) -> None:
        """A <-> B is fatal."""
        metrics = [
            metric("A", FormulaOp.ADD, "B", "1"),
            metric("B", FormulaOp.ADD, "A", "1"),
        ]

        with pytest.raises(MetricCycleError) as exc_info:
            evaluate_metric_graph(metrics, {})

        assert exc_info.value.key == "A"
        assert exc_info.value.cycle == ["A", "B", "A"]

    def test_self_cycle_raises(self) -> None:
        """A metric referencing itself is a cycle."""
        with pytest.raises(MetricCycleError):
            topological_sort([metric("A", FormulaOp.ADD, "A", "1")])

    def test_cycle_raises_in_diagnostics_variant(self) -> None:
        """Diagnostics never downgrade a cycle to a diagnostic."""
        metrics = [
            metric("A", FormulaOp.ADD, "B", "1"),
            metric("B", FormulaOp.ADD, "A", "1"),
        ]

        with pytest.raises(MetricCycleError):
            evaluate_metric_graph_with_diagnostics(metrics, {})

    def test_long_chain_evaluates(self) -> None:
        """A 2,000-metric chain defined head first is ordered and evaluated."""
        metrics = chain(2000, tail="BASE")

        values = evaluate_metric_graph(metrics, {"BASE": Decimal("5")})

        assert [m.key for m in topological_sort(metrics)][:2] == ["M1999", "M1998"]
        assert values["M0"] == Decimal("2005")

    def test_long_cycle_raises_cycle_error(self) -> None:
        """Closing a 2,000-metric chain back on its head is a cycle, whatever its length."""
        metrics = chain(2000, tail="M0")

        with pytest.raises(MetricCycleError) as exc_info:
            evaluate_metric_graph(metrics, {})

        assert exc_info.value.key == "M0"
        assert len(exc_info.value.cycle) == 2001
        assert exc_info.value.cycle[0] == exc_info.value.cycle[-1] == "M0"

    def test_duplicate_key_rejected(self) -> None:
        """Two definitions with one key are a structural error."""
        metrics = [
            metric("A", FormulaOp.ADD, "X", "1"),
            metric("A", FormulaOp.ADD, "X", "2"),
        ]

        with pytest.raises(MetricGraphError):
            topological_sort(metrics)

    def test_null_propagates_through_chain(self) -> None:
        """A null base value nulls every metric downstream of it."""
        metrics = [
            metric("PROFIT", FormulaOp.SUBTRACT, "REVENUE", "COST"),
            metric("MARGIN", FormulaOp.DIVIDE, "PROFIT", "REVENUE"),
        ]

        values = evaluate_metric_graph(metrics, {"REVENUE": Decimal("100"), "COST": None})

        assert values["PROFIT"] is None
        assert values["MARGIN"] is None

    def test_base_values_not_mutated(self) -> None:
        """The caller's base map is copied."""
        base = {"REVENUE": Decimal("100"), "COST": Decimal("40")}

        evaluate_metric_graph([metric("PROFIT", FormulaOp.SUBTRACT, "REVENUE", "COST")], base)

        assert base == {"REVENUE": Decimal("100"), "COST": Decimal("40")}


class TestGraphVariants:
    """Test the diagnostics and audit evaluators."""

    BASE = {
        "REVENUE": Decimal("1000000"),
        "COGS": Decimal("400000"),
        "NET_INCOME": Decimal("150000"),
        "EBITDA": Decimal("450000"),
        "CURRENT_ASSETS": Decimal("800000"),
        "CURRENT_LIABILITIES": Decimal("0"),
        "TOTAL_DEBT": Decimal("900000"),
        "EQUITY": None,
    }

    def test_diagnostics_explain_each_null(self) -> None:
        """One diagnostic per null metric, with the matching code."""
        result = evaluate_metric_graph_with_diagnostics(seed_metric_definitions(), self.BASE)

        by_metric = {d.metric: d for d in result.diagnostics}
        assert result.values["CURRENT_RATIO"] is None
        assert by_metric["CURRENT_RATIO"].code == DiagnosticCode.DIVIDE_BY_ZERO
        assert by_metric["DEBT_TO_EQUITY"].code == DiagnosticCode.MISSING_DEPENDENCY
        assert by_metric["DEBT_TO_EQUITY"].operand == "EQUITY"
        assert "GROSS_MARGIN" not in by_metric

    def test_variants_produce_identical_values(self) -> None:
        """Plain, diagnostics and audit evaluation agree."""
        definitions = seed_metric_definitions()

        plain = evaluate_metric_graph(definitions, self.BASE)
        diagnostics = evaluate_metric_graph_with_diagnostics(definitions, self.BASE)
        audit = evaluate_metric_graph_with_audit(definitions, self.BASE)

        assert diagnostics.values == plain
        assert audit.values == plain

    def test_audit_records_referenced_operands(self) -> None:
        """The dependency graph lists each formula's key operands."""
        audit = evaluate_metric_graph_with_audit(seed_metric_definitions(), self.BASE)

        assert audit.dependency_graph["GROSS_PROFIT"] == ["REVENUE", "COGS"]
        assert audit.dependency_graph["GROSS_MARGIN"] == ["GROSS_PROFIT", "REVENUE"]
        assert list(audit.dependency_graph)[0] == "GROSS_PROFIT"
