"""Metric graph evaluation, metric registry and risk policy."""

from spreadengine.calc.metric_graph import (
    MetricCycleError,
    MetricGraphError,
    evaluate_formula,
    evaluate_formula_with_diagnostics,
    evaluate_metric_graph,
    evaluate_metric_graph_with_audit,
    evaluate_metric_graph_with_diagnostics,
    operand_references,
    parse_literal,
    topological_sort,
)
from spreadengine.calc.registry import (
    MetricRegistry,
    parse_metric_definitions,
    registry_content_hash,
    seed_metric_definitions,
)
from spreadengine.calc.risk import (
    DEFAULT_RISK_POLICY,
    POLICY_DEFINITIONS_VERSION,
    RiskPolicy,
    RiskResult,
    evaluate_risk,
)

__all__ = [
    "DEFAULT_RISK_POLICY",
    "MetricCycleError",
    "MetricGraphError",
    "MetricRegistry",
    "POLICY_DEFINITIONS_VERSION",
    "RiskPolicy",
    "RiskResult",
    "evaluate_formula",
    "evaluate_formula_with_diagnostics",
    "evaluate_metric_graph",
    "evaluate_metric_graph_with_audit",
    "evaluate_metric_graph_with_diagnostics",
    "evaluate_risk",
    "operand_references",
    "parse_literal",
    "parse_metric_definitions",
    "registry_content_hash",
    "seed_metric_definitions",
    "topological_sort",
]
