"""spreadengine domain models: pydantic types shared across components."""

from spreadengine.models.facts import Fact, FactType
from spreadengine.models.financial_model import (
    BalanceSheet,
    CashFlow,
    FinancialModel,
    FinancialPeriod,
    IncomeStatement,
    PeriodType,
    QualityFlag,
    StatementKind,
)
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
from spreadengine.models.parity import (
    CategoryThresholds,
    FlagSeverity,
    FlagType,
    GateVerdict,
    HeadlineDiff,
    MetricCategory,
    MetricDiff,
    ParityFlag,
    ParityReport,
    ParitySummary,
    ParityThresholds,
    PassFail,
    PeriodAlignment,
    PeriodComparison,
    Severity,
)
from spreadengine.models.snapshot import ENGINE_VERSION, ModelSnapshot, RiskFlag
from spreadengine.models.view_model import (
    ColumnKind,
    RowFormat,
    SpreadColumn,
    SpreadRow,
    SpreadSection,
    SpreadViewModel,
    ViewModelMeta,
    ViewSource,
)

__all__ = [
    "BalanceSheet",
    "CashFlow",
    "CategoryThresholds",
    "ColumnKind",
    "DiagnosticCode",
    "ENGINE_VERSION",
    "Fact",
    "FactType",
    "FinancialModel",
    "FinancialPeriod",
    "FlagSeverity",
    "FlagType",
    "FormulaNode",
    "FormulaOp",
    "FormulaResult",
    "GateVerdict",
    "HeadlineDiff",
    "IncomeStatement",
    "MetricCategory",
    "MetricDefinition",
    "MetricDiagnostic",
    "MetricDiff",
    "MetricGraphAudit",
    "MetricGraphDiagnostics",
    "ModelSnapshot",
    "ParityFlag",
    "ParityReport",
    "ParitySummary",
    "ParityThresholds",
    "PassFail",
    "PeriodAlignment",
    "PeriodComparison",
    "PeriodType",
    "QualityFlag",
    "RiskFlag",
    "RowFormat",
    "Severity",
    "SpreadColumn",
    "SpreadRow",
    "SpreadSection",
    "SpreadViewModel",
    "StatementKind",
    "ViewModelMeta",
    "ViewSource",
]
