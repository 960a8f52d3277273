"""Risk policy evaluation over computed metrics.

Policy thresholds are versioned by content hash, mirroring the metric
registry, so a snapshot can prove which policy produced its flags.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from spreadengine.hashing.canonical import hash_value
from spreadengine.models.snapshot import RiskFlag

POLICY_VERSION_LENGTH = 16


@dataclass(frozen=True)
class RiskPolicy:
    """Underwriting thresholds.

    Attributes:
        min_dscr: DSCR below this raises DSCR_BELOW_MINIMUM.
        critical_dscr: DSCR below this makes the DSCR flag critical.
        max_leverage: Total debt / EBITDA above this raises LEVERAGE_ABOVE_MAXIMUM.
        min_current_ratio: Current ratio below this raises CURRENT_RATIO_BELOW_MINIMUM.
        max_debt_to_equity: Debt / equity above this raises DEBT_TO_EQUITY_ABOVE_MAXIMUM.
    """

    min_dscr: Decimal = Decimal("1.25")
    critical_dscr: Decimal = Decimal("1.00")
    max_leverage: Decimal = Decimal("4.0")
    min_current_ratio: Decimal = Decimal("1.0")
    max_debt_to_equity: Decimal = Decimal("3.0")

    @property
    def version(self) -> str:
        return hash_value(self)[:POLICY_VERSION_LENGTH]


DEFAULT_RISK_POLICY = RiskPolicy()
POLICY_DEFINITIONS_VERSION = DEFAULT_RISK_POLICY.version


@dataclass
class RiskResult:
    """Flags raised for one metric set under one policy."""

    policy_version: str
    flags: list[RiskFlag] = field(default_factory=list)

    @property
    def has_critical(self) -> bool:
        return any(f.severity == "critical" for f in self.flags)


def evaluate_risk(
    computed_metrics: Mapping[str, Decimal | None],
    policy: RiskPolicy | None = None,
) -> RiskResult:
    """Evaluate policy thresholds against computed metrics.

    Null metrics never raise flags; absence of data is not a breach.

    Args:
        computed_metrics: Output of the metric graph (base values included).
        policy: Thresholds; defaults to DEFAULT_RISK_POLICY.

    Returns:
        RiskResult with flags in a fixed rule order.
    """
    policy = policy or DEFAULT_RISK_POLICY
    flags: list[RiskFlag] = []

    dscr = computed_metrics.get("DSCR")
    if dscr is not None and dscr < policy.min_dscr:
        flags.append(
            RiskFlag(
                code="DSCR_BELOW_MINIMUM",
                metric="DSCR",
                value=dscr,
                threshold=policy.min_dscr,
                severity="critical" if dscr < policy.critical_dscr else "warning",
            )
        )

    leverage = computed_metrics.get("LEVERAGE")
    if leverage is not None and leverage > policy.max_leverage:
        flags.append(
            RiskFlag(
                code="LEVERAGE_ABOVE_MAXIMUM",
                metric="LEVERAGE",
                value=leverage,
                threshold=policy.max_leverage,
            )
        )

    current_ratio = computed_metrics.get("CURRENT_RATIO")
    if current_ratio is not None and current_ratio < policy.min_current_ratio:
        flags.append(
            RiskFlag(
                code="CURRENT_RATIO_BELOW_MINIMUM",
                metric="CURRENT_RATIO",
                value=current_ratio,
                threshold=policy.min_current_ratio,
            )
        )

    debt_to_equity = computed_metrics.get("DEBT_TO_EQUITY")
    if debt_to_equity is not None and debt_to_equity > policy.max_debt_to_equity:
        flags.append(
            RiskFlag(
                code="DEBT_TO_EQUITY_ABOVE_MAXIMUM",
                metric="DEBT_TO_EQUITY",
                value=debt_to_equity,
                threshold=policy.max_debt_to_equity,
            )
        )

    equity = computed_metrics.get("EQUITY")
    if equity is not None and equity < 0:
        flags.append(
            RiskFlag(
                code="NEGATIVE_EQUITY",
                metric="EQUITY",
                value=equity,
                threshold=Decimal("0"),
                severity="critical",
            )
        )

    return RiskResult(policy_version=policy.version, flags=flags)
