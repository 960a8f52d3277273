"""Snapshot and output digests built on canonical hashing."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from spreadengine.hashing.canonical import canonical_json_for_hash, hash_value
from spreadengine.models.facts import Fact
from spreadengine.models.financial_model import FinancialModel
from spreadengine.models.snapshot import RiskFlag


def _sorted_facts(facts: Iterable[Fact]) -> list[Fact]:
    # Fact order carries no meaning; sort so the digest does not depend on it.
    return sorted(facts, key=canonical_json_for_hash)


def compute_snapshot_hash(
    facts: Iterable[Fact],
    model: FinancialModel,
    metrics: Mapping[str, Decimal | None],
    registry_version: str,
    policy_version: str,
) -> str:
    """Digest of everything that determined a computation.

    Args:
        facts: Input facts, in any order.
        model: Built financial model.
        metrics: Computed metric values.
        registry_version: Metric registry version id.
        policy_version: Risk policy version id.

    Returns:
        SHA-256 hex digest.
    """
    return hash_value(
        {
            "facts": _sorted_facts(facts),
            "model": model,
            "metrics": dict(metrics),
            "policy_version": policy_version,
            "registry_version": registry_version,
        }
    )


def hash_outputs(
    model: FinancialModel,
    computed_metrics: Mapping[str, Decimal | None],
    risk_flags: Sequence[RiskFlag] = (),
) -> str:
    """Digest of the computed outputs alone; the snapshot dedup key."""
    return hash_value(
        {
            "computed_metrics": dict(computed_metrics),
            "model": model,
            "risk_flags": list(risk_flags),
        }
    )
