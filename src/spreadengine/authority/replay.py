"""Replay a persisted rendering against its original facts.

Replay proves that a stored result is reproducible: the envelope's version
stamps must match the registry and policy in force, and recomputing from
the same facts must reproduce the stored snapshot hash.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from spreadengine.builder.base_values import extract_base_values
from spreadengine.builder.model_builder import ModelBuilderConfig, build_financial_model
from spreadengine.calc.metric_graph import evaluate_metric_graph
from spreadengine.calc.registry import registry_content_hash, seed_metric_definitions
from spreadengine.calc.risk import DEFAULT_RISK_POLICY, RiskPolicy, evaluate_risk
from spreadengine.hashing.snapshot import compute_snapshot_hash, hash_outputs
from spreadengine.models.facts import Fact
from spreadengine.models.metric import MetricDefinition
from spreadengine.models.snapshot import ENGINE_VERSION
from spreadengine.persistence.renderings import RENDERING_SCHEMA_VERSION, RenderingEnvelope

logger = logging.getLogger(__name__)


class ReplayCode(StrEnum):
    """Why a replay was refused."""

    MODEL_SNAPSHOT_LEGACY_VERSION = "MODEL_SNAPSHOT_LEGACY_VERSION"
    MODEL_REGISTRY_VERSION_MISMATCH = "MODEL_REGISTRY_VERSION_MISMATCH"
    MODEL_POLICY_VERSION_MISMATCH = "MODEL_POLICY_VERSION_MISMATCH"


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of a replay.

    Attributes:
        ok: True when versions match and the recomputation ran.
        code: Refusal code when ok is False.
        message: Human readable summary.
        hash_match: Whether the recomputed snapshot hash equals the stored one.
        outputs_match: Whether the recomputed outputs hash equals the stored one.
        expected_hash: Stored snapshot hash.
        actual_hash: Recomputed snapshot hash.
    """

    ok: bool
    code: ReplayCode | None = None
    message: str = ""
    hash_match: bool = False
    outputs_match: bool = False
    expected_hash: str | None = None
    actual_hash: str | None = None


def _refuse(code: ReplayCode, message: str) -> ReplayResult:
    logger.info("Replay refused (%s): %s", code.value, message)
    return ReplayResult(ok=False, code=code, message=message)


def replay_snapshot(
    envelope: RenderingEnvelope | Mapping[str, Any],
    facts: Iterable[Fact],
    metrics: Sequence[MetricDefinition] | None = None,
    *,
    deal_id: str,
    policy: RiskPolicy | None = None,
    builder_config: ModelBuilderConfig | None = None,
) -> ReplayResult:
    """Recompute a stored rendering and check it against its stamps.

    Args:
        envelope: Stored rendering envelope (model or raw mapping).
        facts: The facts the rendering was computed from.
        metrics: Metric definitions in force; the seed definitions when None.
        deal_id: Deal identifier.
        policy: Risk policy in force; DEFAULT_RISK_POLICY when None.
        builder_config: Builder config used for the original computation.

    Returns:
        ReplayResult. Refusals carry a ReplayCode; a completed replay
        reports hash_match.
    """
    env = (
        envelope
        if isinstance(envelope, RenderingEnvelope)
        else RenderingEnvelope.model_validate(dict(envelope))
    )
    definitions = list(metrics) if metrics is not None else seed_metric_definitions()
    policy = policy or DEFAULT_RISK_POLICY

    if env.engine != ENGINE_VERSION or env.schema_version < RENDERING_SCHEMA_VERSION:
        return _refuse(
            ReplayCode.MODEL_SNAPSHOT_LEGACY_VERSION,
            f"envelope engine={env.engine!r} schema_version={env.schema_version} "
            "predates versioned snapshots",
        )

    registry_version = registry_content_hash(definitions)
    if env.registry_version != registry_version:
        return _refuse(
            ReplayCode.MODEL_REGISTRY_VERSION_MISMATCH,
            f"stored registry {env.registry_version!r} != current {registry_version!r}",
        )
    if env.policy_version != policy.version:
        return _refuse(
            ReplayCode.MODEL_POLICY_VERSION_MISMATCH,
            f"stored policy {env.policy_version!r} != current {policy.version!r}",
        )

    fact_list = list(facts)
    model = build_financial_model(deal_id, fact_list, builder_config)
    computed = evaluate_metric_graph(definitions, extract_base_values(model))
    risk = evaluate_risk(computed, policy)
    actual = compute_snapshot_hash(fact_list, model, computed, registry_version, policy.version)
    outputs = hash_outputs(model, computed, risk.flags)

    hash_match = actual == env.snapshot_hash
    if not hash_match:
        logger.warning(
            "Replay hash mismatch for deal %s: stored %s, recomputed %s",
            deal_id,
            env.snapshot_hash,
            actual,
        )
    return ReplayResult(
        ok=True,
        message="replay reproduced stored hash" if hash_match else "replay hash differs",
        hash_match=hash_match,
        outputs_match=outputs == env.outputs_hash,
        expected_hash=env.snapshot_hash,
        actual_hash=actual,
    )
