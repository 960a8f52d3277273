"""Model snapshot record: an immutable, content-addressed computation result."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

ENGINE_VERSION = "model_v2"


class RiskFlag(BaseModel):
    """A policy breach raised by the risk evaluator."""

    code: str = Field(..., description="Stable flag code, e.g. DSCR_BELOW_MINIMUM")
    metric: str = Field(..., description="Metric that breached")
    value: Decimal = Field(..., description="Observed metric value")
    threshold: Decimal = Field(..., description="Policy threshold")
    severity: Literal["warning", "critical"] = Field(default="warning")

    model_config = {"frozen": True, "extra": "forbid"}


class ModelSnapshot(BaseModel):
    """A persisted computation result, unique per (deal_id, outputs_hash)."""

    snapshot_id: str = Field(..., description="UUID of the snapshot")
    deal_id: str = Field(..., description="Deal the snapshot belongs to")
    bank_id: str | None = Field(default=None, description="Owning bank")
    snapshot_hash: str = Field(..., description="Hash of inputs plus outputs plus versions")
    outputs_hash: str = Field(..., description="Hash of outputs alone; dedup key")
    registry_version: str = Field(..., description="Metric registry version id")
    policy_version: str = Field(..., description="Risk policy version id")
    engine_version: str = Field(default=ENGINE_VERSION)
    period_count: int = Field(default=0)
    computed_metrics: dict[str, Decimal | None] = Field(default_factory=dict)
    risk_flags: list[RiskFlag] = Field(default_factory=list)
    dependency_graph: dict[str, list[str]] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to a dictionary of column values."""
        return {
            "snapshot_id": self.snapshot_id,
            "deal_id": self.deal_id,
            "bank_id": self.bank_id,
            "snapshot_hash": self.snapshot_hash,
            "outputs_hash": self.outputs_hash,
            "registry_version": self.registry_version,
            "policy_version": self.policy_version,
            "engine_version": self.engine_version,
            "period_count": self.period_count,
            "computed_metrics": {
                k: (str(v) if v is not None else None) for k, v in self.computed_metrics.items()
            },
            "risk_flags": [f.model_dump(mode="json") for f in self.risk_flags],
            "dependency_graph": self.dependency_graph,
            "created_at": self.created_at,
        }

    model_config = {"frozen": True, "extra": "forbid"}
