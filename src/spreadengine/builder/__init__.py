"""Model builder: facts to normalized per-period financial model."""

from spreadengine.builder.base_values import BASE_VALUE_KEYS, extract_base_values
from spreadengine.builder.model_builder import (
    FACT_KEY_MAP,
    RELEVANT_FACT_TYPES,
    DuplicatePeriodError,
    ModelBuilderConfig,
    build_financial_model,
    check_unique_periods,
)

__all__ = [
    "BASE_VALUE_KEYS",
    "DuplicatePeriodError",
    "FACT_KEY_MAP",
    "ModelBuilderConfig",
    "RELEVANT_FACT_TYPES",
    "build_financial_model",
    "check_unique_periods",
    "extract_base_values",
]
