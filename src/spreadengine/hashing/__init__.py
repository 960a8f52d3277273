"""Canonical hashing: deterministic digests of models, metrics and snapshots."""

from spreadengine.hashing.canonical import (
    NON_DETERMINISTIC_FIELDS,
    CanonicalizationError,
    canonical_json_for_hash,
    canonical_number,
    compute_sha256,
    hash_value,
)
from spreadengine.hashing.snapshot import compute_snapshot_hash, hash_outputs

__all__ = [
    "CanonicalizationError",
    "NON_DETERMINISTIC_FIELDS",
    "canonical_json_for_hash",
    "canonical_number",
    "compute_sha256",
    "compute_snapshot_hash",
    "hash_outputs",
    "hash_value",
]
