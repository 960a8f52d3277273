"""Canonical JSON and SHA-256 hashing for audit records.

Canonicalization rules:
- Mapping keys sorted recursively
- Fields in NON_DETERMINISTIC_FIELDS removed at every nesting level
- Numbers (int, float, Decimal; never bool) rendered as normalized decimal
  strings, so 1000000 and 1000000.00 hash equal
- Dates and datetimes as ISO strings, enums by value
- Pydantic models via model_dump, dataclasses via asdict
- Lists and tuples keep their order; sets are sorted by canonical form
- Compact separators, no whitespace

The digest depends only on content: two structurally equal values hash the
same regardless of key order or object sharing.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Hand-maintained. A timestamp field that is missing here silently breaks
# dedup of otherwise identical snapshots.
NON_DETERMINISTIC_FIELDS = frozenset(
    {
        "generated_at",
        "created_at",
        "updated_at",
        "computed_at",
        "checked_at",
        "finished_at",
    }
)


class CanonicalizationError(TypeError):
    """Raised when a value has no canonical JSON form."""

    pass


def canonical_number(value: int | float | Decimal) -> str:
    """Render a number as a normalized, exponent-free decimal string."""
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    if not number.is_finite():
        return str(number)
    if number == 0:
        return "0"
    return format(number.normalize(), "f")


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Decimal)):
        return canonical_number(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _normalize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {
            str(k): _normalize(v)
            for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))
            if str(k) not in NON_DETERMINISTIC_FIELDS
        }
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [_normalize(item) for item in value]
        return sorted(items, key=_dumps)
    raise CanonicalizationError(f"Cannot canonicalize value of type {type(value).__name__}")


def _dumps(normalized: Any) -> str:
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"))


def canonical_json_for_hash(obj: Any) -> str:
    """Serialize an object to canonical JSON for hashing.

    Args:
        obj: Value to serialize.

    Returns:
        Canonical JSON string.

    Raises:
        CanonicalizationError: If the value contains an unsupported type.
    """
    return _dumps(_normalize(obj))


def compute_sha256(data: str) -> str:
    """Compute SHA256 hash of a string.

    Args:
        data: String to hash.

    Returns:
        Lowercase hexadecimal hash string.
    """
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hash_value(obj: Any) -> str:
    """SHA-256 of the canonical JSON form of ``obj``."""
    return compute_sha256(canonical_json_for_hash(obj))
