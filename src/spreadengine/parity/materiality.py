"""Materiality test shared by the parity comparator and the view-model diff."""

from __future__ import annotations

from decimal import Decimal

MATERIALITY_ABS = Decimal("1")
MATERIALITY_PCT = Decimal("0.0001")

_ONE = Decimal("1")


def is_material(left: Decimal, delta: Decimal) -> bool:
    """Whether a delta is decision relevant.

    Material when ``|delta| > $1`` or ``|delta| / max(1, |left|) > 0.0001``.
    The relative test divides by the baseline floored at 1.

    Args:
        left: Baseline (legacy) value.
        delta: right - left.
    """
    abs_delta = abs(delta)
    if abs_delta > MATERIALITY_ABS:
        return True
    return abs_delta / max(_ONE, abs(left)) > MATERIALITY_PCT
