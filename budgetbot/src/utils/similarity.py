"""Vector similarity helpers."""

from __future__ import annotations

import math
from collections.abc import Sequence


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of *a* and *b*, clamped to ``[-1, 1]``.

    Returns ``0.0`` when either vector has zero norm.

    Raises
    ------
    ValueError
        If the vectors differ in length.
    """
    if len(a) != len(b):
        raise ValueError(f"Dimension mismatch: {len(a)} vs {len(b)}")

    dot = math.fsum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(math.fsum(x * x for x in a))
    norm_b = math.sqrt(math.fsum(y * y for y in b))

    denominator = norm_a * norm_b
    if denominator == 0.0:
        return 0.0
    return max(-1.0, min(1.0, dot / denominator))
