"""
Vector similarity scoring.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..core.errors import DimensionMismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between ``a`` and ``b``.

    Returns exactly 0.0 when either vector has zero norm.

    Raises
    ------
    DimensionMismatch
        If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        raise DimensionMismatch(
            f"Vectors must have the same length ({va.size} != {vb.size})"
        )

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))
