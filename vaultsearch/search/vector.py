"""Vector math for semantic matching."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from vaultsearch.search.errors import VectorDimensionMismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        VectorDimensionMismatch: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise VectorDimensionMismatch(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)
