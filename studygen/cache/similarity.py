"""Vector similarity helpers (numpy)."""

from collections.abc import Sequence

import numpy as np


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine distance in [0, 2]: 0 identical direction, 1 orthogonal.

    Matches pgvector's ``<=>`` operator. Zero vectors are treated as
    unrelated (distance 1.0).
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} != {vb.shape[0]}")

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 1.0
    return float(1.0 - np.dot(va, vb) / norm)


def to_pgvector(embedding: Sequence[float]) -> str:
    """Encode a vector as a pgvector text literal: ``[0.1,0.2,...]``."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"
