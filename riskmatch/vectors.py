"""Cosine similarity and score mapping for embedding vectors."""
from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from riskmatch.errors import DimensionMismatch


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Raises:
        DimensionMismatch: If the vectors differ in length

    Returns 0.0 when either vector has zero norm.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def to_score(similarity: float) -> float:
    """Map cosine similarity onto 0-100.

    Negative values are clamped to 0 (production embeddings are assumed
    non-negative-normalized). Rounding is left to the caller.
    """
    clamped = max(0.0, min(1.0, similarity))
    return clamped * 100.0


def round_score(value: float) -> int:
    """Round half up and clamp to an integer score in [0, 100]."""
    if math.isnan(value):
        return 0
    return int(min(100, max(0, math.floor(value + 0.5))))
