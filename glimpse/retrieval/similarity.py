"""
Vector similarity helpers for Glimpse.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from glimpse.core.errors import DimensionMismatchError

MILLIS_PER_HOUR = 60 * 60 * 1000


def as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    """Coerce to a 1D float64 array."""
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim != 1:
        raise ValueError(f"Expected a 1D vector, got shape {vector.shape}")
    return vector


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 if either vector has zero norm

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = as_vector(a)
    vb = as_vector(b)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.shape[0], vb.shape[0])

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``matrix``.

    Rows (or a query) with zero norm score 0.0.
    """
    if matrix.shape[1] != query.shape[0]:
        raise DimensionMismatchError(query.shape[0], matrix.shape[1])

    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    if query_norm == 0:
        return np.zeros(matrix.shape[0])

    denominators = row_norms * query_norm
    dots = matrix @ query
    similarities = np.divide(
        dots, denominators, out=np.zeros_like(dots), where=denominators != 0
    )
    return np.clip(similarities, -1.0, 1.0)


def age_hours(capture_time: int, now: int) -> float:
    """Age in hours between two millisecond timestamps (never negative)."""
    return max(0.0, (now - capture_time) / MILLIS_PER_HOUR)


def rank_score(similarity: float, hours_old: float, recency_weight: float) -> float:
    """Recency-penalized score: similarity minus ``recency_weight`` per hour of age."""
    return similarity - recency_weight * hours_old
