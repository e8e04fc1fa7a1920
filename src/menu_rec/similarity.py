"""Cosine similarity shared by the content-based and collaborative paths."""

from __future__ import annotations

import math
from typing import Any, Iterable, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatchError


def cosine(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Cosine similarity between two equal-length vectors.

    Returns 0.0 when either vector has zero magnitude (no signal). Sums use
    math.fsum (exactly rounded) and the denominator is sqrt(|a|^2 * |b|^2),
    so cosine(v, v) is exactly 1.0 and argument order never changes the result.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    vec_a = np.asarray(a, dtype=np.float64).ravel()
    vec_b = np.asarray(b, dtype=np.float64).ravel()
    if vec_a.shape[0] != vec_b.shape[0]:
        raise DimensionMismatchError(vec_a.shape[0], vec_b.shape[0])

    sq_a = math.fsum(vec_a * vec_a)
    sq_b = math.fsum(vec_b * vec_b)
    if sq_a == 0.0 or sq_b == 0.0:
        return 0.0

    similarity = math.fsum(vec_a * vec_b) / math.sqrt(sq_a * sq_b)
    return float(np.clip(similarity, -1.0, 1.0))


def rank_by_similarity(
    target: Sequence[float] | np.ndarray,
    candidates: Iterable[Tuple[Any, Sequence[float] | np.ndarray]],
    top_k: int | None = 5,
) -> list[tuple[Any, float]]:
    """
    Score (key, vector) candidates against a target vector.

    Returns (key, similarity) pairs sorted by similarity descending; ties keep
    the candidates' input order.
    """
    scored = [(key, cosine(target, vector)) for key, vector in candidates]
    scored.sort(key=lambda x: -x[1])
    return scored if top_k is None else scored[:top_k]
