"""
Vector math for embedding retrieval.

Embeddings travel as ``list[float]`` (that is what the models and the
database hold) and are computed on as float64 numpy arrays.
"""

from typing import Optional, Sequence

import numpy as np
from loguru import logger

from shared.errors import DimensionMismatch

Vector = list[float]


def as_array(v: Sequence[float]) -> np.ndarray:
    return np.asarray(v, dtype=np.float64)


def _check_lengths(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[-1] != b.shape[-1]:
        raise DimensionMismatch(a.shape[-1], b.shape[-1])


def norm(v: Sequence[float]) -> float:
    """Euclidean norm."""
    return float(np.linalg.norm(as_array(v)))


def normalize(v: Sequence[float]) -> Vector:
    """Scale ``v`` to unit length. A zero vector maps to itself."""
    a = as_array(v)
    length = np.linalg.norm(a)
    if length == 0:
        return np.zeros_like(a).tolist()
    return (a / length).tolist()


def weighted_combine(a: Sequence[float], b: Sequence[float], w_a: float, w_b: float) -> Vector:
    """
    Compute ``w_a*a + w_b*b`` elementwise and normalize the result.

    Weights need not sum to 1; normalization keeps the output on the unit
    hypersphere. Raises DimensionMismatch when lengths differ.
    """
    x, y = as_array(a), as_array(b)
    _check_lengths(x, y)
    return normalize(w_a * x + w_b * y)


def average_vectors(
    vectors: Sequence[Sequence[float]],
    warnings: Optional[list[str]] = None,
) -> Optional[Vector]:
    """
    Normalized elementwise mean of ``vectors``.

    The first vector fixes the expected length; vectors of any other length
    are skipped and reported (logged, and appended to ``warnings`` when a list
    is supplied). Returns None for empty or all-mismatched input.
    """
    if not vectors:
        return None

    expected = len(vectors[0])
    kept = []
    for index, vector in enumerate(vectors):
        if len(vector) != expected:
            message = (
                f"Skipping embedding #{index} with mismatched length. "
                f"Expected {expected}, got {len(vector)}"
            )
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
            continue
        kept.append(vector)

    if not kept or expected == 0:
        return None
    return normalize(np.mean(np.array(kept, dtype=np.float64), axis=0))


def l2_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance. Raises DimensionMismatch when lengths differ."""
    x, y = as_array(a), as_array(b)
    _check_lengths(x, y)
    return float(np.linalg.norm(x - y))


def stack_vectors(vectors: Sequence[Sequence[float]], dimensions: int) -> np.ndarray:
    """One row per vector. Any row of another length raises DimensionMismatch."""
    for vector in vectors:
        if len(vector) != dimensions:
            raise DimensionMismatch(dimensions, len(vector))
    return np.array(vectors, dtype=np.float64).reshape(len(vectors), dimensions)


def l2_distances(matrix: np.ndarray, query: Sequence[float]) -> np.ndarray:
    """Euclidean distance from every row of ``matrix`` to ``query``."""
    q = as_array(query)
    _check_lengths(matrix, q)
    return np.linalg.norm(matrix - q, axis=1)
