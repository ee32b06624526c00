"""Component-wise vector operations and norms."""

from __future__ import annotations

import math

import numpy as np


def _arr(v) -> np.ndarray:
    return np.asarray(v, dtype=float)


def vector_add(v1, v2, beta: float = 1.0, alpha: float = 1.0) -> np.ndarray:
    """alpha * v1 + beta * v2."""
    return alpha * _arr(v1) + beta * _arr(v2)


def vector_add_scalar(v1, alpha: float) -> np.ndarray:
    """v1 + alpha, component-wise."""
    return _arr(v1) + alpha


def vector_multiply(v1, v2, alpha: float = 1.0, beta: float = 0.0) -> np.ndarray:
    """alpha * v1 * v2 + beta, component-wise."""
    return alpha * _arr(v1) * _arr(v2) + beta


def vector_add_mult(v1, v2, v3, beta: float = 1.0, alpha: float = 1.0) -> np.ndarray:
    """alpha * v1 + beta * v2 * v3, component-wise."""
    return alpha * _arr(v1) + beta * _arr(v2) * _arr(v3)


def vector_divide(v1, v2) -> np.ndarray:
    """v1 / v2, component-wise."""
    return _arr(v1) / _arr(v2)


def vector_scale(v1, alpha: float) -> np.ndarray:
    """v1 * alpha."""
    return _arr(v1) * alpha


def dot_prod(v1, v2) -> float:
    """Scalar product."""
    return float(np.dot(_arr(v1), _arr(v2)))


def norm2(*vectors) -> float:
    """Euclidean norm of the concatenation of the given vectors."""
    total = 0.0
    for v in vectors:
        a = _arr(v)
        total += float(np.dot(a, a))
    return math.sqrt(total)


def inf_norm(*vectors) -> float:
    """Largest absolute entry over all the given vectors; 0 if there is none."""
    return max(
        (float(np.max(np.abs(a))) for a in map(_arr, vectors) if a.size),
        default=0.0,
    )


def inf_norm_diff(x, y) -> float:
    """Infinity norm of x - y."""
    a, b = _arr(x), _arr(y)
    if a.shape != b.shape:
        raise ValueError(f"vectors differ in size: {a.size} and {b.size}")
    if a.size == 0:
        return 0.0
    return float(np.max(np.abs(a - b)))


def is_nan_vector(x) -> bool:
    """True if any entry is NaN."""
    return bool(np.isnan(_arr(x)).any())


def is_inf_vector(x) -> bool:
    """True if any entry is infinite."""
    return bool(np.isinf(_arr(x)).any())