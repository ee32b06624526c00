"""Krylov subspace solvers (GMRES and CG) for linear operators."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

import numpy as np

from .log import Log
from .vector_ops import is_nan_vector, norm2


class AbstractMatrix(ABC):
    """A linear operator usable inside a Krylov method."""

    @abstractmethod
    def apply(self, x):
        """Return the operator applied to the vector x."""


def _apply(op: AbstractMatrix, v: np.ndarray) -> np.ndarray:
    return np.asarray(op.apply(v.copy()), dtype=float)


def _precondition(op: AbstractMatrix | None, v: np.ndarray) -> np.ndarray:
    return v if op is None else _apply(op, v)


def apply_rotation(x: float, y: float, c: float, s: float) -> tuple[float, float]:
    """Apply the Givens rotation (c, s) to the pair (x, y)."""
    return c * x + s * y, -s * x + c * y


def get_rotation(x: float, y: float) -> tuple[float, float]:
    """Givens rotation (c, s) that zeroes y when applied to (x, y)."""
    if y == 0.0:
        return 1.0, 0.0
    if abs(y) > abs(x):
        t = x / y
        s = 1.0 / math.sqrt(1.0 + t * t)
        return t * s, s
    t = y / x
    c = 1.0 / math.sqrt(1.0 + t * t)
    return c, t * c


def _update(x: np.ndarray, k: int, h: np.ndarray, s: np.ndarray, basis: list[np.ndarray]) -> np.ndarray:
    """Solve the triangular system H y = s and return x + V y."""
    y = s[: k + 1].copy()
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        for i in reversed(range(k + 1)):
            y[i] /= h[i, i]
            y[:i] -= h[:i, i] * y[i]
        for v, coeff in zip(basis, y):
            x = x + coeff * v
    return x


def gmres(m: AbstractMatrix, p: AbstractMatrix | None, b, x, tol: float, maxit: int):
    """Solve m * x = b with GMRES, left-preconditioned by p (may be None).

    Returns (solution, iterations). The input x is the starting point and is
    not modified.
    """
    b = np.asarray(b, dtype=float)
    x = np.array(x, dtype=float)

    r = _precondition(p, b - _apply(m, x))
    beta = norm2(r)
    if beta <= tol or maxit <= 0:
        return x, 0

    h = np.zeros((maxit + 1, maxit))
    cs = np.zeros(maxit + 1)
    sn = np.zeros(maxit + 1)
    s = np.zeros(maxit + 1)
    s[0] = beta

    basis = [r / beta]
    last = maxit - 1

    for i in range(maxit):
        w = _precondition(p, _apply(m, basis[i]))

        # Gram-Schmidt followed by one re-orthogonalisation pass
        for _ in range(2):
            for k in range(i + 1):
                t = float(np.dot(w, basis[k]))
                h[k, i] += t
                w = w - t * basis[k]
        h_next = norm2(w)
        h[i + 1, i] = h_next
        basis.append(w / h_next if h_next != 0.0 else w)

        for k in range(i):
            h[k, i], h[k + 1, i] = apply_rotation(h[k, i], h[k + 1, i], cs[k], sn[k])

        cs[i], sn[i] = get_rotation(h[i, i], h[i + 1, i])
        h[i, i], h[i + 1, i] = apply_rotation(h[i, i], h[i + 1, i], cs[i], sn[i])
        s[i], s[i + 1] = apply_rotation(s[i], s[i + 1], cs[i], sn[i])

        if abs(s[i + 1]) < tol:
            last = i
            break

    return _update(x, last, h, s, basis[: last + 1]), last + 1


def cg(m: AbstractMatrix, p: AbstractMatrix | None, b, x, tol: float, maxit: int):
    """Solve m * x = b with preconditioned conjugate gradients.

    Returns (solution, iterations). The input x is the starting point and is
    not modified.
    """
    b = np.asarray(b, dtype=float)
    x = np.array(x, dtype=float)

    r = b - _apply(m, x)
    z = _precondition(p, r)
    direction = z.copy()

    rho_old = np.dot(r, z)
    norm_b = norm2(b)

    iterations = 0
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        while iterations < maxit:
            w = _apply(m, direction)
            alpha = np.float64(rho_old) / np.dot(direction, w)
            x = x + alpha * direction
            r = r - alpha * w

            z = _precondition(p, r)
            rho_new = np.dot(r, z)

            if norm2(r) < tol * norm_b:
                break

            direction = z + (rho_new / rho_old) * direction
            rho_old = rho_new
            iterations += 1

            if is_nan_vector(x):
                Log.printe("CG: x is nan at iter %d\n", iterations)
                break

    return x, iterations