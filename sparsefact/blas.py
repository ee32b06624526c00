"""Dense linear-algebra primitives with BLAS semantics on numpy arrays.

Matrices are 2-D arrays indexed [row, column]. Any strided view may be
passed, so a row or a sub-block of a larger buffer can be updated in place.
Output arguments are modified in place and also returned. Character flags
follow the BLAS convention: trans 'N' means no transpose and anything else
means transpose; uplo 'U' means upper and anything else lower; diag 'N'
means non-unit and anything else unit; side 'L' means left and anything
else right.
"""

from __future__ import annotations

import numpy as np


def _op(a, trans: str) -> np.ndarray:
    a = np.asarray(a, dtype=float)
    return a if trans == "N" else a.T


def _solve_triangular(a, uplo: str, trans: str, diag: str, rhs) -> np.ndarray:
    """Solve op(A) X = rhs with A triangular; rhs is a vector or a matrix of columns."""
    x = np.array(rhs, dtype=float)
    n = x.shape[0]
    t = np.asarray(a, dtype=float)[:n, :n]
    upper = uplo == "U"
    if trans != "N":
        t = t.T
        upper = not upper
    unit = diag != "N"

    order = reversed(range(n)) if upper else range(n)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        for i in order:
            if upper:
                x[i] = x[i] - t[i, i + 1 : n] @ x[i + 1 : n]
            else:
                x[i] = x[i] - t[i, :i] @ x[:i]
            if not unit:
                x[i] = x[i] / t[i, i]
    return x


def _unpack_triangle(ap, n: int, upper: bool) -> np.ndarray:
    """Expand a column-major packed triangle into a full n x n matrix."""
    ap = np.asarray(ap, dtype=float)
    needed = n * (n + 1) // 2
    if ap.size < needed:
        raise ValueError(f"packed triangle needs {needed} entries, got {ap.size}")
    full = np.zeros((n, n))
    pos = 0
    for j in range(n):
        lo, hi = (0, j + 1) if upper else (j, n)
        full[lo:hi, j] = ap[pos : pos + hi - lo]
        pos += hi - lo
    return full


# level 1


def daxpy(alpha: float, x, y: np.ndarray) -> np.ndarray:
    """y <- alpha * x + y."""
    y += alpha * np.asarray(x, dtype=float)
    return y


def dcopy(x, y: np.ndarray) -> np.ndarray:
    """y <- x."""
    y[...] = np.asarray(x, dtype=float)
    return y


def dscal(alpha: float, x: np.ndarray) -> np.ndarray:
    """x <- alpha * x."""
    x *= alpha
    return x


def dswap(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Exchange the contents of x and y."""
    saved = np.array(x, dtype=float)
    x[...] = y
    y[...] = saved
    return x, y


# level 2


def dgemv(trans: str, alpha: float, a, x, beta: float, y: np.ndarray) -> np.ndarray:
    """y <- alpha * op(A) x + beta * y; y is not read when beta is zero."""
    product = alpha * (_op(a, trans) @ np.asarray(x, dtype=float))
    if beta == 0.0:
        y[...] = product
    else:
        y[...] = beta * y + product
    return y


def dtpsv(uplo: str, trans: str, diag: str, ap, x: np.ndarray) -> np.ndarray:
    """x <- op(A)^-1 x, with A triangular and packed by columns."""
    n = x.shape[0]
    full = _unpack_triangle(ap, n, uplo == "U")
    x[...] = _solve_triangular(full, uplo, trans, diag, x)
    return x


def dtrsv(uplo: str, trans: str, diag: str, a, x: np.ndarray) -> np.ndarray:
    """x <- op(A)^-1 x, with A triangular."""
    x[...] = _solve_triangular(a, uplo, trans, diag, x)
    return x


def dger(alpha: float, x, y, a: np.ndarray) -> np.ndarray:
    """A <- alpha * x y^T + A."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    a[: x.size, : y.size] += alpha * np.outer(x, y)
    return a


# level 3


def dgemm(transa: str, transb: str, alpha: float, a, b, beta: float, c: np.ndarray) -> np.ndarray:
    """C <- alpha * op(A) op(B) + beta * C; C is not read when beta is zero."""
    product = alpha * (_op(a, transa) @ _op(b, transb))
    if beta == 0.0:
        c[...] = product
    else:
        c[...] = beta * c + product
    return c


def dsyrk(uplo: str, trans: str, alpha: float, a, beta: float, c: np.ndarray) -> np.ndarray:
    """Triangle uplo of C <- alpha * A A^T + beta * C (A^T A when trans is not 'N')."""
    a = np.asarray(a, dtype=float)
    product = a @ a.T if trans == "N" else a.T @ a
    n = product.shape[0]
    rows, cols = np.triu_indices(n) if uplo == "U" else np.tril_indices(n)
    if beta == 0.0:
        c[rows, cols] = alpha * product[rows, cols]
    else:
        c[rows, cols] = alpha * product[rows, cols] + beta * c[rows, cols]
    return c


def dtrsm(side: str, uplo: str, trans: str, diag: str, alpha: float, a, b: np.ndarray) -> np.ndarray:
    """B <- alpha * op(A)^-1 B (side 'L') or alpha * B op(A)^-1 (otherwise)."""
    rhs = alpha * np.asarray(b, dtype=float)
    if side == "L":
        b[...] = _solve_triangular(a, uplo, trans, diag, rhs)
    else:
        flipped = "T" if trans == "N" else "N"
        b[...] = _solve_triangular(a, uplo, flipped, diag, rhs.T).T
    return b