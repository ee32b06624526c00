"""Blocked partial LDL^T factorisation of a frontal matrix in hybrid format.

A frontal matrix with n rows whose first k columns are eliminated is stored
as blocks of nb columns. Block j covers rows nb*j..n-1. In the packed
format (FP) each block is stored column by column; in the hybrid format (FH)
it is stored row by row. The Schur complement of the remaining n-k rows is
added into a second buffer, either in FH or in FP layout.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .auxiliary import get_diag_start
from .blas import daxpy, dgemm, dscal, dtrsm
from .dense_kernel import FactorStats, InvalidInputError, RegularisationSettings, dense_fact_k
from .log import Log

_BLOCK_PARALLEL_THRESHOLD = 5
_BLOCK_GRAIN_SIZE = 10


def _cm_view(buf: np.ndarray, start: int, rows: int, cols: int) -> np.ndarray:
    """View of buf[start:] as a column-major rows x cols matrix with leading dimension rows."""
    return buf[start : start + rows * cols].reshape(cols, rows).T


class DgemmParalleliser:
    """Performs q <- beta * q - p^T r on a range of columns of r and q.

    p is jb x col, r is jb x row and q is col x row.
    """

    def __init__(self, p, r, q, col: int, jb: int) -> None:
        self._p = p[:jb, :col]
        self._r = r
        self._q = q
        self._col = col
        self._jb = jb

    def run(self, start: int, end: int, beta: float) -> None:
        dgemm(
            "T",
            "N",
            -1.0,
            self._p,
            self._r[: self._jb, start:end],
            beta,
            self._q[: self._col, start:end],
        )


def dgemm_parallel(p, r, q, col: int, jb: int, row: int, nb: int, beta: float = 1.0) -> None:
    """q <- beta * q - p^T r, split over the columns of r and q when large enough."""
    if col >= nb // 2 and jb >= nb // 2 and row >= _BLOCK_PARALLEL_THRESHOLD * nb:
        worker = DgemmParalleliser(p, r, q, col, jb)
        grain = max(1, _BLOCK_GRAIN_SIZE * jb)
        ranges = [(s, min(s + grain, row)) for s in range(0, row, grain)]
        with ThreadPoolExecutor() as pool:
            list(pool.map(lambda span: worker.run(span[0], span[1], beta), ranges))
    else:
        dgemm("T", "N", -1.0, p[:jb, :col], r[:jb, :row], beta, q[:col, :row])


def _gemm(par_node, p, r, q, col, jb, row, nb, beta) -> None:
    if par_node:
        dgemm_parallel(p, r, q, col, jb, row, nb, beta)
    else:
        dgemm("T", "N", -1.0, p, r, beta, q)


def _invalid() -> InvalidInputError:
    Log.printe("\ndenseFactH: invalid input\n")
    return InvalidInputError("denseFactH: invalid input")


def _check_buffer(buf, size: float) -> None:
    if not isinstance(buf, np.ndarray) or buf.ndim != 1 or buf.size < size:
        raise _invalid()


def _solve_with_pivots(r: np.ndarray, d: np.ndarray, pivot_2x2: np.ndarray, jb: int) -> None:
    """Scale the rows of r by the inverse 1x1 and 2x2 pivots held in d."""
    col = 0
    while col < jb:
        if pivot_2x2[col] == 0.0:
            dscal(d[col, col], r[col])
            col += 1
        else:
            c1_saved = r[col].copy()
            i_off = float(pivot_2x2[col])
            dscal(d[col, col], r[col])
            daxpy(i_off, r[col + 1], r[col])
            dscal(d[col + 1, col + 1], r[col + 1])
            daxpy(i_off, c1_saved, r[col + 1])
            col += 2


def dense_fact_fh(
    format_,
    n,
    k,
    nb,
    a,
    b,
    pivot_sign,
    thresh,
    regul,
    swaps,
    pivot_2x2,
    par_node=False,
    settings=None,
    stats=None,
) -> FactorStats:
    """Eliminate the first k of n columns of the FH frontal buffer a in place.

    The Schur complement update is added into b, laid out in FP when format_
    is 'P' and in FH otherwise. regul, swaps and pivot_2x2 (length >= k) are
    filled with the regularisation, local pivot order and 2x2 inverse
    off-diagonal entries. Returns the collected statistics.
    """
    settings = settings or RegularisationSettings()
    stats = stats if stats is not None else FactorStats()

    if n < 0 or k < 0 or nb <= 0 or a is None or (k < n and b is None):
        raise _invalid()

    if n == 0 or k == 0:
        return stats

    n_blocks = (k - 1) // nb + 1
    diag_start, frontal_size = get_diag_start(n, k, nb, n_blocks)
    _check_buffer(a, frontal_size)

    ns = n - k
    schur_blocks = [(ns - nb * sb, min(nb, ns - nb * sb)) for sb in range((ns - 1) // nb + 1)] if ns > 0 else []
    if schur_blocks:
        _check_buffer(b, sum(nrow * ncol for nrow, ncol in schur_blocks))

    for j in range(n_blocks):
        jb = min(nb, k - nb * j)
        first = nb * j
        m = n - first - jb
        block = slice(first, first + jb)

        d = _cm_view(a, diag_start[j], jb, jb)
        r = _cm_view(a, diag_start[j] + jb * jb, jb, m)

        regul_cur = np.array(regul[block], dtype=float)
        swaps_cur = np.array(swaps[block], dtype=int)
        pivot_2x2_cur = np.zeros(jb)
        sign_cur = list(pivot_sign[block])

        dense_fact_k("U", jb, d, sign_cur, thresh, regul_cur, swaps_cur, pivot_2x2_cur, settings, stats)

        if settings.pivoting:
            if m > 0:
                r[...] = r[swaps_cur, :]
            unswapped = np.empty_like(regul_cur)
            unswapped[swaps_cur] = regul_cur
            regul_cur = unswapped

        regul[block] = regul_cur.tolist()
        swaps[block] = swaps_cur.tolist()
        pivot_2x2[block] = pivot_2x2_cur.tolist()

        if m <= 0:
            continue

        dtrsm("L", "U", "T", "U", 1.0, d, r)
        t = r.copy()
        _solve_with_pivots(r, d, pivot_2x2_cur, jb)

        offset = 0
        for jj in range(j + 1, n_blocks):
            col_jj = min(nb, k - nb * jj)
            row_jj = n - nb * jj
            q = _cm_view(a, diag_start[jj], col_jj, row_jj)
            _gemm(
                par_node,
                t[:, offset : offset + col_jj],
                r[:, offset : offset + row_jj],
                q,
                col_jj,
                jb,
                row_jj,
                nb,
                1.0,
            )
            offset += col_jj

        b_offset = 0
        for nrow, ncol in schur_blocks:
            p = t[:, offset : offset + ncol]
            rjj = r[:, offset : offset + nrow]
            if format_ == "P":
                buf = np.empty((ncol, nrow))
                _gemm(par_node, p, rjj, buf, ncol, jb, nrow, nb, 0.0)
                _cm_view(b, b_offset, nrow, ncol)[...] += buf.T
            else:
                q = _cm_view(b, b_offset, ncol, nrow)
                _gemm(par_node, p, rjj, q, ncol, jb, nrow, nb, 1.0)
            b_offset += nrow * ncol
            offset += ncol

    return stats


def dense_fact_fp2fh(a: np.ndarray, nrow: int, ncol: int, nb: int) -> np.ndarray:
    """Convert the FP buffer a to FH in place and return it."""
    start = 0
    for kb in range((ncol - 1) // nb + 1 if ncol > 0 else 0):
        block_size = min(nb, ncol - kb * nb)
        row_size = nrow - kb * nb
        size = row_size * block_size
        columns = a[start : start + size].reshape(block_size, row_size)
        a[start : start + size] = np.ascontiguousarray(columns.T).ravel()
        start += size
    return a