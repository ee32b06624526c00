"""Dense LDL^T factorisation kernel with regularisation and Bunch-Kaufman pivoting.

Matrices are 2-D numpy arrays; entry (i, j) is a[i, j]. The kernel works in
place on the leading n x n block.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .auxiliary import Clock
from .log import Log


class InvalidInputError(ValueError):
    """The arguments given to the factorisation kernel are not usable."""


class InvalidPivotError(ArithmeticError):
    """A pivot is NaN."""


@dataclass(frozen=True)
class RegularisationSettings:
    """Constants controlling pivot regularisation and pivoting."""

    dual_static_regularisation: float = 0.0
    primal_static_regularisation: float = 0.0
    alpha_bk: float = (1.0 + math.sqrt(17.0)) / 8.0
    pivoting: bool = False


@dataclass
class FactorStats:
    """Counters collected while factorising."""

    reg_pivots: int = 0
    n_2x2: int = 0
    wrong_sign: int = 0
    max_wrong_sign: float = 0.0
    max_reg: float = 0.0
    pivoting_time: float = 0.0


def _record_wrong_sign(stats: FactorStats, pivot: float) -> None:
    stats.wrong_sign += 1
    stats.max_wrong_sign = max(stats.max_wrong_sign, abs(float(pivot)))


def _record_reg(stats: FactorStats, reg: float) -> None:
    stats.max_reg = max(stats.max_reg, abs(float(reg)))


def _div(num: float, den: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return float(np.float64(num) / np.float64(den))


def _swap_symmetric(a: np.ndarray, n: int, i: int, j: int, swaps, sign) -> None:
    """Symmetrically swap rows/columns i and j of an upper-stored matrix."""
    if i == j:
        return
    if i > j:
        i, j = j, i
    a[i, i], a[j, j] = a[j, j], a[i, i]

    tmp = a[:i, i].copy()
    a[:i, i] = a[:i, j]
    a[:i, j] = tmp

    tmp = a[i, j + 1 : n].copy()
    a[i, j + 1 : n] = a[j, j + 1 : n]
    a[j, j + 1 : n] = tmp

    tmp = a[i, i + 1 : j].copy()
    a[i, i + 1 : j] = a[i + 1 : j, j]
    a[i + 1 : j, j] = tmp

    swaps[i], swaps[j] = swaps[j], swaps[i]
    sign[i], sign[j] = sign[j], sign[i]


def max_in_col(j: int, n: int, m: int, a: np.ndarray) -> tuple[int, float]:
    """Largest absolute entry in row/column m of an upper-stored symmetric
    matrix, ignoring rows 0..j-1 and the diagonal.

    Returns (index, value); (-1, -1.0) if there is no such entry.
    """
    candidates = [(row, a[row, m]) for row in range(j, m)]
    candidates += [(col, a[m, col]) for col in range(m + 1, n)]
    best, maxval = -1, -1.0
    for index, value in candidates:
        val = abs(float(value))
        if val > maxval:
            best, maxval = index, val
    return best, maxval


def static_reg(pivot: float, sign: int, settings: RegularisationSettings) -> tuple[float, float]:
    """Apply static regularisation; returns (new pivot, regularisation added)."""
    if sign > 0:
        new_pivot = pivot + settings.dual_static_regularisation
    else:
        new_pivot = pivot - settings.primal_static_regularisation
    return new_pivot, new_pivot - pivot


def _static_reg_in_place(a, j, sign, regul, settings) -> None:
    a[j, j], regul[j] = static_reg(float(a[j, j]), sign[j], settings)


def block_bunch_kaufman(j, n, a, swaps, sign, thresh, regul, settings=None, stats=None) -> bool:
    """Choose the pivot at position j of an upper-stored block.

    May swap rows/columns (updating swaps and sign) and regularise pivots
    (recorded in regul). Returns True when a 2x2 pivot must be used.
    """
    settings = settings or RegularisationSettings()
    stats = stats if stats is not None else FactorStats()
    clock = Clock()
    flag_2x2 = False
    dual = settings.dual_static_regularisation
    primal = settings.primal_static_regularisation
    alpha = settings.alpha_bk

    diag = np.abs(np.diagonal(a)[j:n].astype(float))
    diag = np.where(np.isnan(diag), -np.inf, diag)
    ind_max_diag = j + int(np.argmax(diag))
    _swap_symmetric(a, n, j, ind_max_diag, swaps, sign)

    r, gamma_j = max_in_col(j, n, j, a)
    ajj = a[j, j] + dual if sign[j] > 0 else a[j, j] - primal

    if max(abs(ajj), gamma_j) <= thresh or sign[j] * ajj < 0 or j == n - 1:
        old_pivot = float(a[j, j])
        _static_reg_in_place(a, j, sign, regul, settings)
        if sign[j] * a[j, j] < 0:
            _record_wrong_sign(stats, a[j, j])
        if max(abs(ajj), gamma_j) < thresh:
            a[j, j] = sign[j] * thresh
            stats.reg_pivots += 1
        regul[j] = float(a[j, j]) - old_pivot
        _record_reg(stats, regul[j])
    else:
        _, gamma_r = max_in_col(j, n, r, a)
        arr = a[r, r] + dual if sign[r] > 0 else a[r, r] - primal

        if abs(ajj) >= alpha * gamma_j or abs(ajj) * gamma_r >= alpha * gamma_j * gamma_j:
            _static_reg_in_place(a, j, sign, regul, settings)
            if sign[j] * a[j, j] < 0:
                _record_wrong_sign(stats, a[j, j])
        elif abs(arr) >= alpha * gamma_r:
            _swap_symmetric(a, n, j, r, swaps, sign)
            _static_reg_in_place(a, j, sign, regul, settings)
            if sign[j] * a[j, j] < 0:
                _record_wrong_sign(stats, a[j, j])
        else:
            _swap_symmetric(a, n, j + 1, r, swaps, sign)
            flag_2x2 = True
            _static_reg_in_place(a, j, sign, regul, settings)
            _static_reg_in_place(a, j + 1, sign, regul, settings)
            if sign[j] * a[j, j] < 0:
                _record_wrong_sign(stats, a[j, j])
            if sign[j + 1] * a[j + 1, j + 1] < 0:
                _record_wrong_sign(stats, a[j + 1, j + 1])

    stats.pivoting_time += clock.stop()
    return flag_2x2


def regularise_pivot(pivot, thresh, sign, a, j, n, uplo, settings=None, stats=None) -> float:
    """Return the pivot at position j after static and dynamic regularisation."""
    settings = settings or RegularisationSettings()
    stats = stats if stats is not None else FactorStats()

    if sign[j] == 1:
        pivot += settings.dual_static_regularisation
    else:
        pivot -= settings.primal_static_regularisation
    pivot = float(pivot)

    s = float(sign[j])
    spivot = s * pivot
    big = 1e12

    adjust = False
    modified = False

    if -thresh <= spivot <= thresh:
        pivot = s * thresh
        adjust = modified = True
    elif -thresh * big <= spivot < -thresh:
        pivot = s * thresh * 10
        adjust = modified = True
    elif spivot < -thresh * big:
        pivot = s * 1e100
        modified = True

    if adjust:
        # smallest pivot keeping the rest of the block's diagonal acceptable:
        # d_k - b_k^2 / p >= thresh
        required = pivot
        for k in range(j + 1, n):
            bk = float(a[k, j] if uplo == "L" else a[j, k])
            dk = float(a[k, k])
            sk = float(sign[k])
            if s * sk < 0:
                continue
            temp = _div(bk * bk, dk - sk * thresh)
            if s > 0:
                required = min(max(required, temp), 1e100)
            else:
                required = max(min(required, temp), -1e100)

        if required != pivot:
            modified = True
            pivot = max(pivot, required) if s > 0 else min(pivot, required)

    if modified:
        stats.reg_pivots += 1
    return pivot


def dense_fact_k(
    uplo,
    n,
    a,
    pivot_sign,
    thresh,
    regul,
    swaps=None,
    pivot_2x2=None,
    settings=None,
    stats=None,
) -> FactorStats:
    """Factorise the leading n x n block of a in place as L D L^T.

    With uplo 'L' the lower triangle holds L and the diagonal D. Otherwise the
    upper triangle holds L^T, the diagonal holds the inverse pivots, swaps the
    pivot order and pivot_2x2 the off-diagonal entry of each 2x2 inverse.
    Returns the collected statistics.
    """
    settings = settings or RegularisationSettings()
    stats = stats if stats is not None else FactorStats()

    if (
        n < 0
        or not isinstance(a, np.ndarray)
        or a.ndim != 2
        or a.shape[0] < n
        or a.shape[1] < n
    ):
        Log.printe("\ndenseFactK: invalid input\n")
        raise InvalidInputError("denseFactK: invalid input")

    if n == 0:
        return stats

    clock = Clock()
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if uplo == "L":
            _factor_lower(n, a, pivot_sign, thresh, regul, settings, stats)
        else:
            if swaps is None or pivot_2x2 is None:
                Log.printe("\ndenseFactK: invalid input\n")
                raise InvalidInputError("denseFactK: invalid input")
            _factor_upper(n, a, pivot_sign, thresh, regul, swaps, pivot_2x2, settings, stats)
    stats.pivoting_time += 0.0
    del clock
    return stats


def _check_pivot(*values) -> None:
    if any(math.isnan(float(v)) for v in values):
        text = " ".join(f"{float(v):e}" for v in values)
        Log.printe("\ndenseFactK: invalid pivot %s\n", text)
        raise InvalidPivotError(f"denseFactK: invalid pivot {text}")


def _factor_lower(n, a, pivot_sign, thresh, regul, settings, stats) -> None:
    for j in range(n):
        ajj = a[j, j]
        _check_pivot(ajj)

        old_pivot = float(ajj)
        ajj = np.float64(
            regularise_pivot(ajj, thresh, pivot_sign, a, j, n, "L", settings, stats)
        )
        regul[j] = float(ajj) - old_pivot
        _record_reg(stats, regul[j])
        a[j, j] = ajj

        if n - j - 1 > 0:
            temp = a[j + 1 : n, j].copy()
            a[j + 1 : n, j] *= 1.0 / ajj
            a[j + 1 : n, j + 1 : n] -= np.outer(temp, a[j + 1 : n, j])


def _factor_upper(n, a, pivot_sign, thresh, regul, swaps, pivot_2x2, settings, stats) -> None:
    for i in range(n):
        swaps[i] = i

    j = 0
    while j < n:
        flag_2x2 = False
        if settings.pivoting:
            flag_2x2 = block_bunch_kaufman(
                j, n, a, swaps, pivot_sign, thresh, regul, settings, stats
            )

        if not flag_2x2:
            ajj = a[j, j]
            _check_pivot(ajj)

            if not settings.pivoting:
                old_pivot = float(ajj)
                ajj = np.float64(
                    regularise_pivot(ajj, thresh, pivot_sign, a, j, n, "U", settings, stats)
                )
                regul[j] = float(ajj) - old_pivot
                _record_reg(stats, regul[j])

            a[j, j] = 1.0 / ajj

            if n - j - 1 > 0:
                temp = a[j, j + 1 : n].copy()
                a[j, j + 1 : n] *= 1.0 / ajj
                a[j + 1 : n, j + 1 : n] -= np.outer(temp, a[j, j + 1 : n])
            j += 1
        else:
            d1 = a[j, j]
            d2 = a[j + 1, j + 1]
            _check_pivot(d1, d2)

            offd = a[j, j + 1]
            a[j, j + 1] = 0.0

            denom = d1 * d2 - offd * offd
            i_d1 = d2 / denom
            i_d2 = d1 / denom
            i_off = -offd / denom

            a[j, j] = i_d1
            a[j + 1, j + 1] = i_d2
            pivot_2x2[j] = float(i_off)

            if n - j - 2 > 0:
                temp = a[j, j + 2 : n].copy()
                temp2 = a[j + 1, j + 2 : n].copy()
                a[j, j + 2 : n] = i_d1 * temp + i_off * temp2
                a[j + 1, j + 2 : n] = i_d2 * temp2 + i_off * temp
                a[j + 2 : n, j + 2 : n] -= np.outer(temp, a[j, j + 2 : n])
                a[j + 2 : n, j + 2 : n] -= np.outer(temp2, a[j + 1, j + 2 : n])

            stats.n_2x2 += 1
            j += 2