import numpy as np
import pytest

from sparsefact.dense_kernel import (
    FactorStats,
    InvalidInputError,
    InvalidPivotError,
    RegularisationSettings,
    block_bunch_kaufman,
    dense_fact_k,
    max_in_col,
    regularise_pivot,
    static_reg,
)

NO_STATIC = RegularisationSettings(0.0, 0.0)


def reconstruct_upper(a, pivot_2x2):
    """Return U^T D U from the upper-format output of the kernel."""
    n = a.shape[0]
    u = np.triu(a, 1) + np.eye(n)
    d = np.zeros((n, n))
    j = 0
    while j < n:
        if pivot_2x2[j] != 0.0:
            inv = np.array([[a[j, j], pivot_2x2[j]], [pivot_2x2[j], a[j + 1, j + 1]]])
            d[j : j + 2, j : j + 2] = np.linalg.inv(inv)
            j += 2
        else:
            d[j, j] = 1.0 / a[j, j]
            j += 1
    return u.T @ d @ u


def test_max_in_col_scans_column_and_row():
    a = np.array([[4.0, 1.0, -7.0], [0.0, 5.0, 2.0], [0.0, 0.0, 6.0]])
    assert max_in_col(0, 3, 1, a) == (2, 2.0)
    assert max_in_col(0, 3, 2, a) == (0, 7.0)
    assert max_in_col(0, 1, 0, a) == (-1, -1.0)


def test_static_reg_uses_sign():
    settings = RegularisationSettings(dual_static_regularisation=1e-8, primal_static_regularisation=1e-6)
    pivot, reg = static_reg(2.0, 1, settings)
    assert pivot == pytest.approx(2.0 + 1e-8)
    assert reg == pytest.approx(1e-8)
    pivot, reg = static_reg(2.0, -1, settings)
    assert pivot == pytest.approx(2.0 - 1e-6)
    assert reg == pytest.approx(-1e-6)


def test_regularise_pivot_leaves_good_pivot():
    stats = FactorStats()
    a = np.array([[2.0]])
    assert regularise_pivot(2.0, 1e-3, [1], a, 0, 1, "L", NO_STATIC, stats) == 2.0
    assert stats.reg_pivots == 0


def test_regularise_pivot_lifts_small_pivot():
    stats = FactorStats()
    a = np.array([[0.0]])
    assert regularise_pivot(0.0, 1e-3, [1], a, 0, 1, "L", NO_STATIC, stats) == 1e-3
    assert stats.reg_pivots == 1


def test_regularise_pivot_wrong_sign():
    a = np.array([[-1e-2]])
    result = regularise_pivot(-1e-2, 1e-3, [1], a, 0, 1, "L", NO_STATIC)
    assert result == pytest.approx(1e-3 * 10)


def test_regularise_pivot_disaster():
    a = np.array([[-1e10]])
    assert regularise_pivot(-1e10, 1e-3, [1], a, 0, 1, "L", NO_STATIC) == 1e100


def test_regularise_pivot_adjusts_to_keep_block_acceptable():
    a = np.array([[0.0, 0.0], [1.0, 0.2]])
    result = regularise_pivot(0.0, 0.1, [1, 1], a, 0, 2, "L", NO_STATIC)
    assert result == pytest.approx(10.0)


def test_lower_factorisation_reconstructs():
    original = np.array([[4.0, 1.0, 0.0], [1.0, 3.0, 1.0], [0.0, 1.0, 2.0]])
    a = original.copy()
    regul = np.zeros(3)
    dense_fact_k("L", 3, a, [1, 1, 1], 1e-12, regul, settings=NO_STATIC)
    low = np.tril(a, -1) + np.eye(3)
    assert np.allclose(low @ np.diag(np.diag(a)) @ low.T, original)
    assert np.all(regul == 0.0)


def test_upper_factorisation_without_pivoting_reconstructs():
    original = np.array([[4.0, 1.0, 0.5], [1.0, 3.0, 1.0], [0.5, 1.0, 2.0]])
    a = original.copy()
    swaps = [0, 0, 0]
    p2 = np.zeros(3)
    stats = dense_fact_k("U", 3, a, [1, 1, 1], 1e-12, np.zeros(3), swaps, p2, NO_STATIC)
    assert swaps == [0, 1, 2]
    assert stats.n_2x2 == 0
    assert np.allclose(reconstruct_upper(a, p2), original)


def test_upper_factorisation_with_pivoting_reconstructs():
    original = np.array(
        [[0.0, 4.0, 1.0, 2.0], [4.0, 0.0, 3.0, 1.0], [1.0, 3.0, 0.0, 5.0], [2.0, 1.0, 5.0, 0.0]]
    )
    a = original.copy()
    swaps = [0] * 4
    p2 = np.zeros(4)
    regul = np.zeros(4)
    sign = [1, -1, 1, -1]
    settings = RegularisationSettings(0.0, 0.0, pivoting=True)
    stats = dense_fact_k("U", 4, a, sign, 1e-12, regul, swaps, p2, settings)
    assert stats.n_2x2 >= 1
    assert sorted(swaps) == [0, 1, 2, 3]
    permuted = original[np.ix_(swaps, swaps)] + np.diag(regul)
    assert np.allclose(reconstruct_upper(a, p2), permuted)


def test_two_by_two_pivot_stores_inverse():
    original = np.array([[0.0, 1.0], [1.0, 0.0]])
    a = original.copy()
    p2 = np.zeros(2)
    settings = RegularisationSettings(0.0, 0.0, pivoting=True)
    stats = dense_fact_k("U", 2, a, [1, -1], 1e-12, np.zeros(2), [0, 0], p2, settings)
    assert stats.n_2x2 == 1
    inv = np.array([[a[0, 0], p2[0]], [p2[0], a[1, 1]]])
    assert np.allclose(inv @ original, np.eye(2))


def test_block_bunch_kaufman_moves_largest_diagonal_first():
    a = np.array([[1.0, 0.1], [0.0, 5.0]])
    swaps = [0, 1]
    sign = [1, 1]
    flag = block_bunch_kaufman(0, 2, a, swaps, sign, 1e-12, np.zeros(2), NO_STATIC)
    assert flag is False
    assert swaps == [1, 0]
    assert a[0, 0] == 5.0
    assert a[1, 1] == 1.0


def test_block_bunch_kaufman_chooses_2x2():
    a = np.array([[0.0, 1.0], [1.0, 0.0]])
    assert block_bunch_kaufman(0, 2, a, [0, 1], [1, -1], 1e-12, np.zeros(2), NO_STATIC) is True


def test_negative_size_is_invalid():
    with pytest.raises(InvalidInputError):
        dense_fact_k("L", -1, np.zeros((1, 1)), [1], 1e-12, [0.0])


def test_missing_matrix_is_invalid():
    with pytest.raises(InvalidInputError):
        dense_fact_k("L", 1, None, [1], 1e-12, [0.0])


def test_upper_requires_swaps_and_pivots():
    with pytest.raises(InvalidInputError):
        dense_fact_k("U", 2, np.eye(2), [1, 1], 1e-12, np.zeros(2))


def test_nan_pivot_raises():
    a = np.array([[np.nan, 0.0], [0.0, 1.0]])
    with pytest.raises(InvalidPivotError):
        dense_fact_k("L", 2, a, [1, 1], 1e-12, np.zeros(2))