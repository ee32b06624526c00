import numpy as np
import pytest

from sparsefact.auxiliary import inverse_perm, transpose
from sparsefact.etree import (
    adjacency_graph,
    column_counts,
    elimination_tree,
    permute_upper,
    postorder,
    upper_from_lower,
)


def _lower_csc(dense):
    n = dense.shape[0]
    ptr, rows = [0], []
    for j in range(n):
        for i in range(j, n):
            if dense[i, j] != 0.0:
                rows.append(i)
        ptr.append(len(rows))
    return ptr, rows


def _pattern_from_upper(ptr, rows, n):
    b = np.zeros((n, n), dtype=bool)
    for j in range(n):
        for i in rows[ptr[j] : ptr[j + 1]]:
            b[i, j] = True
            b[j, i] = True
    return b


def _random_spd(n, density, seed):
    rng = np.random.default_rng(seed)
    mask = rng.random((n, n)) < density
    mask = np.triu(mask, 1)
    vals = rng.uniform(0.5, 1.5, (n, n)) * mask
    a = vals + vals.T
    a += np.diag(np.abs(a).sum(axis=1) + 1.0)
    return a


def _cholesky_pattern(a):
    lfac = np.linalg.cholesky(a)
    return np.abs(lfac) > 1e-12


def _tridiagonal(n):
    a = np.eye(n) * 4.0
    for i in range(n - 1):
        a[i, i + 1] = a[i + 1, i] = -1.0
    return a


MATRICES = [
    _tridiagonal(6),
    _random_spd(10, 0.2, 1),
    _random_spd(15, 0.15, 7),
    _random_spd(20, 0.1, 3),
]


@pytest.mark.parametrize("a", MATRICES)
def test_upper_from_lower_keeps_pattern_sorted(a):
    n = a.shape[0]
    ptr, rows = upper_from_lower(*_lower_csc(a))
    assert len(ptr) == n + 1
    for j in range(n):
        col = rows[ptr[j] : ptr[j + 1]]
        assert col == sorted(col)
        assert all(i <= j for i in col)
    assert np.array_equal(_pattern_from_upper(ptr, rows, n), a != 0.0)


def test_upper_from_lower_drops_entries_above_diagonal():
    # column 1 holds row 0, which lies above the diagonal
    ptr = [0, 2, 4, 5]
    rows = [0, 1, 0, 1, 2]
    up_ptr, up_rows = upper_from_lower(ptr, rows)
    assert up_ptr[-1] == 4
    assert up_rows[up_ptr[1] : up_ptr[2]] == [0, 1]


def test_upper_from_lower_rejects_empty_pointers():
    with pytest.raises(ValueError):
        upper_from_lower([], [])


@pytest.mark.parametrize("a", MATRICES)
def test_adjacency_graph_is_symmetric_without_diagonal(a):
    n = a.shape[0]
    ptr, adj = adjacency_graph(*upper_from_lower(*_lower_csc(a)))
    b = np.zeros((n, n), dtype=bool)
    for j in range(n):
        neighbours = adj[ptr[j] : ptr[j + 1]]
        assert j not in neighbours
        assert len(set(neighbours)) == len(neighbours)
        b[neighbours, j] = True
    expected = (a != 0.0) & ~np.eye(n, dtype=bool)
    assert np.array_equal(b, expected)


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_permute_upper_matches_dense_permutation(seed):
    a = _random_spd(12, 0.2, seed + 10)
    n = a.shape[0]
    ptr, rows = upper_from_lower(*_lower_csc(a))
    perm = list(np.random.default_rng(seed).permutation(n))
    iperm = inverse_perm(perm)
    new_ptr, new_rows = permute_upper(ptr, rows, iperm)
    for j in range(n):
        assert all(i <= j for i in new_rows[new_ptr[j] : new_ptr[j + 1]])
    permuted = a[np.ix_(perm, perm)] != 0.0
    assert np.array_equal(_pattern_from_upper(new_ptr, new_rows, n), permuted)


def test_permute_upper_rejects_wrong_length():
    with pytest.raises(ValueError):
        permute_upper([0, 1, 2], [0, 1], [0])


def test_elimination_tree_of_diagonal_is_all_roots():
    a = np.eye(4)
    assert elimination_tree(*upper_from_lower(*_lower_csc(a))) == [-1, -1, -1, -1]


def test_elimination_tree_of_tridiagonal_is_a_chain():
    parent = elimination_tree(*upper_from_lower(*_lower_csc(_tridiagonal(5))))
    assert parent == [1, 2, 3, 4, -1]


@pytest.mark.parametrize("a", MATRICES)
def test_elimination_tree_matches_cholesky_factor(a):
    n = a.shape[0]
    parent = elimination_tree(*upper_from_lower(*_lower_csc(a)))
    lpat = _cholesky_pattern(a)
    for j in range(n):
        below = [i for i in range(j + 1, n) if lpat[i, j]]
        assert parent[j] == (below[0] if below else -1)


@pytest.mark.parametrize("a", MATRICES)
def test_postorder_relabels_children_before_parents(a):
    n = a.shape[0]
    parent = elimination_tree(*upper_from_lower(*_lower_csc(a)))
    order, new_parent = postorder(parent)
    assert sorted(order) == list(range(n))
    ipost = inverse_perm(order)
    for i, p in enumerate(parent):
        if p == -1:
            assert new_parent[ipost[i]] == -1
        else:
            assert new_parent[ipost[i]] == ipost[p]
            assert new_parent[ipost[i]] > ipost[i]


def test_postorder_keeps_subtrees_contiguous():
    parent = [2, 2, 4, 4, -1, -1]
    order, new_parent = postorder(parent)
    assert order == [0, 1, 2, 3, 4, 5]
    assert new_parent == parent


def _postordered_lower(a):
    ptr_u, rows_u = upper_from_lower(*_lower_csc(a))
    parent = elimination_tree(ptr_u, rows_u)
    order, new_parent = postorder(parent)
    ptr_p, rows_p = permute_upper(ptr_u, rows_u, inverse_perm(order))
    ptr_l, rows_l = transpose(ptr_p, rows_p)
    return order, new_parent, ptr_p, rows_p, ptr_l, rows_l


@pytest.mark.parametrize("a", MATRICES)
def test_postordered_matrix_has_postordered_tree(a):
    _, new_parent, ptr_p, rows_p, _, _ = _postordered_lower(a)
    assert elimination_tree(ptr_p, rows_p) == new_parent


@pytest.mark.parametrize("a", MATRICES)
def test_column_counts_match_cholesky_factor(a):
    order, new_parent, _, _, ptr_l, rows_l = _postordered_lower(a)
    counts, nz, ops = column_counts(new_parent, ptr_l, rows_l)
    lpat = _cholesky_pattern(a[np.ix_(order, order)])
    expected = lpat.sum(axis=0).tolist()
    assert counts == expected
    assert nz == sum(expected)
    assert ops == pytest.approx(sum((c - 1) ** 2 for c in expected))


def test_column_counts_of_diagonal_are_one():
    a = np.eye(3) * 2.0
    _, new_parent, _, _, ptr_l, rows_l = _postordered_lower(a)
    counts, nz, ops = column_counts(new_parent, ptr_l, rows_l)
    assert counts == [1, 1, 1]
    assert nz == 3
    assert ops == 0.0


def test_column_counts_rejects_mismatched_tree():
    with pytest.raises(ValueError):
        column_counts([-1], [0, 1, 2], [0, 1])