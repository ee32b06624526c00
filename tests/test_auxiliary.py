import random

import numpy as np
import pytest

from sparsefact.auxiliary import (
    Clock,
    children_linked_list,
    counts_to_ptr,
    dfs_postorder,
    get_diag_start,
    inverse_perm,
    permute_vector,
    permute_vector_inverse,
    process_edge,
    reverse_linked_list,
    subtree_size,
    sym_product,
    sym_product_quad,
    transpose,
    write_vector,
)

# Lower triangle of a 4x4 symmetric matrix in CSC format.
PTR = [0, 3, 5, 6, 7]
ROWS = [0, 1, 3, 1, 2, 2, 3]
VALS = [4.0, -1.0, 2.0, 5.0, 0.5, 3.0, 6.0]

# A postordered forest: 0,1 -> 2 ; 2 -> 4 ; 3 -> 4 ; 5 root alone
PARENT = [2, 2, 4, 4, -1, -1]


def _dense(ptr, rows, vals):
    n = len(ptr) - 1
    m = np.zeros((n, n))
    for j in range(n):
        for el in range(ptr[j], ptr[j + 1]):
            m[rows[el], j] = vals[el]
    return m


def test_counts_to_ptr_invariants():
    counts = [2, 0, 3, 1]
    ptr = counts_to_ptr(counts)
    assert ptr[0] == 0
    assert len(ptr) == len(counts) + 1
    assert [b - a for a, b in zip(ptr, ptr[1:])] == counts
    assert ptr[-1] == sum(counts)


def test_inverse_perm_round_trip():
    perm = list(range(10))
    random.Random(3).shuffle(perm)
    iperm = inverse_perm(perm)
    assert [perm[iperm[i]] for i in range(10)] == list(range(10))
    assert inverse_perm(iperm) == perm


def test_subtree_size():
    sizes = subtree_size(PARENT)
    assert sizes[4] == 5
    assert sizes[5] == 1
    assert sizes[2] == sizes[0] + sizes[1] + 1


def test_transpose_matches_dense():
    ptr_t, rows_t, vals_t = transpose(PTR, ROWS, VALS)
    np.testing.assert_array_equal(_dense(ptr_t, rows_t, vals_t), _dense(PTR, ROWS, VALS).T)


def test_double_transpose_restores_pattern():
    ptr_t, rows_t = transpose(PTR, ROWS)
    ptr_back, rows_back = transpose(ptr_t, rows_t)
    assert ptr_back == PTR
    assert rows_back == ROWS


def test_sym_product_matches_dense():
    lower = _dense(PTR, ROWS, VALS)
    full = lower + lower.T - np.diag(np.diag(lower))
    x = [1.0, -2.0, 0.5, 3.0]
    y = [0.25, 1.0, -1.0, 2.0]
    result = sym_product(PTR, ROWS, VALS, x, y, 2.0)
    np.testing.assert_allclose(result, np.array(y) + 2.0 * full @ np.array(x))


def test_sym_product_does_not_modify_input():
    y = [1.0, 1.0, 1.0, 1.0]
    sym_product(PTR, ROWS, VALS, [1.0] * 4, y)
    assert y == [1.0, 1.0, 1.0, 1.0]


def test_sym_product_quad_agrees_with_plain():
    x = [1.0, -2.0, 0.5, 3.0]
    y = [0.25, 1.0, -1.0, 2.0]
    np.testing.assert_allclose(
        sym_product_quad(PTR, ROWS, VALS, x, y, 1.5),
        sym_product(PTR, ROWS, VALS, x, y, 1.5),
    )


def test_sym_product_quad_avoids_cancellation():
    ptr = [0, 2, 2]
    rows = [0, 1]
    vals = [1e16, -1e16]
    x = [1.0, 1.0]
    y = [1.0, 0.0]
    assert sym_product(ptr, rows, vals, x, y, 1.0)[0] == 0.0
    assert sym_product_quad(ptr, rows, vals, x, y, 1.0)[0] == 1.0


def _children(head, next_, node):
    out = []
    c = head[node]
    while c != -1:
        out.append(c)
        c = next_[c]
    return out


def test_children_linked_list():
    head, next_ = children_linked_list(PARENT)
    for node in range(len(PARENT)):
        expected = [i for i, p in enumerate(PARENT) if p == node]
        assert _children(head, next_, node) == expected


def test_reverse_linked_list():
    head, next_ = children_linked_list(PARENT)
    rhead, rnext = reverse_linked_list(head, next_)
    for node in range(len(PARENT)):
        assert _children(rhead, rnext, node) == _children(head, next_, node)[::-1]
    assert _children(head, next_, 4) == [2, 3]


def test_dfs_postorder_children_before_parent():
    head, next_ = children_linked_list(PARENT)
    order = dfs_postorder(4, head, next_)
    assert len(order) == subtree_size(PARENT)[4]
    assert order[-1] == 4
    pos = {node: i for i, node in enumerate(order)}
    for node in order:
        if PARENT[node] in pos:
            assert pos[node] < pos[PARENT[node]]


def test_process_edge_skips_upper_entries():
    first, maxfirst, delta = [0, 1], [-1, -1], [1, 1]
    prevleaf, ancestor = [-1, -1], [0, 1]
    process_edge(1, 0, first, maxfirst, delta, prevleaf, ancestor)
    assert delta == [1, 1]
    assert maxfirst == [-1, -1]


def test_process_edge_first_leaf():
    first, maxfirst, delta = [0, 1], [-1, -1], [1, 1]
    prevleaf, ancestor = [-1, -1], [0, 1]
    process_edge(0, 1, first, maxfirst, delta, prevleaf, ancestor)
    assert delta[0] == 2
    assert maxfirst[1] == first[0]
    assert prevleaf[1] == 0


def test_get_diag_start_single_block():
    start, total = get_diag_start(7, 3, 3, 1)
    assert start == [0]
    assert total == 7 * 3


def test_get_diag_start_block_differences():
    n, k, nb, n_blocks = 10, 8, 3, 3
    start, _ = get_diag_start(n, k, nb, n_blocks)
    for i in range(1, n_blocks):
        assert start[i] - start[i - 1] == nb * (n - (i - 1) * nb)


def test_get_diag_start_triangular_unit_blocks():
    n = 6
    _, total = get_diag_start(n, n, 1, n, triang=True)
    assert total == n * (n + 1) / 2


def test_permute_vector_round_trip():
    v = ["a", "b", "c", "d", "e"]
    perm = [3, 0, 4, 1, 2]
    permuted = permute_vector(v, perm)
    assert permuted[0] == v[perm[0]]
    assert permute_vector_inverse(permuted, perm) == v


def test_write_vector(tmp_path):
    v = [0.1, 1.0 / 3.0, -2.5e-7]
    path = write_vector(v, tmp_path / "vec")
    assert path.name == "vec.txt"
    assert [float(line) for line in path.read_text().splitlines()] == pytest.approx(v, rel=1e-15)


def test_clock_is_monotonic():
    clock = Clock()
    a = clock.stop()
    b = clock.stop()
    assert 0.0 <= a <= b
    clock.start()
    assert clock.stop() <= b + 1.0