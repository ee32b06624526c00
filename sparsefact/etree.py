"""Elimination tree, postordering and column counts of a sparse symmetric matrix.

Matrices are square and in CSC form, given as (ptr, rows). The "upper"
form stores, for each column j, rows i <= j; the "lower" form stores rows
i >= j. These routines produce the symbolic information used to build
supernodes.
"""

from __future__ import annotations

from typing import Sequence

from .auxiliary import (
    children_linked_list,
    counts_to_ptr,
    dfs_postorder,
    inverse_perm,
    process_edge,
    transpose,
)


def _size(ptr: Sequence[int]) -> int:
    if len(ptr) < 1:
        raise ValueError("column pointers must hold at least one entry")
    return len(ptr) - 1


def permute_upper(
    ptr: Sequence[int], rows: Sequence[int], iperm: Sequence[int]
) -> tuple[list[int], list[int]]:
    """Symmetric permutation of an upper-stored matrix.

    Entry (i, j) moves to (iperm[i], iperm[j]). Entries below the diagonal
    in the input are ignored; the result is upper triangular. Row indices
    within a column keep the order in which they are met.
    """
    n = _size(ptr)
    if len(iperm) != n:
        raise ValueError(f"permutation has {len(iperm)} entries, matrix has {n} columns")

    counts = [0] * n
    entries: list[tuple[int, int]] = []
    for j in range(n):
        col = iperm[j]
        for i in rows[ptr[j] : ptr[j + 1]]:
            if i > j:
                continue
            row = iperm[i]
            actual_col = max(row, col)
            entries.append((actual_col, min(row, col)))
            counts[actual_col] += 1

    new_ptr = counts_to_ptr(counts)
    work = new_ptr[:-1]
    new_rows = [0] * new_ptr[-1]
    for col, row in entries:
        new_rows[work[col]] = row
        work[col] += 1
    return new_ptr, new_rows


def upper_from_lower(ptr: Sequence[int], rows: Sequence[int]) -> tuple[list[int], list[int]]:
    """Upper-triangular pattern, with sorted columns, of a lower-stored matrix.

    Entries of the input above the diagonal are dropped.
    """
    n = _size(ptr)
    ptr_u, rows_u = transpose(ptr, rows)
    ptr_u, rows_u = permute_upper(ptr_u, rows_u, list(range(n)))
    ptr_l, rows_l = transpose(ptr_u, rows_u)
    return transpose(ptr_l, rows_l)


def adjacency_graph(
    ptr_upper: Sequence[int], rows_upper: Sequence[int]
) -> tuple[list[int], list[int]]:
    """Full symmetric adjacency structure of an upper-stored matrix.

    Diagonal entries are left out, so a vertex is never its own neighbour.
    Returns (ptr, adjacency) in CSC form.
    """
    n = _size(ptr_upper)
    counts = [0] * n
    for j in range(n):
        for i in rows_upper[ptr_upper[j] : ptr_upper[j + 1]]:
            if i == j:
                continue
            counts[j] += 1
            counts[i] += 1

    ptr = counts_to_ptr(counts)
    work = ptr[:-1]
    adjacency = [0] * ptr[-1]
    for j in range(n):
        for i in rows_upper[ptr_upper[j] : ptr_upper[j + 1]]:
            if i == j:
                continue
            adjacency[work[j]] = i
            work[j] += 1
            adjacency[work[i]] = j
            work[i] += 1
    return ptr, adjacency


def elimination_tree(ptr_upper: Sequence[int], rows_upper: Sequence[int]) -> list[int]:
    """Elimination tree of an upper-stored matrix; parent[root] is -1."""
    n = _size(ptr_upper)
    parent = [-1] * n
    ancestor = [-1] * n

    for j in range(n):
        for start in rows_upper[ptr_upper[j] : ptr_upper[j + 1]]:
            i = start
            while i != -1 and i < j:
                nxt = ancestor[i]
                # path compression: j is now a known ancestor of i
                ancestor[i] = j
                if nxt == -1:
                    parent[i] = j
                i = nxt
    return parent


def postorder(parent: Sequence[int]) -> tuple[list[int], list[int]]:
    """Depth-first postorder of a forest.

    Returns (order, new_parent): order[k] is the node placed k-th, and
    new_parent is the forest relabelled in that order.
    """
    n = len(parent)
    head, next_ = children_linked_list(parent)

    order: list[int] = []
    for node in range(n):
        if parent[node] == -1:
            order.extend(dfs_postorder(node, head, next_))

    ipost = inverse_perm(order)
    new_parent = [-1] * n
    for i, p in enumerate(parent):
        new_parent[ipost[i]] = ipost[p] if p != -1 else -1
    return order, new_parent


def column_counts(
    parent: Sequence[int], ptr_lower: Sequence[int], rows_lower: Sequence[int]
) -> tuple[list[int], int, float]:
    """Column counts of the Cholesky factor via the skeleton matrix.

    The matrix (lower-stored) and its elimination tree must be postordered.
    Returns (col_count, nonzeros of the factor, dense operations), where the
    operation count is the sum of (count - 1)^2 over the columns.
    """
    n = _size(ptr_lower)
    if len(parent) != n:
        raise ValueError(f"tree has {len(parent)} nodes, matrix has {n} columns")

    first = [-1] * n
    max_first = [-1] * n
    prev_leaf = [-1] * n
    col_count = [0] * n

    # first descendant of each node; leaves start with a count of one
    for k in range(n):
        j = k
        col_count[j] = 1 if first[j] == -1 else 0
        while j != -1 and first[j] == -1:
            first[j] = k
            j = parent[j]

    ancestor = list(range(n))

    for j in range(n):
        if parent[j] != -1:
            col_count[parent[j]] -= 1
        for i in rows_lower[ptr_lower[j] : ptr_lower[j + 1]]:
            process_edge(j, i, first, max_first, col_count, prev_leaf, ancestor)
        if parent[j] != -1:
            ancestor[j] = parent[j]

    for j in range(n):
        if parent[j] != -1:
            col_count[parent[j]] += col_count[j]

    nz_factor = sum(col_count)
    dense_ops = sum(float(c - 1) * (c - 1) for c in col_count)
    return col_count, nz_factor, dense_ops