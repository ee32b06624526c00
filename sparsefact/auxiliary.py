"""Sparse-matrix and elimination-tree helpers shared by the factorisation."""

from __future__ import annotations

import time
from fractions import Fraction
from pathlib import Path
from typing import Sequence, TypeVar

T = TypeVar("T")


def counts_to_ptr(counts: Sequence[int]) -> list[int]:
    """Turn per-column counts into CSC column pointers of length n+1."""
    ptr = [0]
    for c in counts:
        ptr.append(ptr[-1] + c)
    return ptr


def inverse_perm(perm: Sequence[int]) -> list[int]:
    """Return iperm such that iperm[perm[i]] == i."""
    iperm = [0] * len(perm)
    for i, p in enumerate(perm):
        iperm[p] = i
    return iperm


def subtree_size(parent: Sequence[int]) -> list[int]:
    """Sizes of the subtrees of a postordered tree given by its parent array."""
    sizes = [1] * len(parent)
    for i, k in enumerate(parent):
        if k != -1:
            sizes[k] += sizes[i]
    return sizes


def transpose(ptr: Sequence[int], rows: Sequence[int], vals: Sequence[float] | None = None):
    """Transpose a square CSC matrix.

    Returns (ptrT, rowsT) or, when values are given, (ptrT, rowsT, valsT).
    Row indices of the result are sorted within each column.
    """
    n = len(ptr) - 1
    nz = ptr[-1]
    counts = [0] * n
    for r in rows[:nz]:
        counts[r] += 1
    ptr_t = counts_to_ptr(counts)
    work = ptr_t[:-1]
    rows_t = [0] * nz
    vals_t = [0.0] * nz if vals is not None else None

    for j, (lo, hi) in enumerate(zip(ptr, ptr[1:])):
        for el in range(lo, hi):
            i = rows[el]
            pos = work[i]
            work[i] += 1
            rows_t[pos] = j
            if vals_t is not None:
                vals_t[pos] = vals[el]

    if vals_t is None:
        return ptr_t, rows_t
    return ptr_t, rows_t, vals_t


def _lower_entries(ptr, rows, vals):
    for col, (lo, hi) in enumerate(zip(ptr, ptr[1:])):
        for row, val in zip(rows[lo:hi], vals[lo:hi]):
            yield row, col, val


def sym_product(ptr, rows, vals, x, y, alpha: float = 1.0) -> list[float]:
    """Return y + alpha * M * x for a symmetric M stored as its lower triangle."""
    result = [float(v) for v in y]
    for row, col, val in _lower_entries(ptr, rows, vals):
        result[row] += alpha * val * x[col]
        if row != col:
            result[col] += alpha * val * x[row]
    return result


def sym_product_quad(ptr, rows, vals, x, y, alpha: float = 1.0) -> list[float]:
    """Like sym_product, but accumulated exactly and rounded once at the end."""
    acc = [Fraction(v) for v in y]
    a = Fraction(alpha)
    for row, col, val in _lower_entries(ptr, rows, vals):
        v = Fraction(val)
        acc[row] += v * Fraction(x[col]) * a
        if row != col:
            acc[col] += v * Fraction(x[row]) * a
    return [float(v) for v in acc]


def children_linked_list(parent: Sequence[int]) -> tuple[list[int], list[int]]:
    """Linked lists of children: head[node] is the first child, next_[c] the sibling.

    Children appear in increasing order; -1 terminates each list.
    """
    n = len(parent)
    head = [-1] * n
    next_ = [-1] * n
    for node in reversed(range(n)):
        p = parent[node]
        if p == -1:
            continue
        next_[node] = head[p]
        head[p] = node
    return head, next_


def reverse_linked_list(head: Sequence[int], next_: Sequence[int]) -> tuple[list[int], list[int]]:
    """Return new linked lists with every list of children reversed."""
    new_head = list(head)
    new_next = list(next_)
    for node, first in enumerate(head):
        prev = -1
        curr = first
        while curr != -1:
            following = new_next[curr]
            new_next[curr] = prev
            prev = curr
            curr = following
        new_head[node] = prev
    return new_head, new_next


def dfs_postorder(node: int, head: Sequence[int], next_: Sequence[int]) -> list[int]:
    """Postorder of the subtree rooted at node, children visited in list order."""
    order: list[int] = []
    stack = [[node, head[node]]]
    while stack:
        top = stack[-1]
        child = top[1]
        if child == -1:
            stack.pop()
            order.append(top[0])
        else:
            top[1] = next_[child]
            stack.append([child, head[child]])
    return order


def process_edge(j, i, first, maxfirst, delta, prevleaf, ancestor) -> None:
    """Process edge (i, j) of the skeleton matrix for column counts.

    The state lists maxfirst, delta, prevleaf and ancestor are updated in place.
    """
    if i <= j or first[j] <= maxfirst[i]:
        return

    maxfirst[i] = first[j]
    jprev = prevleaf[i]
    delta[j] += 1

    if jprev != -1:
        q = jprev
        while q != ancestor[q]:
            q = ancestor[q]
        s = jprev
        while s != q:
            sparent = ancestor[s]
            ancestor[s] = q
            s = sparent
        delta[q] -= 1

    prevleaf[i] = j


def get_diag_start(n: int, k: int, nb: int, n_blocks: int, triang: bool = False) -> tuple[list[int], float]:
    """Start positions of diagonal blocks in a blocked dense format.

    Returns (start, total) where total is the number of entries stored.
    """
    start = [0] * n_blocks
    for i in range(1, n_blocks):
        start[i] = start[i - 1] + nb * (n - (i - 1) * nb)
        if triang:
            start[i] -= nb * (nb - 1) // 2

    jb = min(nb, k - (n_blocks - 1) * nb)
    total = float(start[-1]) + float(n - (n_blocks - 1) * nb) * jb
    if triang:
        total -= float(jb) * (jb - 1) / 2
    return start, total


def permute_vector(v: Sequence[T], perm: Sequence[int]) -> list[T]:
    """Return v reordered so that entry i is v[perm[i]]."""
    return [v[p] for p in perm]


def permute_vector_inverse(v: Sequence[T], iperm: Sequence[int]) -> list[T]:
    """Return v reordered so that entry iperm[i] is v[i]."""
    result = list(v)
    for value, target in zip(v, iperm):
        result[target] = value
    return result


def write_vector(v, name) -> Path:
    """Write one entry per line to '<name>.txt' and return the path."""
    path = Path(f"{name}.txt")
    with path.open("w") as out:
        for item in v:
            text = f"{item:.16g}" if isinstance(item, float) else str(item)
            out.write(text + "\n")
    return path


class Clock:
    """Wall-clock timer, started on creation."""

    def __init__(self) -> None:
        self._t0 = 0.0
        self.start()

    def start(self) -> None:
        self._t0 = time.perf_counter()

    def stop(self) -> float:
        """Seconds elapsed since the last start."""
        return time.perf_counter() - self._t0