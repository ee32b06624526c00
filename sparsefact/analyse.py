"""Analyse phase of the sparse symmetric factorisation.

Given the lower triangle of a symmetric matrix in CSC form, the analyse
phase chooses a fill-reducing ordering, builds the elimination tree and the
supernodes (with relaxation), and computes the supernodal sparsity pattern
and the bookkeeping used by the numeric factorisation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence, Union

from .auxiliary import (
    children_linked_list,
    counts_to_ptr,
    dfs_postorder,
    get_diag_start,
    inverse_perm,
    permute_vector,
    transpose,
)
from .etree import (
    adjacency_graph,
    column_counts,
    elimination_tree,
    permute_upper,
    postorder,
    upper_from_lower,
)
from .log import Log
from .supernodes import (
    RelaxSettings,
    Supernodes,
    fundamental_supernodes,
    merge_supernodes,
    relax_supernodes,
)

DEFAULT_BLOCK_SIZE = 128
_INT_MAX = 2**31 - 1

OrderingFn = Callable[[list, list], Sequence[int]]
Ordering = Union[None, Sequence[int], OrderingFn]


class AnalyseError(Exception):
    """The analyse phase could not be completed."""


@dataclass
class SymbolicFactor:
    """Result of the analyse phase.

    iperm maps an original column to its position in the factor. ptr/rows
    hold the row pattern of each supernode; sn_start and sn_parent describe
    the supernodes and their tree.
    """

    n: int = 0
    sn: int = 0
    block_size: int = DEFAULT_BLOCK_SIZE
    nz: int = 0
    fillin: float = 0.0
    artificial_nz: int = 0
    artificial_ops: float = 0.0
    spops: float = 0.0
    critops: float = 0.0
    flops: float = 0.0
    largest_front: int = 0
    largest_sn: int = 0
    serial_storage: float = 0.0
    sn_size_1: int = 0
    sn_size_10: int = 0
    sn_size_100: int = 0
    pivot_sign: list = field(default_factory=list)
    iperm: list = field(default_factory=list)
    rows: list = field(default_factory=list)
    ptr: list = field(default_factory=list)
    sn_parent: list = field(default_factory=list)
    sn_start: list = field(default_factory=list)
    relind_cols: list = field(default_factory=list)
    relind_clique: list = field(default_factory=list)
    consecutive_sums: list = field(default_factory=list)
    clique_block_start: list = field(default_factory=list)


def _iter_children(head: Sequence[int], next_: Sequence[int], node: int) -> Iterator[int]:
    child = head[node]
    while child != -1:
        yield child
        child = next_[child]


def _permute_sorted(ptr_u, rows_u, iperm):
    """Permute an upper-stored matrix and return sorted upper and lower forms."""
    ptr_u, rows_u = permute_upper(ptr_u, rows_u, iperm)
    ptr_l, rows_l = transpose(ptr_u, rows_u)
    ptr_u, rows_u = transpose(ptr_l, rows_l)
    return ptr_u, rows_u, ptr_l, rows_l


def supernode_pattern(ptr_upper, rows_upper, sn_start, sn_parent, sn_belong, sn_indices):
    """Row pattern of every supernode of the factor.

    Returns (ptr_sn, rows_sn) where rows_sn[ptr_sn[s]:ptr_sn[s+1]] are the
    rows of supernode s in increasing order.
    """
    n = len(ptr_upper) - 1
    count = len(sn_start) - 1
    ptr_sn = counts_to_ptr(sn_indices)
    work = ptr_sn[:-1]
    rows_sn = [0] * ptr_sn[-1]
    mark = [-1] * count

    for i in range(n):
        for j in rows_upper[ptr_upper[i] : ptr_upper[i + 1]]:
            snj = sn_belong[j]
            # climb the supernodal tree until a supernode already marked for row i
            while snj != -1 and mark[snj] != i:
                if sn_start[snj] > i:
                    break
                mark[snj] = i
                rows_sn[work[snj]] = i
                work[snj] += 1
                snj = sn_parent[snj]
    return ptr_sn, rows_sn


def relative_indices_cols(ptr_lower, rows_lower, sn_start, ptr_sn, rows_sn):
    """Position of each original entry within the frontal matrix of its supernode."""
    relind = [0] * ptr_lower[-1]
    for sn in range(len(sn_start) - 1):
        l_start, l_end = ptr_sn[sn], ptr_sn[sn + 1]
        for col in range(sn_start[sn], sn_start[sn + 1]):
            pt_a = ptr_lower[col]
            col_size = ptr_lower[col + 1] - ptr_lower[col]
            index = 0
            pt_l = l_start
            while pt_l < l_end and index < col_size:
                if rows_sn[pt_l] == rows_lower[pt_a]:
                    relind[ptr_lower[col] + index] = pt_l - l_start
                    index += 1
                    pt_a += 1
                pt_l += 1
    return relind


def relative_indices_clique(sn_start, sn_parent, ptr_sn, rows_sn):
    """Position of each clique row of a supernode within its parent's front.

    Returns (relind_clique, consecutive_sums, sparse_ops). consecutive_sums[s][i]
    is the length of the run of consecutive indices starting at i; sparse_ops
    counts the assembly operations. Roots get empty lists.
    """
    relind_clique: list[list[int]] = []
    consecutive_sums: list[list[int]] = []
    sparse_ops = 0.0

    for sn in range(len(sn_start) - 1):
        parent = sn_parent[sn]
        if parent == -1:
            relind_clique.append([])
            consecutive_sums.append([])
            continue

        sn_size = sn_start[sn + 1] - sn_start[sn]
        clique_size = ptr_sn[sn + 1] - ptr_sn[sn] - sn_size
        sparse_ops += clique_size * (clique_size + 1) // 2

        relind = [0] * clique_size
        ptr_current = ptr_sn[sn] + sn_size
        ptr_parent = ptr_sn[parent]
        parent_start, parent_end = ptr_parent, ptr_sn[parent + 1]
        index = 0
        while ptr_parent < parent_end and index < clique_size:
            if rows_sn[ptr_current] == rows_sn[ptr_parent]:
                relind[index] = ptr_parent - parent_start
                index += 1
                ptr_current += 1
            ptr_parent += 1

        sums = [b - a for a, b in zip(relind, relind[1:])]
        if clique_size > 0:
            sums.append(1)
        for i in reversed(range(clique_size - 1)):
            if sums[i] > 1:
                sums[i] = 1
            elif sums[i] == 1:
                sums[i] = sums[i + 1] + 1
            else:
                Log.printe("Error in consecutiveSums %d\n", sums[i])

        relind_clique.append(relind)
        consecutive_sums.append(sums)

    return relind_clique, consecutive_sums, sparse_ops


def compute_storage(fr: int, sz: int, nb: int) -> tuple[float, float]:
    """Entries stored for a front of fr rows with sz pivots, and for its clique.

    Both are blocked by nb columns; returns (frontal_entries, clique_entries).
    """
    if nb < 1:
        raise ValueError(f"block size must be positive, got {nb}")
    if sz < 1 or fr < sz:
        raise ValueError(f"invalid front: {fr} rows with {sz} pivots")
    n_blocks = (sz - 1) // nb + 1
    _, frontal_entries = get_diag_start(fr, sz, nb, n_blocks)

    cl = fr - sz
    n_blocks_cl = (cl - 1) // nb + 1 if cl > 0 else 0
    clique_entries = sum(
        float(cl - j * nb) * min(nb, cl - j * nb) for j in range(n_blocks_cl)
    )
    return frontal_entries, clique_entries


def _storage_tables(sn_start, sn_parent, fronts, nb):
    count = len(sn_start) - 1
    frontal = [0.0] * count
    clique = [0.0] * count
    factors = [0.0] * count
    for sn in range(count):
        fe, ce = compute_storage(fronts[sn], sn_start[sn + 1] - sn_start[sn], nb)
        frontal[sn], clique[sn] = fe, ce
        factors[sn] += fe
        if sn_parent[sn] != -1:
            factors[sn_parent[sn]] += factors[sn]
    return frontal, clique, factors


def _serial_storage(sn_start, sn_parent, ptr_sn, nb) -> float:
    """Peak memory, in bytes, of a serial multifrontal factorisation."""
    count = len(sn_start) - 1
    fronts = [ptr_sn[s + 1] - ptr_sn[s] for s in range(count)]
    frontal, clique, factors = _storage_tables(sn_start, sn_parent, fronts, nb)
    head, next_ = children_linked_list(sn_parent)

    storage = [0.0] * count
    for sn in range(count):
        children = list(_iter_children(head, next_, sn))
        if not children:
            storage[sn] = frontal[sn] + clique[sn]
            continue
        storage_2 = (
            frontal[sn]
            + clique[sn]
            + sum(clique[c] for c in children)
            + sum(factors[c] for c in children)
        )
        partial = 0.0
        storage_1 = 0.0
        for c in children:
            storage_1 = max(storage_1, storage[c] + partial)
            partial += clique[c] + factors[c]
        storage[sn] = max(storage_1, storage_2)

    return max((8 * s for s in storage), default=0.0)


def critical_path(sn_start, sn_parent, ptr_sn) -> float:
    """Dense operations along the most expensive root-to-leaf path of the tree."""
    count = len(sn_start) - 1
    ops = []
    for sn in range(count):
        sz = sn_start[sn + 1] - sn_start[sn]
        fr = ptr_sn[sn + 1] - ptr_sn[sn]
        ops.append(
            float(fr) * fr * sz
            + float(sz) * (sz + 1) * (2 * sz + 1) / 6
            - float(fr) * sz * (sz + 1)
        )

    head, next_ = children_linked_list(sn_parent)
    for sn in range(count):
        children = list(_iter_children(head, next_, sn))
        if children:
            ops[sn] = max([0.0] + [ops[sn] + ops[c] for c in children])

    return max([0.0] + ops)


def _clique_block_start(sn_start, ptr_sn, nb) -> list[list[int]]:
    result = []
    for sn in range(len(sn_start) - 1):
        ldc = ptr_sn[sn + 1] - ptr_sn[sn] - (sn_start[sn + 1] - sn_start[sn])
        if ldc <= 0:
            result.append([0])
            continue
        n_blocks = (ldc - 1) // nb + 1
        start, total = get_diag_start(ldc, ldc, nb, n_blocks)
        result.append(start + [int(total)])
    return result


def _reorder_children(supernodes: Supernodes, col_count, sn_indices, nb):
    """Order children to reduce peak storage; returns the reordered data and nodal perm."""
    sn_start = supernodes.sn_start
    sn_parent = supernodes.sn_parent
    count = supernodes.count
    n = sn_start[-1]

    fronts = [col_count[sn_start[s]] for s in range(count)]
    frontal, clique, factors = _storage_tables(sn_start, sn_parent, fronts, nb)
    head, next_ = children_linked_list(sn_parent)

    # only leaves receive a storage value here; parents keep zero
    storage = [0.0] * count
    for sn in range(count):
        if head[sn] == -1:
            storage[sn] = frontal[sn] + clique[sn]
            continue
        children = list(_iter_children(head, next_, sn))
        children.sort(key=lambda c: storage[c] - clique[c] - factors[c], reverse=True)
        head[sn] = children[0]
        for a, b in zip(children, children[1:]):
            next_[a] = b
        next_[children[-1]] = -1

    sn_perm = [
        s
        for root in range(count)
        if sn_parent[root] == -1
        for s in dfs_postorder(root, head, next_)
    ]
    new_perm = [j for sn in sn_perm for j in range(sn_start[sn], sn_start[sn + 1])]

    isn_perm = inverse_perm(sn_perm)
    new_parent = [-1] * count
    for i, p in enumerate(sn_parent):
        new_parent[isn_perm[i]] = isn_perm[p] if p != -1 else -1

    belong = [0] * n
    for sn in range(count):
        for i in range(sn_start[sn], sn_start[sn + 1]):
            belong[i] = isn_perm[sn]

    reordered = Supernodes(
        sn_start=counts_to_ptr(permute_vector(supernodes.sizes, sn_perm)),
        sn_parent=new_parent,
        sn_belong=permute_vector(belong, new_perm),
    )
    return (
        reordered,
        permute_vector(col_count, new_perm),
        permute_vector(sn_indices, sn_perm),
        new_perm,
    )


class Analyse:
    """Symbolic analysis of a symmetric matrix given by its lower triangle.

    ordering may be None (natural order), a permutation (perm[k] is the
    column placed k-th), or a callable receiving the adjacency structure
    (ptr, adjacency) of the matrix graph and returning such a permutation.
    """

    def __init__(
        self,
        rows: Sequence[int],
        ptr: Sequence[int],
        negative_pivots: int = 0,
        block_size: int = DEFAULT_BLOCK_SIZE,
        ordering: Ordering = None,
        relax_settings: Optional[RelaxSettings] = None,
    ) -> None:
        if len(ptr) < 2:
            raise AnalyseError("matrix has no columns")
        n = len(ptr) - 1
        if ptr[-1] > len(rows):
            raise ValueError(f"column pointers reach {ptr[-1]}, only {len(rows)} rows given")
        if not 0 <= negative_pivots <= n:
            raise ValueError(f"negative_pivots must lie in [0, {n}], got {negative_pivots}")
        if block_size < 1:
            raise ValueError(f"block size must be positive, got {block_size}")

        self._n = n
        self._negative_pivots = negative_pivots
        self._block_size = block_size
        self._ordering = ordering
        self._relax_settings = relax_settings
        self._ptr_upper, self._rows_upper = upper_from_lower(ptr, rows)
        self._nz = self._ptr_upper[-1]
        self._ready = True

    def _initial_perm(self) -> list[int]:
        n = self._n
        if self._ordering is None:
            perm = list(range(n))
        elif callable(self._ordering):
            adj_ptr, adj = adjacency_graph(self._ptr_upper, self._rows_upper)
            perm = list(self._ordering(adj_ptr, adj))
        else:
            perm = list(self._ordering)
        if sorted(perm) != list(range(n)):
            Log.printe("Error with ordering\n")
            raise AnalyseError("ordering is not a permutation of the columns")
        return perm

    def run(self) -> SymbolicFactor:
        """Perform the analyse phase; may be called only once."""
        if not self._ready:
            raise AnalyseError("analyse phase has already been run")
        self._ready = False

        n = self._n
        nb = self._block_size

        perm = self._initial_perm()
        ptr_u, rows_u = permute_upper(self._ptr_upper, self._rows_upper, inverse_perm(perm))

        parent = elimination_tree(ptr_u, rows_u)
        order, parent = postorder(parent)
        ptr_u, rows_u, ptr_l, rows_l = _permute_sorted(ptr_u, rows_u, inverse_perm(order))
        perm = permute_vector(perm, order)

        col_count, nz_factor, dense_ops_norelax = column_counts(parent, ptr_l, rows_l)

        fundamental = fundamental_supernodes(parent, ptr_l, rows_l)
        relax = relax_supernodes(fundamental, col_count, dense_ops_norelax, self._relax_settings)
        merged = merge_supernodes(fundamental, col_count, relax)
        nz_factor += merged.artificial_nz
        ptr_u, rows_u, ptr_l, rows_l = _permute_sorted(ptr_u, rows_u, merged.new_iperm)
        perm = permute_vector(perm, merged.new_perm)

        supernodes, col_count, sn_indices, new_perm = _reorder_children(
            merged.supernodes, merged.col_count, merged.sn_indices, nb
        )
        ptr_u, rows_u, ptr_l, rows_l = _permute_sorted(ptr_u, rows_u, inverse_perm(new_perm))
        perm = permute_vector(perm, new_perm)

        sn_start = supernodes.sn_start
        sn_parent = supernodes.sn_parent
        ptr_sn, rows_sn = supernode_pattern(
            ptr_u, rows_u, sn_start, sn_parent, supernodes.sn_belong, sn_indices
        )
        relind_cols = relative_indices_cols(ptr_l, rows_l, sn_start, ptr_sn, rows_sn)
        relind_clique, consecutive_sums, sparse_ops = relative_indices_clique(
            sn_start, sn_parent, ptr_sn, rows_sn
        )
        serial_storage = _serial_storage(sn_start, sn_parent, ptr_sn, nb)
        clique_block_start = _clique_block_start(sn_start, ptr_sn, nb)
        critops = critical_path(sn_start, sn_parent, ptr_sn)

        if nz_factor >= _INT_MAX:
            raise AnalyseError("too many nonzeros in the factor for the integer type")

        sn_sizes = supernodes.sizes
        signs = [-1] * self._negative_pivots + [1] * (n - self._negative_pivots)

        return SymbolicFactor(
            n=n,
            sn=supernodes.count,
            block_size=nb,
            nz=nz_factor,
            fillin=nz_factor / self._nz,
            artificial_nz=merged.artificial_nz,
            artificial_ops=merged.dense_ops - dense_ops_norelax,
            spops=sparse_ops,
            critops=critops,
            flops=merged.dense_ops,
            largest_front=max(sn_indices),
            largest_sn=max(sn_sizes),
            serial_storage=serial_storage,
            sn_size_1=sum(1 for s in sn_sizes if s == 1),
            sn_size_10=sum(1 for s in sn_sizes if s <= 10),
            sn_size_100=sum(1 for s in sn_sizes if s <= 100),
            pivot_sign=permute_vector(signs, perm),
            iperm=inverse_perm(perm),
            rows=rows_sn,
            ptr=ptr_sn,
            sn_parent=sn_parent,
            sn_start=sn_start,
            relind_cols=relind_cols,
            relind_clique=relind_clique,
            consecutive_sums=consecutive_sums,
            clique_block_start=clique_block_start,
        )


def analyse(
    rows: Sequence[int],
    ptr: Sequence[int],
    negative_pivots: int = 0,
    block_size: int = DEFAULT_BLOCK_SIZE,
    ordering: Ordering = None,
) -> SymbolicFactor:
    """Run the analyse phase on the lower triangle (rows, ptr) of a symmetric matrix."""
    return Analyse(rows, ptr, negative_pivots, block_size, ordering).run()