"""Fundamental supernodes, supernode relaxation and merging.

All routines work on a postordered elimination tree and on the lower-stored
pattern (ptr_lower, rows_lower) of the matrix permuted in that order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from .auxiliary import children_linked_list, inverse_perm, permute_vector, subtree_size


@dataclass(frozen=True)
class RelaxSettings:
    """Parameters of supernode relaxation.

    The threshold on artificial nonzeros starts at start_thresh and is
    adjusted by bisection, for at most max_iter rounds, until the fraction
    of artificial operations lies in [lower_ratio, upper_ratio].
    sn_size_relax bounds the size of supernodes merged by relax_supernodes_size.
    """

    start_thresh: int = 10000
    max_iter: int = 10
    lower_ratio: float = 0.01
    upper_ratio: float = 0.02
    sn_size_relax: int = 16


@dataclass
class Supernodes:
    """Partition of the columns into supernodes and the supernodal tree.

    sn_start[s] is the first column of supernode s (sn_start[-1] == n),
    sn_parent is the supernodal elimination tree and sn_belong[c] is the
    supernode holding column c.
    """

    sn_start: list[int]
    sn_parent: list[int]
    sn_belong: list[int]

    @property
    def count(self) -> int:
        return len(self.sn_start) - 1

    @property
    def sizes(self) -> list[int]:
        return [b - a for a, b in zip(self.sn_start, self.sn_start[1:])]


@dataclass
class RelaxResult:
    """Outcome of relaxation: merged_into[s] is the supernode s is merged into, or -1."""

    merged_into: list[int]
    fake_nz: list[int]
    merged_count: int


@dataclass
class MergeResult:
    """Supernodes after merging, with the column permutation that goes with them.

    new_perm[k] is the old column placed k-th. col_count is permuted
    accordingly. sn_indices[s] is the number of rows of supernode s.
    """

    supernodes: Supernodes
    new_perm: list[int]
    col_count: list[int]
    sn_indices: list[int]
    artificial_nz: int
    dense_ops: float = 0.0
    new_iperm: list[int] = field(default_factory=list)


def fundamental_supernodes(
    parent: Sequence[int], ptr_lower: Sequence[int], rows_lower: Sequence[int]
) -> Supernodes:
    """Find the fundamental supernodes of a postordered matrix and tree."""
    n = len(ptr_lower) - 1
    if n < 0:
        raise ValueError("column pointers must hold at least one entry")
    if len(parent) != n:
        raise ValueError(f"tree has {len(parent)} nodes, matrix has {n} columns")
    if n == 0:
        return Supernodes(sn_start=[0], sn_parent=[], sn_belong=[])

    is_sn = [False] * n
    is_sn[0] = True
    prev_nonz = [-1] * n
    sizes = subtree_size(parent)

    for j in range(n):
        for i in rows_lower[ptr_lower[j] : ptr_lower[j + 1]]:
            # leaf of a row subtree starts a supernode
            if prev_nonz[i] < j - sizes[j] + 1:
                is_sn[j] = True
            # a node with more than one child starts a supernode
            p = parent[i]
            if p != -1 and sizes[i] + 1 != sizes[p]:
                is_sn[p] = True
            prev_nonz[i] = j

    sn_belong = []
    sn_number = -1
    for flag in is_sn:
        if flag:
            sn_number += 1
        sn_belong.append(sn_number)

    sn_start = [i for i, flag in enumerate(is_sn) if flag] + [n]
    count = len(sn_start) - 1

    sn_parent = [-1] * count
    for i in range(count - 1):
        j = parent[sn_start[i + 1] - 1]
        sn_parent[i] = sn_belong[j] if j != -1 else -1

    return Supernodes(sn_start=sn_start, sn_parent=sn_parent, sn_belong=sn_belong)


def _initial_sizes(supernodes: Supernodes, col_count: Sequence[int]) -> tuple[list[int], list[int]]:
    sn_size = supernodes.sizes
    clique_size = [col_count[start] - size for start, size in zip(supernodes.sn_start, sn_size)]
    return sn_size, clique_size


def _unlink_child(sn: int, target: int, first_child: list[int], next_child: list[int]) -> None:
    child = first_child[sn]
    if child == target:
        first_child[sn] = next_child[target]
        return
    while next_child[child] != target:
        child = next_child[child]
    next_child[child] = next_child[target]


def _children(sn: int, first_child: Sequence[int], next_child: Sequence[int]):
    child = first_child[sn]
    while child != -1:
        yield child
        child = next_child[child]


def _merge_by_fill(supernodes, sn_size, clique_size, threshold) -> RelaxResult:
    count = supernodes.count
    fake_nz = [0] * count
    merged_into = [-1] * count
    merged = 0
    first_child, next_child = children_linked_list(supernodes.sn_parent)

    for sn in range(count):
        while True:
            best_nz: float = math.inf
            best_size = 0
            best_child = -1
            for child in _children(sn, first_child, next_child):
                rows_filled = sn_size[sn] + clique_size[sn] - clique_size[child]
                nz_added = rows_filled * sn_size[child]
                total = nz_added + fake_nz[sn] + fake_nz[child]
                # fewest artificial nonzeros, ties broken towards the larger child
                if total < best_nz or (total == best_nz and best_size < sn_size[child]):
                    best_nz, best_size, best_child = total, sn_size[child], child

            if best_nz > threshold:
                break
            sn_size[sn] += best_size
            fake_nz[sn] = int(best_nz)
            merged += 1
            merged_into[best_child] = sn
            _unlink_child(sn, best_child, first_child, next_child)

    return RelaxResult(merged_into=merged_into, fake_nz=fake_nz, merged_count=merged)


def relax_supernodes(
    supernodes: Supernodes,
    col_count: Sequence[int],
    dense_ops_norelax: float,
    settings: RelaxSettings | None = None,
) -> RelaxResult:
    """Merge children into parents while few artificial nonzeros are created.

    The threshold on artificial nonzeros is chosen by bisection so that the
    fraction of artificial dense operations falls in the configured range;
    the result of the last round tried is returned.
    """
    settings = settings or RelaxSettings()
    threshold = settings.start_thresh
    largest_below = -1
    smallest_above = -1
    result = RelaxResult(
        merged_into=[-1] * supernodes.count, fake_nz=[0] * supernodes.count, merged_count=0
    )

    for _ in range(settings.max_iter):
        sn_size, clique_size = _initial_sizes(supernodes, col_count)
        result = _merge_by_fill(supernodes, sn_size, clique_size, threshold)

        art_ops = 0.0
        for sn in range(supernodes.count):
            if result.merged_into[sn] == -1:
                nn = float(sn_size[sn])
                cc = float(clique_size[sn])
                art_ops += (
                    (nn + cc) * (nn + cc) * nn
                    - (nn + cc) * nn * (nn + 1)
                    + nn * (nn + 1) * (2 * nn + 1) / 6
                )
        art_ops -= dense_ops_norelax

        denom = art_ops + dense_ops_norelax
        ratio = art_ops / denom if denom != 0.0 else math.nan

        if ratio < settings.lower_ratio:
            largest_below = threshold
            if smallest_above == -1:
                threshold *= 2
            else:
                threshold = (largest_below + smallest_above) // 2
        elif ratio > settings.upper_ratio:
            smallest_above = threshold
            if largest_below == -1:
                threshold //= 2
            else:
                threshold = (largest_below + smallest_above) // 2
        else:
            break

    return result


def relax_supernodes_size(
    supernodes: Supernodes, col_count: Sequence[int], settings: RelaxSettings | None = None
) -> RelaxResult:
    """Merge the smallest child into its parent while both are small enough."""
    settings = settings or RelaxSettings()
    count = supernodes.count
    sn_size, clique_size = _initial_sizes(supernodes, col_count)
    fake_nz = [0] * count
    merged_into = [-1] * count
    merged = 0
    first_child, next_child = children_linked_list(supernodes.sn_parent)

    for sn in range(count):
        while True:
            size_smallest: float = math.inf
            child_smallest = -1
            nz_smallest = 0
            for child in _children(sn, first_child, next_child):
                rows_filled = sn_size[sn] + clique_size[sn] - clique_size[child]
                total = rows_filled * sn_size[child] + fake_nz[sn] + fake_nz[child]
                if sn_size[child] < size_smallest:
                    size_smallest, child_smallest, nz_smallest = sn_size[child], child, total

            if not (size_smallest < settings.sn_size_relax and sn_size[sn] < settings.sn_size_relax):
                break
            sn_size[sn] += int(size_smallest)
            fake_nz[sn] = nz_smallest
            merged += 1
            merged_into[child_smallest] = sn
            _unlink_child(sn, child_smallest, first_child, next_child)

    return RelaxResult(merged_into=merged_into, fake_nz=fake_nz, merged_count=merged)


def merge_supernodes(
    supernodes: Supernodes, col_count: Sequence[int], relax: RelaxResult
) -> MergeResult:
    """Build the merged supernodes and the column permutation they require."""
    old_count = supernodes.count
    sn_start = supernodes.sn_start
    if len(relax.merged_into) != old_count:
        raise ValueError("relaxation result does not match the supernodes")
    new_count = old_count - relax.merged_count

    sn_indices = [0] * new_count
    sn_perm: list[int] = []
    new_id = [0] * old_count
    new_start = [0] * (new_count + 1)
    received_from: list[list[int]] = [[] for _ in range(old_count)]
    artificial_nz = 0
    next_id = 0

    for sn in range(old_count):
        target = relax.merged_into[sn]
        if target > -1:
            received_from[target].append(sn)
            continue

        slot = next_id + 1
        stack = [sn]
        while stack:
            current = stack[-1]
            if received_from[current]:
                stack.extend(received_from[current])
                received_from[current] = []
            else:
                stack.pop()
                sn_perm.append(current)
                new_id[current] = next_id
                new_start[slot] += sn_start[current + 1] - sn_start[current]

        artificial_nz += relax.fake_nz[sn]
        sn_indices[next_id] = (
            new_start[slot] + col_count[sn_start[sn]] - sn_start[sn + 1] + sn_start[sn]
        )
        next_id += 1

    if len(sn_perm) != old_count:
        raise ValueError("relaxation result merges supernodes into a merged supernode's absence")

    for i in range(new_count):
        new_start[i + 1] += new_start[i]

    dense_ops = 0.0
    for sn in range(new_count):
        colcount = float(sn_indices[sn])
        for i in range(new_start[sn + 1] - new_start[sn]):
            dense_ops += (colcount - i - 1) * (colcount - i - 1)

    new_perm = [j for sn in sn_perm for j in range(sn_start[sn], sn_start[sn + 1])]

    new_parent = [-1] * new_count
    for i, p in enumerate(supernodes.sn_parent):
        if p == -1:
            continue
        ii, pp = new_id[i], new_id[p]
        if ii != pp:
            new_parent[ii] = pp

    belong = [0] * len(supernodes.sn_belong)
    for sn in range(old_count):
        for i in range(sn_start[sn], sn_start[sn + 1]):
            belong[i] = new_id[sn]

    merged = Supernodes(
        sn_start=new_start,
        sn_parent=new_parent,
        sn_belong=permute_vector(belong, new_perm),
    )
    return MergeResult(
        supernodes=merged,
        new_perm=new_perm,
        col_count=permute_vector(col_count, new_perm),
        sn_indices=sn_indices,
        artificial_nz=artificial_nz,
        dense_ops=dense_ops,
        new_iperm=inverse_perm(new_perm),
    )