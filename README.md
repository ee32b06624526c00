# sparsefact

Building blocks for factorising sparse symmetric (possibly indefinite)
matrices as `L D L^T`:

- **Symbolic analysis** (`sparsefact.etree`, `sparsefact.supernodes`,
  `sparsefact.analyse`): this part builds the elimination tree and its
  postorder. It counts the columns of the factor and finds the fundamental
  supernodes. It relaxes the supernodes by merging, choosing the threshold by
  bisection, and reorders the children to reduce peak storage. It then
  computes the supernodal row pattern, the relative indices, storage and
  operation estimates, and the critical path.
- **Dense kernels** (`sparsefact.dense_kernel`, `sparsefact.dense_hybrid`):
  this part provides an `L D L^T` kernel with static and dynamic pivot
  regularisation and optional Bunch–Kaufman pivoting. It also provides a
  blocked partial factorisation of a frontal matrix stored in a hybrid block
  format, which adds the Schur complement update into a second buffer.
- **BLAS layer** (`sparsefact.blas`): level 1–3 routines (`daxpy`, `dcopy`,
  `dscal`, `dswap`, `dgemv`, `dtpsv`, `dtrsv`, `dger`, `dgemm`, `dsyrk`,
  `dtrsm`). They work on numpy arrays and views and update their output in
  place.
- **Utilities**:
  - `sparsefact.auxiliary` has CSC helpers: transpose, permutations, linked
    lists of tree children, postorder, and symmetric products.
  - `sparsefact.vector_ops` has vector operations and norms.
  - `sparsefact.krylov` has the `gmres` and `cg` solvers.
  - `sparsefact.log` has a logging facade.

## Installation

```
pip install .
```

To install the test dependencies and run the tests:

```
pip install ".[test]"
pytest
```

## Symbolic analysis

Matrices are given in compressed sparse column form. `ptr` is a list of
length `n + 1` and `rows` holds the row indices. Only the lower triangle is
read, and entries above the diagonal are dropped.

```python
from sparsefact.analyse import analyse

# 3x3 arrow matrix, lower triangle
ptr = [0, 3, 4, 5]
rows = [0, 1, 2, 1, 2]

symbolic = analyse(rows, ptr, 0, 128, None)
print(symbolic.n, symbolic.sn, symbolic.nz, symbolic.fillin)
```

The call returns a `SymbolicFactor` dataclass, which holds:

- `iperm`: the position of each original column in the factor.
- `ptr` and `rows`: the supernodal row pattern.
- `sn_start` and `sn_parent`: the supernodes and their tree.
- `relind_cols`, `relind_clique`, `consecutive_sums` and `clique_block_start`:
  the relative indices used during assembly.
- `pivot_sign`: the pivot signs. The first `negative_pivots` original columns
  are negative.
- Statistics: `flops`, `spops`, `critops`, `serial_storage` (in bytes),
  `artificial_nz`, `largest_front`, `largest_sn` and the supernode size
  histograms.

The `ordering` argument can take one of three forms:

- `None` keeps the natural order.
- A permutation, where `perm[k]` is the column placed k-th.
- A callable. It receives the adjacency structure `(ptr, adjacency)` of the
  matrix graph, without self-loops, and returns such a permutation.

For more control, use the `Analyse` class. It also accepts a `RelaxSettings`
from `sparsefact.supernodes`. `Analyse.run()` can be called only once.
`AnalyseError` is raised in three cases:

- the matrix has no columns;
- the ordering is not a permutation;
- the factor has too many nonzeros for a 32-bit index.

`ValueError` is raised for inconsistent arguments.

## Dense kernel

```python
import numpy as np
from sparsefact.dense_kernel import RegularisationSettings, dense_fact_k

a = np.array([[4.0, 1.0], [1.0, 3.0]])
regul = [0.0, 0.0]
stats = dense_fact_k("L", 2, a, [1, 1], 1e-12, regul)
# lower triangle of `a` now holds L, its diagonal holds D
```

With `uplo="U"`, the kernel also needs `swaps` and `pivot_2x2`. Pivoting is
switched on with `RegularisationSettings(pivoting=True)`. The kernel returns
a `FactorStats` with the counters of regularised pivots, 2x2 pivots and
wrong-sign pivots. Bad arguments raise `InvalidInputError` and NaN pivots
raise `InvalidPivotError`.

## Krylov solvers

An operator subclasses `AbstractMatrix` and returns the product from `apply`.
Both solvers return `(solution, iterations)` and leave the starting point
unchanged.

```python
import numpy as np
from sparsefact.krylov import AbstractMatrix, cg


class Dense(AbstractMatrix):
    def __init__(self, a):
        self.a = np.asarray(a, dtype=float)

    def apply(self, x):
        return self.a @ x


m = Dense([[4.0, 1.0], [1.0, 3.0]])
x, iterations = cg(m, None, [1.0, 2.0], np.zeros(2), 1e-12, 50)
```

The second argument is an optional preconditioner, given as another
`AbstractMatrix`.

## Logging

Nothing is written until a logger is installed:

```python
import logging
from sparsefact.log import Log

Log.set_options(logging.getLogger("sparsefact"))
Log.printf("factor has %d nonzeros\n", 42)
```

`Log.printw` logs warnings and `Log.printe` logs errors.
`Log.set_options(None)` silences output again.

## What the package does not do

- It computes no fill-reducing ordering, such as nested dissection. You must
  supply one through the `ordering` argument, or the natural order is used.
- It has no driver for the numeric supernodal factorisation over the tree,
  and no sparse triangular solves. The symbolic result and the dense kernels
  are the pieces such a driver would use.
- It has no command-line program. It is a library only.