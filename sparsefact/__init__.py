"""Symbolic analysis, dense LDL^T kernels, BLAS routines and Krylov solvers for sparse symmetric matrices."""

__version__ = "1.0.0"

__all__ = [
    "analyse",
    "auxiliary",
    "blas",
    "dense_hybrid",
    "dense_kernel",
    "etree",
    "krylov",
    "log",
    "supernodes",
    "vector_ops",
]