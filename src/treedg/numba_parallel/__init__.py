"""
Numba-parallel DGSEM residual package.

Provides JIT-compiled data-parallel residual stages using Numba for
near-native performance without leaving Python.

Key optimizations:
- @njit(parallel=True) kernels, one prange unit per element or face
- Kernels compiled once per flux combination and cached
- Separate code paths with and without nonconservative terms
"""

from .dg_numba import DGResidualNumba

__all__ = [
    'DGResidualNumba',
]
