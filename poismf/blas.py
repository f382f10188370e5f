"""
Level-1 vector primitives used by the row solvers.

Thin wrappers over the double-precision BLAS routines exposed by
``scipy.linalg.blas``. Every call operates on a single contiguous vector of
length ``k`` (one row of a factor matrix), so no BLAS-level threading kicks
in; parallelism happens one level up, across rows.

All functions expect 1-D, C-contiguous ``float64`` arrays. ``axpy`` and
``scal`` modify their target in place, which is what lets the solvers write
straight into rows of the caller's factor matrices.
"""

import numpy as np
from scipy.linalg import blas as _blas


def dot(x: np.ndarray, y: np.ndarray) -> float:
    """Return ``sum(x * y)``."""
    return float(_blas.ddot(x, y))


def axpy(a: float, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """In-place ``y += a * x``; returns ``y``."""
    z = _blas.daxpy(x, y, a=a)
    if z is not y:
        # f2py hands back a copy when y could not be overwritten
        y[...] = z
    return y


def scal(a: float, x: np.ndarray) -> np.ndarray:
    """In-place ``x *= a``; returns ``x``."""
    z = _blas.dscal(a, x)
    if z is not x:
        x[...] = z
    return x
