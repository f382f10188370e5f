"""
poismf: Poisson Matrix Factorization for sparse count data

Non-negative low-rank factorization of a sparse count matrix X (e.g. user ×
item interaction counts) into two dense non-negative matrices A and B,

.. math::
    X \\approx A B^T, \\quad A, B \\geq 0

under a Poisson likelihood with optional L1/L2 regularization.

Algorithms
==========

- **Proximal gradient** (default): explicit gradient step on the
  log-likelihood, closed-form proximal step for the penalties, projection
  onto the non-negative orthant.

- **Conjugate gradient** (``use_cg=True``): bounded non-negative nonlinear CG
  per row, solved by ``nonnegcg`` by default.

Both update rows of one matrix in parallel while the other is held fixed,
alternating between A and B for a fixed number of outer iterations.

Typical Usage
=============

1. From a scipy sparse matrix:

    >>> import numpy as np, scipy.sparse as sp
    >>> from poismf import poismf, PoisMFConfig
    >>> X = sp.random(200, 100, density=0.05, format='csr', random_state=0)
    >>> X.data = np.ceil(10 * X.data)
    >>> rng = np.random.default_rng(0)
    >>> A0, B0 = rng.gamma(1, .1, (200, 8)), rng.gamma(1, .1, (100, 8))
    >>> A, B, elapse = poismf(X, A0, B0, PoisMFConfig(step_size=1e-3, numiter=10))

2. Low-level, in place, with precomputed compressed views:

    >>> from poismf import run_poismf, compressed_views
    >>> Xr, Xc = compressed_views(X)
    >>> run_poismf(A, B, Xr, Xc, l2_reg=0., l1_reg=0., use_cg=True,
    ...            step_size=1e-3, numiter=5, npass=10, nthreads=4)

3. Factors for a new row against fitted item factors:

    >>> from poismf import optimize_cg_single
    >>> a_new = optimize_cg_single(np.full(8, .1), X_new_vals, X_new_ind,
    ...                            B, B.sum(axis=0), l2_reg=0.)

GPU Module
==========

``poismf.gpu`` (requires PyTorch) provides ``GPUPoisMFSolver`` running the
proximal gradient variant with every row updated in one vectorized step.

Reference: Cortes, D. (2018). "Fast Non-Bayesian Poisson Factorization for
Implicit-Feedback Recommendations". arXiv:1811.01908.

License: BSD-2-Clause
"""

__version__ = "1.0.0"
__all__ = [
    # Main entry points
    'poismf',
    'run_poismf',
    'PoisMFConfig',
    # Row solvers
    'pgd_iteration',
    'cg_iteration',
    'optimize_cg_single',
    'NonnegCGMinimizer',
    'ScipyCGMinimizer',
    # Building blocks
    'CompressedMatrix',
    'compressed_views',
    'sum_by_cols',
    # GPU subpackage (optional)
    'gpu',
]

from .poismf import poismf, run_poismf
from .config import PoisMFConfig
from .pgd import pgd_iteration
from .cg import cg_iteration, optimize_cg_single, NonnegCGMinimizer, ScipyCGMinimizer
from .sparse_view import CompressedMatrix, compressed_views
from .reduction import sum_by_cols

# Optional GPU module import (graceful degradation if PyTorch not installed)
try:
    from . import gpu
except ImportError:
    gpu = None
    import warnings
    warnings.warn(
        "GPU module not available. Install PyTorch to enable GPU acceleration: "
        "pip install torch",
        UserWarning
    )
