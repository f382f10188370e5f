"""
Poisson Matrix Factorization via alternating row-wise optimization

Factorizes a sparse non-negative count matrix X (dimA × dimB) as

.. math::
    X \\sim \\text{Poisson}(A B^T), \\quad A \\geq 0, \\; B \\geq 0

with A (dimA × k) and B (dimB × k), by alternately refitting every row of
A with B fixed and every row of B with A fixed. Rows are independent given
the other matrix, so each half-iteration runs in parallel across rows.

Objective (negative log-likelihood plus penalties, constants dropped):

.. math::
    \\sum_{i,j} \\langle A_i, B_j \\rangle
        - \\sum_{(i,j): X_{ij} > 0} X_{ij} \\log \\langle A_i, B_j \\rangle
        + \\lambda_1 (\\|A\\|_1 + \\|B\\|_1)
        + \\lambda_2 (\\|A\\|_F^2 + \\|B\\|_F^2)

Row solvers:

- Proximal gradient (default): see :mod:`poismf.pgd`. The step size is
  halved after each outer iteration.
- Conjugate gradient: see :mod:`poismf.cg`.

The factor matrices must be initialized by the caller (for instance with
small positive random values); they are optimized in place.

Reference: Cortes, D. (2018). "Fast Non-Bayesian Poisson Factorization for
Implicit-Feedback Recommendations". arXiv:1811.01908.
"""

import time
import warnings
from typing import Optional, Tuple

import numpy as np
from threadpoolctl import threadpool_limits

from poismf.blas import scal
from poismf.cg import Minimizer, cg_iteration
from poismf.config import PoisMFConfig
from poismf.parallel import ScratchBufferPool, WorkerPool
from poismf.pgd import pgd_iteration
from poismf.reduction import sum_by_cols
from poismf.sparse_view import CompressedMatrix, compressed_views


def run_poismf(
    A: np.ndarray,
    B: np.ndarray,
    Xr: CompressedMatrix,
    Xc: CompressedMatrix,
    l2_reg: float,
    l1_reg: float,
    use_cg: bool,
    step_size: float,
    numiter: int,
    npass: int,
    nthreads: int = 1,
    minimizer: Optional[Minimizer] = None,
    verbose: int = 0
) -> bool:
    """
    Optimize A and B in place.

    Parameters
    ----------
    A : np.ndarray
        Initialized user-factor matrix (dimA × k), C-contiguous float64.
    B : np.ndarray
        Initialized item-factor matrix (dimB × k), C-contiguous float64.
    Xr : CompressedMatrix
        X in row-compressed form (dimA rows).
    Xc : CompressedMatrix
        X in column-compressed form (dimB columns).
    l2_reg : float
        L2 penalty on the rows of A and B.
    l1_reg : float
        L1 penalty on the rows of A and B.
    use_cg : bool
        Use conjugate gradient instead of proximal gradient updates.
    step_size : float
        Initial PGD step size, halved after every outer iteration.
        Ignored for CG.
    numiter : int
        Number of outer iterations. There is no early stopping.
    npass : int
        Updates to each row per half-iteration (max CG iterations for CG).
    nthreads : int
        Number of worker threads.
    minimizer : Minimizer, optional
        CG minimizer to use. Defaults to ``NonnegCGMinimizer``.
    verbose : int
        0: silent. 1: print one line per outer iteration.

    Returns
    -------
    bool
        True if the procedure ran. False if the working memory could not
        be allocated, in which case A and B are left untouched.

    Notes
    -----
    Inputs are not validated. Xr and Xc must describe the same matrix and
    agree in shape with A and B.

    Row updates are already spread over ``nthreads`` workers, so BLAS is
    limited to a single thread while the loop runs.
    """
    k = A.shape[1]
    buffer_size = 4 * k if use_cg else k

    with WorkerPool(nthreads) as workers, \
            ScratchBufferPool(workers, buffer_size) as buffers:
        cnst_sum = buffers.allocate_shared(k)
        if buffers.alloc_error:
            warnings.warn("Could not allocate memory for the procedure.", RuntimeWarning)
            return False

        start_time = time.time()
        with threadpool_limits(limits=1, user_api="blas"):
            for fulliter in range(numiter):

                cnst_div = 1 / (1 + 2 * l2_reg * step_size)
                sum_by_cols(B, workers, out=cnst_sum)
                if l1_reg > 0:
                    cnst_sum += l1_reg

                if use_cg:
                    cg_iteration(A, B, Xr, cnst_sum, npass, l2_reg, workers, buffers, minimizer)
                else:
                    scal(-step_size, cnst_sum)
                    pgd_iteration(A, B, Xr, cnst_div, cnst_sum, step_size, npass, workers, buffers)

                # Same procedure for B, with the roles of the matrices swapped
                sum_by_cols(A, workers, out=cnst_sum)
                if l1_reg > 0:
                    cnst_sum += l1_reg

                if use_cg:
                    cg_iteration(B, A, Xc, cnst_sum, npass, l2_reg, workers, buffers, minimizer)
                else:
                    scal(-step_size, cnst_sum)
                    pgd_iteration(B, A, Xc, cnst_div, cnst_sum, step_size, npass, workers, buffers)
                    step_size *= 0.5

                if verbose:
                    solver = "CG" if use_cg else f"PGD, next step size = {step_size:.4e}"
                    print(f"Iter {fulliter + 1:4d}: {solver}, "
                          f"elapsed time = {time.time() - start_time:.3f}s")

    return True


def poismf(
    X,
    A: np.ndarray,
    B: np.ndarray,
    config: Optional[PoisMFConfig] = None,
    minimizer: Optional[Minimizer] = None,
    verbose: int = 0
) -> Tuple[np.ndarray, np.ndarray, float]:
    r"""
    Poisson factorization of a sparse count matrix from given starting factors.

    Parameters
    ----------
    X : scipy.sparse matrix or array-like
        Count matrix of shape (dimA, dimB). Entries must be non-negative.
    A : np.ndarray
        Initial user factors of shape (dimA, k). Should be strictly positive.
    B : np.ndarray
        Initial item factors of shape (dimB, k). Should be strictly positive.
    config : PoisMFConfig, optional
        Hyper-parameters. Defaults to ``PoisMFConfig()``.
    minimizer : Minimizer, optional
        CG minimizer, only used when ``config.use_cg`` is True.
    verbose : int, optional
        0: silent. 1: print progress every outer iteration.

    Returns
    -------
    A : np.ndarray
        Fitted user factors (a new array, the input is not modified).
    B : np.ndarray
        Fitted item factors.
    elapse : float
        Wall-clock time in seconds.

    Raises
    ------
    ValueError
        If shapes disagree, X has negative entries, or the configuration is
        invalid.

    Examples
    --------
    >>> import numpy as np, scipy.sparse as sp
    >>> from poismf import poismf, PoisMFConfig
    >>> rng = np.random.default_rng(1)
    >>> X = sp.random(100, 50, density=0.1, format='csr', random_state=1)
    >>> X.data = np.ceil(X.data * 10)
    >>> A0 = rng.gamma(1, 1, (100, 5)) * 0.1
    >>> B0 = rng.gamma(1, 1, (50, 5)) * 0.1
    >>> A, B, elapse = poismf(X, A0, B0, PoisMFConfig(step_size=1e-3, numiter=10))
    """
    config = (config or PoisMFConfig()).validate()

    A = np.require(np.array(A, dtype=np.float64), requirements=['C', 'W'])
    B = np.require(np.array(B, dtype=np.float64), requirements=['C', 'W'])
    if A.ndim != 2 or B.ndim != 2:
        raise ValueError(f"A and B must be 2D matrices, got shapes {A.shape} and {B.shape}")
    if A.shape[1] != B.shape[1]:
        raise ValueError(f"A and B must have the same number of columns, "
                         f"got {A.shape[1]} and {B.shape[1]}")

    Xr, Xc = compressed_views(X)
    if (Xr.n_major, Xc.n_major) != (A.shape[0], B.shape[0]):
        raise ValueError(f"X has shape ({Xr.n_major}, {Xc.n_major}), but A and B "
                         f"have {A.shape[0]} and {B.shape[0]} rows")
    if np.any(Xr.data < 0):
        raise ValueError("X contains negative values")

    start_time = time.time()
    run_poismf(A, B, Xr, Xc,
               config.l2_reg, config.l1_reg, config.use_cg, config.step_size,
               config.numiter, config.npass, config.n_workers,
               minimizer=minimizer, verbose=verbose)
    return A, B, time.time() - start_time
