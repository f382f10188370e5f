"""
Proximal gradient updates for one factor matrix.

Mathematical Background:
-----------------------
With the counterpart matrix F fixed, each row ``a`` of the matrix being
optimized solves an independent problem

.. math::
    \\min_{a \\geq 0} \\; \\langle F_{sum} + \\lambda_1, a \\rangle
        + \\lambda_2 \\|a\\|^2 - \\sum_i x_i \\log \\langle a, F_i \\rangle

A forward step on the log-likelihood term is followed by the closed-form
proximal operator of the linear + quadratic regularizer:

.. math::
    a \\leftarrow \\max\\left(0, \\frac{a + s \\nabla - s (F_{sum} + \\lambda_1)}
        {1 + 2 \\lambda_2 s}\\right)

The caller precomputes ``cnst_sum = -s * (F_sum + l1_reg)`` and
``cnst_div = 1 / (1 + 2 * l2_reg * s)``.
"""

import numpy as np

from poismf.blas import axpy, scal
from poismf.gradient import calc_grad_pgd
from poismf.parallel import ScratchBufferPool, WorkerPool, parallel_for
from poismf.sparse_view import CompressedMatrix


def pgd_update_row(
    curr: np.ndarray,
    F: np.ndarray,
    X: np.ndarray,
    X_ind: np.ndarray,
    cnst_div: float,
    cnst_sum: np.ndarray,
    step_size: float,
    npass: int,
    buffer: np.ndarray
) -> np.ndarray:
    """
    Apply ``npass`` proximal gradient steps to one row, in place.

    ``buffer`` must have length ``k`` and holds the gradient.
    """
    for _ in range(npass):
        calc_grad_pgd(buffer, curr, F, X, X_ind)
        axpy(step_size, buffer, curr)

        axpy(1., cnst_sum, curr)
        scal(cnst_div, curr)
        np.maximum(curr, 0, out=curr)
    return curr


def pgd_iteration(
    A: np.ndarray,
    B: np.ndarray,
    Xr: CompressedMatrix,
    cnst_div: float,
    cnst_sum: np.ndarray,
    step_size: float,
    npass: int,
    workers: WorkerPool,
    buffers: ScratchBufferPool
) -> None:
    """
    Update every row of ``A`` with ``B`` fixed.

    Written with A as the matrix being optimized and ``Xr`` in row-compressed
    form. To update B, pass ``(B, A, Xc)`` instead.
    """
    def _update(ia, worker_id):
        X_ind, X = Xr.row(ia)
        pgd_update_row(A[ia], B, X, X_ind, cnst_div, cnst_sum,
                       step_size, npass, buffers[worker_id])

    parallel_for(A.shape[0], _update, workers)
