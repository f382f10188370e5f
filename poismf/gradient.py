"""
Poisson likelihood terms for a single row of a factor matrix.

A row ``curr`` of the matrix being optimized is scored against the fixed
counterpart matrix ``F`` at the row's observed entries ``(X_ind, X)``:

.. math::
    \\text{pred}_i = \\langle curr, F_{X\\_ind_i} \\rangle

The full-matrix Poisson negative log-likelihood restricted to that row is

.. math::
    \\langle F_{sum}, curr \\rangle - \\sum_i X_i \\log(\\text{pred}_i)

where :math:`F_{sum}` are the column sums of ``F`` (the contribution of
every unobserved entry, which is zero in X). Nothing here guards against
``pred_i <= 0``: factors are kept non-negative by clipping and the
observed support is assumed to stay strictly positive.
"""

from dataclasses import dataclass

import numpy as np

from poismf.blas import axpy, dot


@dataclass
class RowData:
    """Everything the CG callbacks need for one row."""
    F: np.ndarray
    Fsum: np.ndarray
    X: np.ndarray
    X_ind: np.ndarray
    l2_reg: float


def calc_grad_pgd(out, curr, F, X, X_ind):
    """
    Gradient of the log-likelihood term alone, ``sum_i (X_i / pred_i) F[X_ind_i]``.

    Written into ``out`` (length k). Regularization is handled by the
    proximal step in :mod:`poismf.pgd`.
    """
    Fi = F[X_ind]
    pred = Fi @ curr
    np.dot(X / pred, Fi, out=out)
    return out


def calc_fun_single(x: np.ndarray, data: RowData) -> float:
    """Combined objective: ``<Fsum, x> + l2_reg * ||x||^2 - sum_i X_i log(pred_i)``."""
    out = dot(data.Fsum, x)
    out += data.l2_reg * dot(x, x)
    pred = data.F[data.X_ind] @ x
    with np.errstate(divide='ignore', invalid='ignore'):
        out -= float(np.dot(data.X, np.log(pred)))
    return out


def calc_grad_single(x: np.ndarray, data: RowData, grad: np.ndarray) -> np.ndarray:
    """
    Gradient of :func:`calc_fun_single`, written into ``grad``.

    The L2 part is ``2 * k * l2_reg * x``, not the ``2 * l2_reg * x`` that the
    objective implies. Kept as is so results stay comparable with existing
    fitted models; see DESIGN.md.
    """
    n = x.shape[0]
    grad[:] = data.Fsum
    axpy(2 * n * data.l2_reg, x, grad)
    Fi = data.F[data.X_ind]
    with np.errstate(divide='ignore', invalid='ignore'):
        grad -= (data.X / (Fi @ x)) @ Fi
    return grad


def row_poisson_objective(curr, F, Fsum, X, X_ind) -> float:
    """Unregularized Poisson negative log-likelihood of one row (up to constants)."""
    return calc_fun_single(curr, RowData(F, Fsum, X, X_ind, 0.))
