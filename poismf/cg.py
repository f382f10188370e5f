"""
Conjugate gradient updates for one factor matrix.

Each row is refined by a bounded nonlinear conjugate gradient run on the
combined objective from :mod:`poismf.gradient`. The minimizer itself is a
pluggable dependency: anything implementing :class:`Minimizer` can be
passed in. Two adapters ship here:

- :class:`NonnegCGMinimizer` (default): ``nonnegcg.minimize_nncg``, a
  projected nonlinear CG for non-negative variables with a backtracking
  line search.
- :class:`ScipyCGMinimizer`: ``scipy.optimize.minimize(method='CG')``.

Neither is trusted to return a feasible point; rows are clipped to be
non-negative after every solve.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
from scipy.optimize import minimize

from poismf.gradient import RowData, calc_fun_single, calc_grad_single
from poismf.parallel import ScratchBufferPool, WorkerPool, parallel_for
from poismf.sparse_view import CompressedMatrix

# Settings used inside the alternating loop
CG_TOL = 1e-3
CG_MAX_FEV = 100
CG_DECR_LNSRCH = 0.25
CG_LNSRCH_CONST = 0.01
CG_MAX_LS = 20

# Settings for isolated single-row solves
SINGLE_TOL = 1e-1
SINGLE_MAXITER = 200


@dataclass
class CGResult:
    fun: float
    niter: int
    nfeval: int


class Minimizer(Protocol):
    """Callback-driven minimizer that refines ``x`` in place."""

    def minimize(
        self,
        x: np.ndarray,
        fun: Callable[[np.ndarray], float],
        grad: Callable[[np.ndarray, np.ndarray], np.ndarray],
        tol: float,
        maxiter: int,
        max_fev: int,
        decr_lnsrch: float,
        lnsrch_const: float,
        max_ls: int,
        buffer: Optional[np.ndarray] = None
    ) -> CGResult:
        ...


def _gradient_callback(grad, n, buffer):
    g = np.empty(n, dtype=np.float64) if buffer is None else buffer[:n]

    def _jac(z):
        grad(z, g)
        return g.copy()

    return _jac


class NonnegCGMinimizer:
    """
    Adapter over ``nonnegcg.minimize_nncg``.

    All limits and line-search settings are passed through. The library
    manages its own working memory, so only the first ``n`` entries of
    ``buffer`` are used, to hold the gradient between callbacks.
    """

    def minimize(self, x, fun, grad, tol, maxiter, max_fev,
                 decr_lnsrch, lnsrch_const, max_ls, buffer=None):
        try:
            from nonnegcg import minimize_nncg
        except ImportError as exc:
            raise ImportError(
                "nonnegcg is required for conjugate gradient updates; "
                "install it or pass another minimizer."
            ) from exc

        res = minimize_nncg(
            np.array(x, dtype=np.float64), fun,
            _gradient_callback(grad, x.shape[0], buffer),
            tol=tol, maxnfeval=max_fev, maxiter=maxiter,
            decr_lnsrch=decr_lnsrch, lnsrch_const=lnsrch_const, max_ls=max_ls
        )
        x[:] = res["x"]
        return CGResult(fun=float(res["fun"]),
                        niter=int(res.get("niter", res.get("nit", 0))),
                        nfeval=int(res.get("nfev", 0)))


class _FevBudgetExceeded(Exception):
    pass


class ScipyCGMinimizer:
    """
    Adapter over ``scipy.optimize.minimize(method='CG')``.

    SciPy runs its own Wolfe line search, so ``decr_lnsrch`` and ``max_ls``
    are not used; ``lnsrch_const`` is passed as the sufficient decrease
    constant ``c1``. ``max_fev`` is checked from the per-iteration callback,
    so a run stops at the end of the iteration in which the budget is used
    up and may exceed it by the evaluations of that last line search.
    ``buffer`` holds the gradient between callbacks.
    """

    def minimize(self, x, fun, grad, tol, maxiter, max_fev,
                 decr_lnsrch, lnsrch_const, max_ls, buffer=None):
        nfeval = [0]
        last = [x.copy(), 0]

        def _fun(z):
            nfeval[0] += 1
            return fun(z)

        def _callback(xk):
            last[0] = np.array(xk)
            last[1] += 1
            if nfeval[0] >= max_fev:
                raise _FevBudgetExceeded

        try:
            res = minimize(_fun, x.copy(), jac=_gradient_callback(grad, x.shape[0], buffer),
                           method='CG', callback=_callback,
                           options={'gtol': tol, 'maxiter': maxiter, 'c1': lnsrch_const})
        except _FevBudgetExceeded:
            x[:] = last[0]
            return CGResult(fun=fun(x), niter=last[1], nfeval=nfeval[0])
        x[:] = res.x
        return CGResult(fun=float(res.fun), niter=int(res.nit), nfeval=nfeval[0])


def cg_update_row(
    curr: np.ndarray,
    data: RowData,
    maxiter: int,
    buffer: Optional[np.ndarray],
    minimizer: Minimizer,
    tol: float = CG_TOL,
    max_fev: int = CG_MAX_FEV
) -> CGResult:
    """Refine one row in place with CG, then clip it to be non-negative."""
    res = minimizer.minimize(
        curr,
        lambda x: calc_fun_single(x, data),
        lambda x, out: calc_grad_single(x, data, out),
        tol, maxiter, max_fev,
        CG_DECR_LNSRCH, CG_LNSRCH_CONST, CG_MAX_LS,
        buffer
    )
    np.maximum(curr, 0, out=curr)
    return res


def cg_iteration(
    A: np.ndarray,
    B: np.ndarray,
    Xr: CompressedMatrix,
    Bsum: np.ndarray,
    npass: int,
    l2_reg: float,
    workers: WorkerPool,
    buffers: ScratchBufferPool,
    minimizer: Optional[Minimizer] = None
) -> None:
    """
    Update every row of ``A`` with ``B`` fixed.

    ``Bsum`` holds the column sums of B plus the L1 penalty. To update B,
    pass ``(B, A, Xc, Asum)`` instead.
    """
    if minimizer is None:
        minimizer = NonnegCGMinimizer()

    def _update(ia, worker_id):
        X_ind, X = Xr.row(ia)
        data = RowData(B, Bsum, X, X_ind, l2_reg)
        cg_update_row(A[ia], data, npass, buffers[worker_id], minimizer)

    parallel_for(A.shape[0], _update, workers)


def optimize_cg_single(
    curr: np.ndarray,
    X: np.ndarray,
    X_ind: np.ndarray,
    F: np.ndarray,
    Fsum: np.ndarray,
    l2_reg: float,
    minimizer: Optional[Minimizer] = None
) -> np.ndarray:
    """
    Fit one row against a fixed factor matrix, outside the alternating loop.

    Typical use is computing factors for a new user/item given an already
    fitted counterpart. ``curr`` is the starting point and is overwritten.
    ``Fsum`` should already include any L1 penalty.

    Returns
    -------
    np.ndarray
        ``curr``, for convenience.
    """
    if minimizer is None:
        minimizer = NonnegCGMinimizer()
    data = RowData(F, Fsum, np.asarray(X, dtype=np.float64),
                   np.asarray(X_ind, dtype=np.intp), l2_reg)
    cg_update_row(curr, data, SINGLE_MAXITER, None, minimizer,
                  tol=SINGLE_TOL, max_fev=CG_MAX_FEV)
    return curr
