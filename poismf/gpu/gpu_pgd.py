"""
GPU-Accelerated Poisson Factorization (proximal gradient)

Runs the same alternating proximal gradient schedule as
:func:`poismf.poismf.run_poismf` with ``use_cg=False``, but instead of
looping over rows, each half-iteration updates every row at once:

- predictions at the observed entries: ``pred = (Z[rows] * F[cols]).sum(1)``
- likelihood gradient: ``grad = index_add(rows, (x / pred) * F[cols])``
- step, proximal shift/scale and clipping as in :mod:`poismf.pgd`

Results match the CPU version up to floating-point summation order.
"""

import time
from typing import Dict, Optional, Tuple

import numpy as np
import scipy.sparse as sp
import torch

from poismf.config import PoisMFConfig
from .config import GPUConfig
from .utils import SparseMatrixHandler, ensure_numpy_array, ensure_torch_tensor


class GPUPoisMFSolver:
    """
    GPU Poisson factorization solver using vectorized proximal gradient steps.
    """

    def __init__(self, gpu_config: Optional[GPUConfig] = None):
        self.config = gpu_config or GPUConfig()
        self.device = self.config.device

    def _pgd_half_step(
        self,
        Z: torch.Tensor,
        F: torch.Tensor,
        rows: torch.Tensor,
        cols: torch.Tensor,
        values: torch.Tensor,
        cnst_div: float,
        cnst_sum: torch.Tensor,
        step_size: float,
        npass: int
    ) -> torch.Tensor:
        """
        Update every row of Z with F fixed.

        ``rows`` index into Z and ``cols`` into F for each observed entry.
        """
        F_obs = F[cols]
        for _ in range(npass):
            pred = (Z[rows] * F_obs).sum(dim=1)
            grad = torch.zeros_like(Z)
            grad.index_add_(0, rows, (values / pred).unsqueeze(1) * F_obs)

            Z = Z + step_size * grad
            Z = (Z + cnst_sum) * cnst_div
            Z = torch.clamp(Z, min=0)
        return Z

    def fit(
        self,
        X,
        A: np.ndarray,
        B: np.ndarray,
        config: Optional[PoisMFConfig] = None,
        verbose: bool = False,
        return_history: bool = False
    ) -> Tuple:
        """
        Factorize X starting from A and B.

        Parameters
        ----------
        X : scipy.sparse matrix or array-like
            Count matrix (dimA × dimB)
        A : np.ndarray
            Initial user factors (dimA × k)
        B : np.ndarray
            Initial item factors (dimB × k)
        config : PoisMFConfig, optional
            Hyper-parameters; ``use_cg`` must be False
        verbose : bool
            Print progress
        return_history : bool
            Also return a dict with the step size and elapsed time per iteration

        Returns
        -------
        A : np.ndarray
            Fitted user factors
        B : np.ndarray
            Fitted item factors
        history : dict (optional)
            Keys 'step_size' and 'times'
        """
        config = (config or PoisMFConfig()).validate()
        if config.use_cg:
            raise ValueError("The GPU solver only implements proximal gradient updates (use_cg=False)")

        if not sp.issparse(X):
            X = sp.csr_matrix(np.asarray(X, dtype=np.float64))
        if A.shape[1] != B.shape[1]:
            raise ValueError(f"A and B must have the same number of columns, "
                             f"got {A.shape[1]} and {B.shape[1]}")
        if X.shape != (A.shape[0], B.shape[0]):
            raise ValueError(f"X has shape {X.shape}, but A and B have "
                             f"{A.shape[0]} and {B.shape[0]} rows")

        dtype = self.config.dtype
        rows, cols, values = SparseMatrixHandler.scipy_to_torch_triplets(X, self.device, dtype)
        A_t = ensure_torch_tensor(A, self.device, dtype)
        B_t = ensure_torch_tensor(B, self.device, dtype)

        l1_reg, l2_reg = config.l1_reg, config.l2_reg
        step_size = config.step_size
        history: Dict[str, list] = {'step_size': [], 'times': []}
        start_time = time.time()

        for iteration in range(config.numiter):
            cnst_div = 1 / (1 + 2 * l2_reg * step_size)

            cnst_sum = B_t.sum(dim=0)
            if l1_reg > 0:
                cnst_sum = cnst_sum + l1_reg
            A_t = self._pgd_half_step(A_t, B_t, rows, cols, values, cnst_div,
                                      -step_size * cnst_sum, step_size, config.npass)

            cnst_sum = A_t.sum(dim=0)
            if l1_reg > 0:
                cnst_sum = cnst_sum + l1_reg
            B_t = self._pgd_half_step(B_t, A_t, cols, rows, values, cnst_div,
                                      -step_size * cnst_sum, step_size, config.npass)

            history['step_size'].append(step_size)
            history['times'].append(time.time() - start_time)
            step_size *= 0.5

            if verbose:
                print(f"Iter {iteration + 1:4d}: next step size = {step_size:.4e}, "
                      f"elapsed time = {history['times'][-1]:.3f}s")

        A_np = ensure_numpy_array(A_t)
        B_np = ensure_numpy_array(B_t)

        if return_history:
            return A_np, B_np, history
        else:
            return A_np, B_np
