"""
Column sums of a dense factor matrix.

Used once per half-iteration to build the regularization constants from
the factor matrix that is being held fixed.
"""

from typing import Optional

import numpy as np

from poismf.parallel import WorkerPool


def sum_by_cols(
    M: np.ndarray,
    workers: Optional[WorkerPool] = None,
    out: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Sum a 2-D array over its rows.

    The rows are split into one contiguous block per worker; each worker
    reduces its block and the partial sums are then added in block order,
    starting from zero.

    Parameters
    ----------
    M : np.ndarray
        Dense matrix of shape (nrow, ncol).
    workers : WorkerPool, optional
        Pool to spread the blocks over. Runs single-threaded if None.
    out : np.ndarray, optional
        Length-``ncol`` array to write the result into.

    Returns
    -------
    np.ndarray
        Vector of length ``ncol``.
    """
    nrow, ncol = M.shape
    if out is None:
        out = np.empty(ncol, dtype=np.float64)
    out[:] = 0

    nblocks = 1 if workers is None else workers.nthreads
    bounds = np.linspace(0, nrow, nblocks + 1).astype(np.intp)

    def _block_sum(worker_id):
        st, end = bounds[worker_id], bounds[worker_id + 1]
        return M[st:end].sum(axis=0)

    if workers is None:
        partials = [_block_sum(0)]
    else:
        partials = workers.run(_block_sum)

    for part in partials:
        out += part
    return out
