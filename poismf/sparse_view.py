"""
Read-only compressed sparse views of the count matrix.

The optimizer never builds or validates the sparse matrix itself; it only
needs to walk the nonzeros of one row (CSR) or one column (CSC) at a time.
``CompressedMatrix`` holds the three arrays of either layout and hands out
slice views, so iterating a row never copies data.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import scipy.sparse as sp


@dataclass(frozen=True)
class CompressedMatrix:
    """
    One compressed sparse layout (row- or column-major).

    Attributes
    ----------
    indptr : np.ndarray
        Pointer array of length ``n_major + 1``.
    indices : np.ndarray
        Minor-axis index of each stored entry.
    data : np.ndarray
        Stored values (float64, non-negative counts).
    """
    indptr: np.ndarray
    indices: np.ndarray
    data: np.ndarray

    @property
    def n_major(self) -> int:
        return self.indptr.shape[0] - 1

    def nnz_row(self, i: int) -> int:
        return int(self.indptr[i + 1] - self.indptr[i])

    def row(self, i: int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(indices, values)`` of the nonzeros along major index ``i``."""
        st, end = self.indptr[i], self.indptr[i + 1]
        return self.indices[st:end], self.data[st:end]

    @classmethod
    def from_scipy(cls, M) -> "CompressedMatrix":
        return cls(
            indptr=np.asarray(M.indptr, dtype=np.intp),
            indices=np.asarray(M.indices, dtype=np.intp),
            data=np.asarray(M.data, dtype=np.float64),
        )


def compressed_views(X) -> Tuple[CompressedMatrix, CompressedMatrix]:
    """
    Build the (row-compressed, column-compressed) pair for a sparse matrix.

    ``X`` may be any ``scipy.sparse`` matrix or a dense array. Duplicate
    entries are summed and explicitly stored zeros are dropped, so both
    views hold only the nonzero entries.
    """
    if not sp.issparse(X):
        X = sp.csr_matrix(np.asarray(X, dtype=np.float64))
    Xr = sp.csr_matrix(X, dtype=np.float64, copy=True)
    Xr.sum_duplicates()
    Xr.eliminate_zeros()
    Xc = Xr.tocsc()
    Xc.sort_indices()
    return CompressedMatrix.from_scipy(Xr), CompressedMatrix.from_scipy(Xc)
