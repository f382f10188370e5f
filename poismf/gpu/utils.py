"""
GPU Utilities for Sparse Matrix Handling

Conversions between scipy.sparse / numpy and PyTorch tensors.
"""

import torch
import numpy as np
import scipy.sparse as sp
from typing import Tuple, Union


class SparseMatrixHandler:
    """Convert between scipy.sparse and PyTorch"""

    @staticmethod
    def scipy_to_torch_triplets(
        sp_matrix: Union[sp.csr_matrix, sp.csc_matrix, sp.coo_matrix],
        device: torch.device = torch.device('cpu'),
        dtype: torch.dtype = torch.float64
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """Return (row indices, column indices, values) of the stored entries"""
        coo = sp.coo_matrix(sp_matrix)
        coo.sum_duplicates()
        coo.eliminate_zeros()
        rows = torch.from_numpy(coo.row.astype(np.int64)).to(device)
        cols = torch.from_numpy(coo.col.astype(np.int64)).to(device)
        values = torch.from_numpy(coo.data.astype(np.float64)).to(device=device, dtype=dtype)
        return rows, cols, values


def ensure_torch_tensor(
    data: Union[np.ndarray, torch.Tensor],
    device: torch.device,
    dtype: torch.dtype = torch.float64
) -> torch.Tensor:
    """Convert a dense array to a PyTorch tensor on ``device``"""
    if isinstance(data, torch.Tensor):
        return data.to(device=device, dtype=dtype)
    elif isinstance(data, np.ndarray):
        return torch.from_numpy(np.ascontiguousarray(data)).to(device=device, dtype=dtype)
    else:
        raise TypeError(f"Unsupported data type: {type(data)}")


def ensure_numpy_array(
    tensor: torch.Tensor
) -> np.ndarray:
    """Convert PyTorch tensor to numpy array"""
    return tensor.cpu().detach().numpy()
