"""
GPU-Accelerated Poisson Factorization (PyTorch)

This subpackage runs the proximal gradient variant of the alternating
optimization on a PyTorch device, updating all rows of a factor matrix in a
single vectorized step.

Available:
- GPUPoisMFSolver: vectorized PGD solver
- GPUConfig: Device management and GPU detection
- SparseMatrixHandler: scipy.sparse to PyTorch COO triplets

Example Usage:

    from poismf.gpu import GPUPoisMFSolver, GPUConfig
    from poismf import PoisMFConfig

    solver = GPUPoisMFSolver(GPUConfig())
    A, B = solver.fit(X, A0, B0, PoisMFConfig(step_size=1e-3, numiter=10))

Conjugate gradient updates are CPU only.
"""

from .config import GPUConfig
from .gpu_pgd import GPUPoisMFSolver
from .utils import SparseMatrixHandler, ensure_torch_tensor, ensure_numpy_array

__all__ = [
    'GPUConfig',
    'GPUPoisMFSolver',
    'SparseMatrixHandler',
    'ensure_torch_tensor',
    'ensure_numpy_array',
]
