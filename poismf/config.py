"""
Run configuration for Poisson factorization.
"""

from dataclasses import dataclass

from poismf.parallel import resolve_nthreads


@dataclass
class PoisMFConfig:
    """
    Hyper-parameters of one alternating optimization run.

    Attributes
    ----------
    l2_reg : float
        Strength of the L2 penalty on rows of both factor matrices.
    l1_reg : float
        Strength of the L1 penalty on rows of both factor matrices.
    use_cg : bool
        Use conjugate gradient row updates instead of proximal gradient.
    step_size : float
        Initial PGD step size, halved after every outer iteration.
        Ignored when ``use_cg`` is True.
    numiter : int
        Number of outer (A then B) iterations.
    npass : int
        PGD steps per row per half-iteration, or maximum CG iterations.
    nthreads : int
        Number of worker threads. ``-1`` means all available cores.
    """
    l2_reg: float = 0.
    l1_reg: float = 0.
    use_cg: bool = False
    step_size: float = 1e-7
    numiter: int = 10
    npass: int = 1
    nthreads: int = 1

    def validate(self) -> "PoisMFConfig":
        if self.l2_reg < 0 or self.l1_reg < 0:
            raise ValueError(f"Regularization must be non-negative, got "
                             f"l2_reg={self.l2_reg}, l1_reg={self.l1_reg}")
        if not self.use_cg and self.step_size <= 0:
            raise ValueError(f"step_size must be positive, got {self.step_size}")
        if self.numiter < 0 or self.npass < 0:
            raise ValueError(f"numiter and npass must be non-negative, got "
                             f"numiter={self.numiter}, npass={self.npass}")
        if self.nthreads == 0 or self.nthreads < -1:
            raise ValueError(f"nthreads must be positive or -1, got {self.nthreads}")
        return self

    @property
    def n_workers(self) -> int:
        return resolve_nthreads(self.nthreads)
