"""
GPU Configuration Management

Device selection for the PyTorch backend.
"""

import torch
from dataclasses import dataclass


@dataclass
class GPUConfig:
    """GPU configuration and device management"""
    device: torch.device = None
    dtype: torch.dtype = torch.float64  # float32 drifts from the CPU results

    def __post_init__(self):
        if self.device is None:
            self.device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
        elif isinstance(self.device, str):
            self.device = torch.device(self.device)
