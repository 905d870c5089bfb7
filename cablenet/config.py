# cablenet/config.py
"""
Library configuration and defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class CablenetConfig:
    """Global library configuration."""

    # Graph construction
    edge_tolerance: float = 0.001
    anchor_tolerance: float = 0.001
    parallel_threshold: int = 256  # segments before the parallel build kicks in
    region_shift: int = 2  # 2 -> regions of 4x4x4 cells
    max_workers: Optional[int] = None  # None -> os.cpu_count()

    # Solve inputs
    default_q: float = 10.0
    default_load: Tuple[float, float, float] = (0.0, 0.0, -1.0)
    default_lower_bound: float = 0.1
    default_upper_bound: float = 100.0

    # Optimizer options (forwarded to the native library)
    max_iterations: int = 500
    abs_tol: float = 1e-6
    rel_tol: float = 1e-6
    barrier_weight: float = 1000.0
    barrier_sharpness: float = 10.0
    report_frequency: int = 10

    # Native solver library (path or bare name); falls back to the env var
    solver_library: Optional[str] = None

    # Content-hash caches
    cache_size: int = 32

    def __post_init__(self):
        if self.solver_library is None:
            self.solver_library = os.environ.get("CABLENET_SOLVER_LIB")

    def worker_count(self) -> int:
        if self.max_workers is not None:
            return max(1, int(self.max_workers))
        return os.cpu_count() or 1


# Global config instance
CONFIG = CablenetConfig()
