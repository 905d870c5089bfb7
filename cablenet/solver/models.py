# cablenet/solver/models.py
"""
Value objects crossing the host boundary: what goes into a solve and what comes out.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import CONFIG
from ..model import Network


@dataclass(frozen=True)
class SolverOptions:
    """
    Optimizer settings forwarded to the native library.

    Parameters:
    -----------
    max_iterations : int
        Iteration cap of the optimizer
    abs_tol, rel_tol : float
        Absolute / relative convergence tolerance on the loss
    barrier_weight, barrier_sharpness : float
        Penalty applied when q leaves [lower, upper]
    report_frequency : int
        Progress callback is invoked every this many evaluations
    """
    max_iterations: int = field(default_factory=lambda: CONFIG.max_iterations)
    abs_tol: float = field(default_factory=lambda: CONFIG.abs_tol)
    rel_tol: float = field(default_factory=lambda: CONFIG.rel_tol)
    barrier_weight: float = field(default_factory=lambda: CONFIG.barrier_weight)
    barrier_sharpness: float = field(default_factory=lambda: CONFIG.barrier_sharpness)
    report_frequency: int = field(default_factory=lambda: CONFIG.report_frequency)

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.report_frequency < 1:
            raise ValueError(f"report_frequency must be >= 1, got {self.report_frequency}")


@dataclass
class SolverInputs:
    """
    Loads, force densities, bounds and objectives for one solve.

    Lists shorter than needed repeat their last value (see
    kernel.assemble.expand_values). Bounds may be left empty for a
    forward solve; optimization requires them.

    Parameters:
    -----------
    q : Sequence[float]
        Initial force densities (per edge)
    loads : Sequence[(px, py, pz)]
        Load vectors (per free node)
    lower_bounds, upper_bounds : Optional[Sequence[float]]
        Force density bounds (per edge)
    objectives : list
        Objective instances from cablenet.solver.objectives
    """
    q: Sequence[float] = field(default_factory=lambda: [CONFIG.default_q])
    loads: Sequence[Sequence[float]] = field(default_factory=lambda: [CONFIG.default_load])
    lower_bounds: Optional[Sequence[float]] = None
    upper_bounds: Optional[Sequence[float]] = None
    objectives: List = field(default_factory=list)

    @classmethod
    def with_default_bounds(cls, **kwargs) -> "SolverInputs":
        """Inputs with CONFIG default bounds, ready for optimize()."""
        kwargs.setdefault('lower_bounds', [CONFIG.default_lower_bound])
        kwargs.setdefault('upper_bounds', [CONFIG.default_upper_bound])
        return cls(**kwargs)

    def content_key(self) -> Tuple:
        """Hashable summary of every input, for the result cache."""
        def floats(values):
            if values is None:
                return None
            return tuple(float(v) for v in np.asarray(values, dtype=float).ravel())

        return (
            floats(self.q),
            floats(self.loads),
            floats(self.lower_bounds),
            floats(self.upper_bounds),
            tuple(obj.content_key() for obj in self.objectives),
        )


@dataclass
class SolveResult:
    """
    Output of a forward solve or an optimization.

    `network` is a NEW Network with the solved geometry; the input
    network is left untouched.
    """
    network: Network
    xyz: np.ndarray
    force_densities: np.ndarray
    member_forces: np.ndarray
    member_lengths: np.ndarray
    reactions: np.ndarray
    iterations: int
    converged: bool

    @property
    def node_positions(self) -> np.ndarray:
        """Solved positions as (n_nodes, 3)."""
        return np.asarray(self.xyz, dtype=float).reshape(-1, 3)

    @property
    def anchor_reactions(self) -> np.ndarray:
        """Reaction vectors at the fixed nodes, (n_fixed, 3)."""
        R = np.asarray(self.reactions, dtype=float).reshape(-1, 3)
        return R[self.network.fixed_nodes]

    def summary(self) -> str:
        status = "converged" if self.converged else "NOT converged"
        return (
            f"{self.network.graph.n_nodes} nodes, {self.network.graph.n_edges} edges, "
            f"{self.iterations} iterations ({status}), "
            f"max |force| = {np.max(np.abs(self.member_forces)) if len(self.member_forces) else 0.0:.4g}"
        )
