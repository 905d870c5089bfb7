# cablenet/kernel/solve.py
"""Reference force density forward solve (sparse LU), used when no native library is available."""

from dataclasses import dataclass

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import splu

from .assemble import SolverData


class MechanismError(RuntimeError):
    """Raised when the free-node system is singular (a free node has no tension path to a support)."""
    pass


@dataclass(frozen=True)
class RawSolution:
    """
    Flat solver output, in network node / edge order.

    Parameters:
    -----------
    xyz : np.ndarray
        Node positions, shape (3 * n_nodes,)
    lengths, forces, q : np.ndarray
        Per-edge member length, axial force (q·L) and force density
    reactions : np.ndarray
        Residual force per node, shape (3 * n_nodes,); zero at free nodes
    iterations : int
        Solver iterations (1 for a forward solve)
    converged : bool
    """
    xyz: np.ndarray
    lengths: np.ndarray
    forces: np.ndarray
    q: np.ndarray
    reactions: np.ndarray
    iterations: int = 1
    converged: bool = True


def member_lengths(C: sparse.spmatrix, X: np.ndarray) -> np.ndarray:
    """|C·X| per row; X has shape (n_nodes, 3)."""
    U = C @ X
    return np.sqrt(np.sum(U * U, axis=1))


def solve_forward_fdm(data: SolverData, q: np.ndarray = None) -> RawSolution:
    """
    Solve the force density equilibrium for fixed q.

        D    = Cᵀ diag(q) C
        x_f  = D_ff⁻¹ (p_f - D_fx x_x)          (per coordinate axis)
        R    = D x - p

    Args:
        data: Assembled SolverData
        q: Optional override of data.q (same length)

    Returns:
        RawSolution with positions, lengths, forces q·L and reactions

    Raises:
        MechanismError: If D_ff is singular or the solution is not finite
    """
    q = data.q if q is None else np.asarray(q, dtype=float)
    free = data.free_nodes
    fixed = data.fixed_nodes

    C = data.incidence()
    D = (C.T @ sparse.diags(q) @ C).tocsr()

    X = np.zeros((data.n_nodes, 3), dtype=float)
    X[fixed] = data.fixed_positions.reshape(-1, 3)

    P = np.zeros((data.n_nodes, 3), dtype=float)
    P[free] = data.loads.reshape(-1, 3)

    if len(free) > 0:
        Dff = D[free][:, free].tocsc()
        Dfx = D[free][:, fixed]
        rhs = P[free] - Dfx @ X[fixed]

        try:
            lu = splu(Dff)
        except RuntimeError as e:
            raise MechanismError(
                f"Singular equilibrium matrix ({len(free)} free nodes). "
                f"Check supports and force densities. {e}"
            )
        Xf = lu.solve(rhs)
        if not np.all(np.isfinite(Xf)):
            raise MechanismError("Equilibrium solve produced non-finite positions. Check force densities.")
        X[free] = Xf

    R = D @ X - P
    # Free rows are zero up to round-off
    R[free] = 0.0

    lengths = member_lengths(C, X)

    return RawSolution(
        xyz=X.reshape(-1),
        lengths=lengths,
        forces=q * lengths,
        q=q.copy(),
        reactions=R.reshape(-1),
    )
