# cablenet/solver - Objectives, native optimizer boundary and solve service
"""
SOLVER: FROM A NETWORK TO A SOLVED NETWORK
==========================================

    SolverInputs ─┐
                  ├─► service.solve_forward / optimize ─► SolveResult (new Network)
    Network ──────┘          │
                             ├─ objectives.SolverContext  (node/edge -> index)
                             ├─ kernel.assemble_solver_data
                             └─ native.NativeSolver       (ctypes, theseus_*)
"""

from .models import SolverOptions, SolverInputs, SolveResult
from .objectives import (
    WORLD_XY,
    ForceVariationObjective,
    LengthVariationObjective,
    MaxForceObjective,
    MaxLengthObjective,
    MinForceObjective,
    MinLengthObjective,
    Objective,
    PerformanceObjective,
    PlanarConstraintAlongDirectionObjective,
    Plane,
    ReactionObjective,
    ResolutionError,
    ResolvedObjective,
    RigidPointSetObjective,
    SolverContext,
    TargetLengthObjective,
    TargetPlaneObjective,
    TargetXYObjective,
    TargetXYZObjective,
)
from .native import NativeSolver, NativeSolverError, load_library, native_available
from .service import (
    CancellationToken,
    InvalidNetworkError,
    build_context,
    optimize,
    solve_forward,
    solve_key,
    solved_network,
    submit_optimize,
)

__all__ = [
    'SolverOptions', 'SolverInputs', 'SolveResult',
    'WORLD_XY', 'Plane', 'Objective', 'ResolvedObjective', 'ResolutionError', 'SolverContext',
    'TargetXYZObjective', 'TargetXYObjective', 'TargetPlaneObjective',
    'PlanarConstraintAlongDirectionObjective', 'RigidPointSetObjective', 'ReactionObjective',
    'LengthVariationObjective', 'ForceVariationObjective', 'PerformanceObjective',
    'TargetLengthObjective', 'MinLengthObjective', 'MaxLengthObjective',
    'MinForceObjective', 'MaxForceObjective',
    'NativeSolver', 'NativeSolverError', 'load_library', 'native_available',
    'CancellationToken', 'InvalidNetworkError', 'build_context',
    'optimize', 'solve_forward', 'solve_key', 'solved_network', 'submit_optimize',
]
