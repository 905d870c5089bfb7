# cablenet/kernel - Graph construction and equilibrium assembly core
"""
KERNEL: FROM LINE SEGMENTS TO SOLVER ARRAYS
===========================================

Data flows strictly downward:

    segments ──► build_graph ──► partition_network ──► assemble_solver_data ──► solver
                 (spatial hash)   (free first, fixed last)  (COO + flat arrays)

Nothing in the kernel knows about objectives or the native library. The
reference forward solve (solve_forward_fdm) is here because it consumes
SolverData and nothing else.
"""

from .spatial import SpatialIndex, ShardedSpatialIndex
from .builder import build_graph, build_graph_from_tree, choose_strategy
from .partition import partition_network, validate_network
from .assemble import (
    ConstructionError,
    SolverData,
    assemble_solver_data,
    expand_values,
    flatten_loads,
    flatten_positions,
    incidence_coo,
    incidence_matrix,
)
from .solve import MechanismError, RawSolution, solve_forward_fdm

__all__ = [
    'SpatialIndex', 'ShardedSpatialIndex',
    'build_graph', 'build_graph_from_tree', 'choose_strategy',
    'partition_network', 'validate_network',
    'ConstructionError', 'SolverData', 'assemble_solver_data', 'expand_values',
    'flatten_loads', 'flatten_positions', 'incidence_coo', 'incidence_matrix',
    'MechanismError', 'RawSolution', 'solve_forward_fdm',
]
