# cablenet - Force density form-finding for cable networks
"""
CABLENET: Force Density Form-Finding Core
=========================================

This package provides:
- Graph construction from raw line segments (tolerance merging,
  sequential or region-locked parallel)
- Free/fixed partition and validation against anchor points
- Assembly of the force density system (COO incidence, flat arrays)
- Objectives and a ctypes boundary to the native optimizer
- A scipy reference forward solver

ARCHITECTURE:
-------------
    model.py        Plain data records (Segment, Node, Edge, Graph, Network)
    config.py       Library defaults (CONFIG)
    kernel/         spatial hash, graph builder, partition, assembly, reference solve
    solver/         objectives, native boundary, solve service
    construct.py    build_network + host-facing constructor (messages, cache)
    info.py         derived network information (forces, reactions, tables)
    cache.py        content-hash keyed result cache
    generative/     parametric cable net inputs
    viz/            Plotly presentation layer

USAGE:
------
    from cablenet import build_network, solve_forward, SolverInputs
    from cablenet.generative import square_loop

    segments, anchors = square_loop()
    network = build_network(segments, anchors, edge_tolerance=0.01, anchor_tolerance=0.01)
    result = solve_forward(network, SolverInputs(q=[10.0], loads=[(0, 0, 0)]))
"""

from .config import CONFIG, CablenetConfig
from .logging_config import setup_logging
from .model import Edge, Graph, Network, Node, Segment
from .kernel import (
    ConstructionError,
    MechanismError,
    assemble_solver_data,
    build_graph,
    build_graph_from_tree,
    partition_network,
)
from .construct import ConstructionReport, NetworkConstructor, build_network, build_network_from_tree
from .solver import (
    InvalidNetworkError,
    NativeSolverError,
    ResolutionError,
    SolveResult,
    SolverInputs,
    SolverOptions,
    optimize,
    solve_forward,
    submit_optimize,
)

__version__ = "0.1.0"

__all__ = [
    'CONFIG', 'CablenetConfig', 'setup_logging',
    'Edge', 'Graph', 'Network', 'Node', 'Segment',
    'ConstructionError', 'MechanismError', 'assemble_solver_data',
    'build_graph', 'build_graph_from_tree', 'partition_network',
    'ConstructionReport', 'NetworkConstructor', 'build_network', 'build_network_from_tree',
    'InvalidNetworkError', 'NativeSolverError', 'ResolutionError',
    'SolveResult', 'SolverInputs', 'SolverOptions',
    'optimize', 'solve_forward', 'submit_optimize',
]
