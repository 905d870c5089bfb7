# cablenet/solver/service.py
"""
SOLVER SERVICE: Network + Inputs -> SolveResult
===============================================

PURPOSE:
--------
The only entry points a host needs:

    solve_forward(network, inputs)            one linear solve, fixed q
    optimize(network, inputs, options)        q optimized by the native library
    submit_optimize(network, inputs, ...)     same, on a background worker

Each call builds a fresh SolverContext and SolverData, so concurrent
solves share nothing. The input network is never mutated: the result
carries a NEW Network with the solved geometry (solved_network()).

ENGINES (forward solve):
------------------------
    'native'   theseus_solve_forward through the ctypes wrapper
    'python'   scipy reference solver (kernel.solve.solve_forward_fdm)
    'auto'     native when the library loads, python otherwise

Optimization always needs the native library.

CANCELLATION:
-------------
A CancellationToken is checked inside the progress callback only; the
native loop stops at the next report point after cancel().

CACHING:
--------
solve_forward() and optimize() accept an optional ResultCache. The key
hashes the network (positions, topology, partition, edge sources), the
solve inputs and, for optimize(), the options. Only converged results
are stored, and a cache hit skips the progress callback.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import astuple
from typing import Optional, Tuple

from ..cache import ResultCache, content_hash
from ..kernel.assemble import ConstructionError, SolverData, assemble_solver_data
from ..kernel.solve import RawSolution, solve_forward_fdm
from ..model import Edge, Graph, Network, Node
from .models import SolveResult, SolverInputs, SolverOptions
from .native import NativeSolver, ProgressFn, load_library, native_available
from .objectives import SolverContext

logger = logging.getLogger(__name__)

ENGINES = ('auto', 'native', 'python')


class InvalidNetworkError(ValueError):
    """Raised when solving a network whose partition is not valid."""
    pass


class CancellationToken:
    """Thread-safe cancel flag polled by the progress callback."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def build_context(network: Network) -> SolverContext:
    return SolverContext(network)


def _validate_common(network: Network, inputs: SolverInputs) -> None:
    if network is None:
        raise InvalidNetworkError("No network supplied")
    if not network.valid:
        raise InvalidNetworkError("Network is not valid. Check anchor definitions.")
    if inputs.loads is None or len(inputs.loads) == 0:
        raise ConstructionError("Loads list cannot be empty.")
    if inputs.q is None or len(inputs.q) == 0:
        raise ConstructionError("Initial force densities cannot be empty.")


def _validate_bounds(inputs: SolverInputs) -> None:
    if inputs.lower_bounds is None or len(inputs.lower_bounds) == 0:
        raise ConstructionError("Lower bounds cannot be empty for optimization.")
    if inputs.upper_bounds is None or len(inputs.upper_bounds) == 0:
        raise ConstructionError("Upper bounds cannot be empty for optimization.")


def solved_network(old: Network, raw: RawSolution, context: SolverContext) -> Network:
    """
    A new Network with the solved positions and force densities.

    Anchor flags, neighbor topology, edge sources, edge_input_map and the
    free/fixed index lists carry over unchanged.
    """
    old_graph = old.graph
    xyz = raw.xyz.reshape(-1, 3)

    new_nodes = [
        Node(x=float(p[0]), y=float(p[1]), z=float(p[2]), anchor=n.anchor, index=i)
        for i, (n, p) in enumerate(zip(old_graph.nodes, xyz))
    ]
    for old_node, new_node in zip(old_graph.nodes, new_nodes):
        new_node.neighbors = [new_nodes[context.node_index[nbr]] for nbr in old_node.neighbors]

    new_edges = [
        Edge(
            start=new_nodes[context.node_index[e.start]],
            end=new_nodes[context.node_index[e.end]],
            q=float(raw.q[i]),
            source=e.source,
        )
        for i, e in enumerate(old_graph.edges)
    ]

    graph = Graph(
        nodes=new_nodes,
        edges=new_edges,
        tolerance=old_graph.tolerance,
        edge_input_map=old_graph.edge_input_map,
    )

    fixed = [new_nodes[i] for i in old.fixed_nodes]
    return Network(
        graph=graph,
        anchors=[n.as_tuple() for n in fixed],
        anchor_tolerance=old.anchor_tolerance,
        edge_tolerance=old.edge_tolerance,
        free=[new_nodes[i] for i in old.free_nodes],
        fixed=fixed,
        free_nodes=list(old.free_nodes),
        fixed_nodes=list(old.fixed_nodes),
        valid=True,
    )


def _result(network: Network, raw: RawSolution, context: SolverContext) -> SolveResult:
    return SolveResult(
        network=solved_network(network, raw, context),
        xyz=raw.xyz,
        force_densities=raw.q,
        member_forces=raw.forces,
        member_lengths=raw.lengths,
        reactions=raw.reactions,
        iterations=raw.iterations,
        converged=raw.converged,
    )


def solve_key(network: Network, inputs: SolverInputs, *extra) -> str:
    """Content hash of a network and solve inputs (plus any `extra` parts)."""
    graph = network.graph
    return content_hash(
        graph.positions(),
        graph.edge_index_pairs(),
        [e.source for e in graph.edges],
        network.free_nodes,
        network.fixed_nodes,
        inputs.content_key(),
        *extra,
    )


def _cached(cache: Optional[ResultCache], key: Optional[str]) -> Optional[SolveResult]:
    if cache is None:
        return None
    hit = cache.get(key)
    if hit is not None:
        logger.debug("Solve result served from cache")
    return hit


def _store(cache: Optional[ResultCache], key: Optional[str], result: SolveResult) -> None:
    if cache is not None and result.converged:
        cache.put(key, result)


def _pick_engine(engine: str, lib) -> str:
    if engine not in ENGINES:
        raise ValueError(f"Unknown engine: {engine!r} (expected one of {ENGINES})")
    if engine != 'auto':
        return engine
    if lib is not None or native_available():
        return 'native'
    return 'python'


def solve_forward(
    network: Network,
    inputs: SolverInputs,
    engine: str = 'auto',
    lib=None,
    cache: Optional[ResultCache] = None,
) -> SolveResult:
    """
    Forward solve with fixed force densities.

    Bounds are ignored (unconstrained) and objectives are not applied.

    Raises:
        InvalidNetworkError: network.valid is False
        ConstructionError: empty loads or q
        MechanismError: python engine, singular system
        NativeSolverError: native engine failure
    """
    _validate_common(network, inputs)
    forward_inputs = SolverInputs(q=inputs.q, loads=inputs.loads)
    chosen = _pick_engine(engine, lib)

    key = solve_key(network, forward_inputs, 'forward', chosen) if cache is not None else None
    hit = _cached(cache, key)
    if hit is not None:
        return hit

    context = build_context(network)
    data = assemble_solver_data(network, forward_inputs, context)
    logger.info(
        "Forward solve (%s): %d nodes, %d free, %d edges",
        chosen, data.n_nodes, data.n_free, data.n_edges,
    )

    if chosen == 'python':
        raw = solve_forward_fdm(data)
    else:
        with NativeSolver.create(data, lib=lib) as solver:
            raw = solver.solve_forward()

    result = _result(network, raw, context)
    _store(cache, key, result)
    return result


def _register_objectives(solver: NativeSolver, inputs: SolverInputs, context: SolverContext) -> int:
    applied = 0
    for objective in inputs.objectives:
        if objective.apply_to(solver, context):
            applied += 1
    return applied


def optimize(
    network: Network,
    inputs: SolverInputs,
    options: Optional[SolverOptions] = None,
    progress: Optional[ProgressFn] = None,
    lib=None,
    cache: Optional[ResultCache] = None,
) -> SolveResult:
    """
    Optimize force densities against inputs.objectives with the native library.

    Parameters:
    -----------
    network : Network
        A valid network
    inputs : SolverInputs
        Must include lower and upper bounds
    options : Optional[SolverOptions]
        Defaults to SolverOptions()
    progress : Optional[callable]
        progress(iteration, loss, xyz, q) -> bool, called every
        options.report_frequency evaluations; False cancels
    lib : optional
        Loaded native library (defaults to load_library())
    cache : Optional[ResultCache]
        Converged results are stored under solve_key(network, inputs, options)

    Raises:
        InvalidNetworkError, ConstructionError, ResolutionError, NativeSolverError
    """
    _validate_common(network, inputs)
    _validate_bounds(inputs)
    options = options or SolverOptions()

    key = solve_key(network, inputs, 'optimize', astuple(options)) if cache is not None else None
    hit = _cached(cache, key)
    if hit is not None:
        return hit

    context = build_context(network)
    data: SolverData = assemble_solver_data(network, inputs, context, require_bounds=True)
    lib = load_library() if lib is None else lib

    with NativeSolver.create(data, lib=lib) as solver:
        applied = _register_objectives(solver, inputs, context)
        solver.set_options(options)
        if progress is not None:
            solver.set_progress_callback(progress, options.report_frequency)

        logger.info(
            "Optimizing: %d nodes, %d edges, %d/%d objectives, max %d iterations",
            data.n_nodes, data.n_edges, applied, len(inputs.objectives), options.max_iterations,
        )
        raw = solver.optimize()

    logger.info("Optimization finished after %d iterations (converged=%s)", raw.iterations, raw.converged)
    result = _result(network, raw, context)
    _store(cache, key, result)
    return result


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _background_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='cablenet-solve')
        return _executor


def submit_optimize(
    network: Network,
    inputs: SolverInputs,
    options: Optional[SolverOptions] = None,
    progress: Optional[ProgressFn] = None,
    lib=None,
    executor: Optional[ThreadPoolExecutor] = None,
) -> Tuple["Future[SolveResult]", CancellationToken]:
    """
    Run optimize() on a background worker.

    Returns (future, token). token.cancel() stops the optimization at the
    next progress report; the future then resolves with the partial
    (non-converged) result.
    """
    token = CancellationToken()

    def watched(iteration, loss, xyz, q):
        if token.cancelled:
            return False
        if progress is not None:
            return bool(progress(iteration, loss, xyz, q))
        return True

    pool = executor or _background_executor()
    future = pool.submit(optimize, network, inputs, options, watched, lib)
    return future, token
