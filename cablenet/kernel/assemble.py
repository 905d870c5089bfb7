# cablenet/kernel/assemble.py
"""
ASSEMBLY: Network -> Flat Solver Arrays
=======================================

PURPOSE:
--------
Convert a partitioned Network into the exact numeric bundle a force
density solve needs. This bundle (SolverData) is the whole contract
handed across the solver boundary; nothing else about the Network is
visible to the solver.

INCIDENCE MATRIX (COO):
-----------------------
For edge e from node s to node n:

        col:   ...  s  ...  n  ...
    row e:   [ ...  -1 ...  +1 ... ]

emitted as two coordinate entries (e, s, -1) and (e, n, +1). With
Q = diag(q) the equilibrium of the free nodes reads

    (C_fᵀ Q C_f) x_f = p_f - (C_fᵀ Q C_x) x_x

where C_f / C_x are the columns of C for free / fixed nodes.

BROADCAST RULE:
---------------
Per-edge and per-free-node lists may be shorter than required. The
missing tail repeats the LAST supplied value:

    expand_values([10.0], 4)      -> [10, 10, 10, 10]
    expand_values([5.0, 7.0], 4)  -> [5, 7, 7, 7]
    expand_values([], 4)          -> ConstructionError

Longer lists are truncated.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse

from ..model import Graph, Network, Node


class ConstructionError(ValueError):
    """Raised for degenerate input: no segments, or an empty required list."""
    pass


def expand_values(values: Optional[Sequence[float]], length: int, name: str = 'values') -> np.ndarray:
    """
    Broadcast `values` to `length` entries by repeating the last one.

    Raises:
        ConstructionError: if `values` is None or empty
    """
    if values is None:
        raise ConstructionError(f"No {name} supplied")
    arr = np.atleast_1d(np.asarray(values, dtype=float)).ravel()
    if arr.size == 0:
        raise ConstructionError(f"No {name} supplied")

    if arr.size >= length:
        return arr[:length].copy()
    pad = np.full(length - arr.size, arr[-1], dtype=float)
    return np.concatenate([arr, pad])


def flatten_loads(loads: Optional[Sequence[Sequence[float]]], n_free: int) -> np.ndarray:
    """
    One (x, y, z) load per free node, flattened to shape (3 * n_free,).

    A shorter list repeats its last load vector.
    """
    if loads is None or len(loads) == 0:
        raise ConstructionError("No loads supplied")

    vectors = np.asarray(loads, dtype=float).reshape(-1, 3)
    if n_free == 0:
        return np.zeros(0, dtype=float)

    if len(vectors) >= n_free:
        out = vectors[:n_free]
    else:
        tail = np.repeat(vectors[-1:], n_free - len(vectors), axis=0)
        out = np.vstack([vectors, tail])
    return out.reshape(-1).copy()


def flatten_positions(nodes: Sequence[Node]) -> np.ndarray:
    """Node coordinates flattened as [x0, y0, z0, x1, ...]."""
    if not nodes:
        return np.zeros(0, dtype=float)
    return np.array([[n.x, n.y, n.z] for n in nodes], dtype=float).reshape(-1)


def incidence_coo(
    graph: Graph,
    node_index: Optional[Mapping[Node, int]] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Branch-node incidence in coordinate form.

    Parameters:
    -----------
    graph : Graph
        Nodes and edges; edge order gives the row numbers
    node_index : Optional[Mapping[Node, int]]
        Node -> column. Defaults to node.index.

    Returns:
    --------
    rows, cols, vals : np.ndarray
        Length 2 * n_edges; entries (e, start, -1) then (e, end, +1)
    """
    n_edges = len(graph.edges)
    rows = np.repeat(np.arange(n_edges, dtype=np.int64), 2)
    cols = np.empty(2 * n_edges, dtype=np.int64)
    vals = np.tile(np.array([-1.0, 1.0]), n_edges)

    for e, edge in enumerate(graph.edges):
        if node_index is None:
            s, n = edge.start.index, edge.end.index
        else:
            s, n = node_index[edge.start], node_index[edge.end]
        cols[2 * e] = s
        cols[2 * e + 1] = n

    return rows, cols, vals


def incidence_matrix(graph: Graph) -> sparse.coo_matrix:
    """Incidence matrix C as a scipy COO matrix, shape (n_edges, n_nodes)."""
    rows, cols, vals = incidence_coo(graph)
    return sparse.coo_matrix((vals, (rows, cols)), shape=(graph.n_edges, graph.n_nodes))


@dataclass(frozen=True)
class SolverData:
    """
    Everything the equilibrium solver consumes.

    Parameters:
    -----------
    n_edges, n_nodes, n_free : int
        Sizes of the system
    rows, cols, vals : np.ndarray
        Incidence matrix in COO form
    free_nodes, fixed_nodes : np.ndarray
        Node indices, free block first
    loads : np.ndarray
        Flattened loads, shape (3 * n_free,)
    fixed_positions : np.ndarray
        Flattened fixed coordinates, shape (3 * n_fixed,)
    q, lower_bounds, upper_bounds : np.ndarray
        Per-edge force densities and their bounds, shape (n_edges,)
    """
    n_edges: int
    n_nodes: int
    n_free: int
    rows: np.ndarray
    cols: np.ndarray
    vals: np.ndarray
    free_nodes: np.ndarray
    fixed_nodes: np.ndarray
    loads: np.ndarray
    fixed_positions: np.ndarray
    q: np.ndarray
    lower_bounds: np.ndarray
    upper_bounds: np.ndarray

    @property
    def n_fixed(self) -> int:
        return self.n_nodes - self.n_free

    def incidence(self) -> sparse.csr_matrix:
        return sparse.coo_matrix(
            (self.vals, (self.rows, self.cols)), shape=(self.n_edges, self.n_nodes)
        ).tocsr()


def _bounds(values: Optional[Sequence[float]], n_edges: int, fill: float, required: bool, name: str) -> np.ndarray:
    if values is None or len(values) == 0:
        if required:
            raise ConstructionError(f"No {name} supplied")
        return np.full(n_edges, fill, dtype=float)
    return expand_values(values, n_edges, name)


def assemble_solver_data(
    network: Network,
    inputs: Any,
    context: Any = None,
    require_bounds: bool = False,
) -> SolverData:
    """
    Assemble the SolverData bundle for `network`.

    Parameters:
    -----------
    network : Network
        A partitioned network (free nodes first)
    inputs : object
        Anything with `loads`, `q`, `lower_bounds` and `upper_bounds`
        (see cablenet.solver.models.SolverInputs)
    context : Optional[SolverContext]
        Supplies the Node -> index map; node.index is used otherwise
    require_bounds : bool
        True when optimizing. Missing bounds then raise instead of
        expanding to -inf / +inf.

    Raises:
        ConstructionError: empty loads, q, or (when required) bounds;
            a network without edges
    """
    graph = network.graph
    if graph.n_edges == 0:
        raise ConstructionError("Network has no edges")

    node_index = getattr(context, 'node_index', None)
    rows, cols, vals = incidence_coo(graph, node_index)

    n_edges = graph.n_edges
    n_free = len(network.free_nodes)

    loads = flatten_loads(inputs.loads, n_free)
    q = expand_values(inputs.q, n_edges, 'force densities')
    lower = _bounds(inputs.lower_bounds, n_edges, -np.inf, require_bounds, 'lower bounds')
    upper = _bounds(inputs.upper_bounds, n_edges, np.inf, require_bounds, 'upper bounds')

    fixed_nodes = [graph.nodes[i] for i in network.fixed_nodes]

    return SolverData(
        n_edges=n_edges,
        n_nodes=graph.n_nodes,
        n_free=n_free,
        rows=rows,
        cols=cols,
        vals=vals,
        free_nodes=np.asarray(network.free_nodes, dtype=np.int64),
        fixed_nodes=np.asarray(network.fixed_nodes, dtype=np.int64),
        loads=loads,
        fixed_positions=flatten_positions(fixed_nodes),
        q=q,
        lower_bounds=lower,
        upper_bounds=upper,
    )


def edge_vectors(positions: np.ndarray, graph: Graph) -> np.ndarray:
    """End minus start coordinates per edge, shape (n_edges, 3)."""
    pairs = np.array(graph.edge_index_pairs(), dtype=np.int64).reshape(-1, 2)
    pos = np.asarray(positions, dtype=float).reshape(-1, 3)
    return pos[pairs[:, 1]] - pos[pairs[:, 0]]

